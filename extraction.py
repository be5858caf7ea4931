"""
Tolerant readers for collaborator payloads.

The AI services do not commit to one key spelling, so every logical field is
described by an ordered tuple of dotted candidate paths. `resolve` walks them
and returns the first present, non-empty value.
"""
from typing import Any, Iterable, Optional

import structlog

from exceptions import ResponseShapeError
from schemas import (
    Education,
    JobData,
    Location,
    PersonalInfo,
    ResumeData,
    Skills,
    WorkExperience,
)

logger = structlog.get_logger(__name__)

EXPECTED_SIMILAR_POSITIONS = 8

_MISSING = object()


def _lookup(data: Any, path: str) -> Any:
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def _is_empty(value: Any) -> bool:
    if value is None or value is _MISSING:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def resolve(data: Any, candidates: Iterable[str], default: Any = None) -> Any:
    """Return the value at the first candidate path that is present and non-empty."""
    for path in candidates:
        value = _lookup(data, path)
        if not _is_empty(value):
            return value
    return default


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _as_optional_str(value: Any) -> Optional[str]:
    return _as_str(value) or None


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [item for item in (_as_str(v) for v in value) if item]


def _as_location(value: Any) -> Optional[Location]:
    if isinstance(value, str) and value.strip():
        return Location(city=value.strip())
    if isinstance(value, dict):
        city = _as_optional_str(value.get("city"))
        country = _as_optional_str(value.get("country"))
        if city or country:
            return Location(city=city, country=country)
    return None


# --- Candidate tables ---

RESUME_FIELDS = {
    "first_name": ("personal_info.first_name", "personalInfo.first_name", "personalInfo.firstName", "first_name", "firstName"),
    "last_name": ("personal_info.last_name", "personalInfo.last_name", "personalInfo.lastName", "last_name", "lastName"),
    "email": ("personal_info.email", "personalInfo.email", "email"),
    "phone": ("personal_info.phone", "personalInfo.phone", "phone"),
    "location": ("personal_info.location", "personalInfo.location", "location"),
    "website": ("personal_info.website", "personalInfo.website", "website"),
    "telegram_id": ("personal_info.telegram_id", "personalInfo.telegramId", "telegram_id", "telegramId"),
    "hard_skills": ("skills.hard_skills", "skills.hardSkills", "hard_skills", "hardSkills"),
    "soft_skills": ("skills.soft_skills", "skills.softSkills", "soft_skills", "softSkills"),
    "languages": ("skills.languages", "languages"),
    "education": ("education",),
    "experience": ("experience", "work_experience", "workExperience"),
    "summary": ("summary", "description"),
    "desired_position": ("desired_position", "desiredPosition"),
    "similar_positions": ("similar_positions", "similarPositions"),
}

EDUCATION_FIELDS = {
    "institution": ("institution", "university", "school"),
    "degree": ("degree",),
    "graduation_year": ("graduation_year", "graduationYear", "year"),
    "field_of_study": ("field_of_study", "fieldOfStudy", "specialization"),
    "additional_info": ("additional_info", "additionalInfo"),
}

EXPERIENCE_FIELDS = {
    "position": ("position", "title", "job_title"),
    "company": ("company", "company_name", "companyName"),
    "bullet_list": ("bullet_list", "bulletList", "responsibilities", "achievements"),
    "start_date": ("start_date", "startDate"),
    "end_date": ("end_date", "endDate"),
    "industry": ("industry",),
}

JOB_WRAPPERS = ("job_data", "jobData", "data")

JOB_FIELDS = {
    "job_title": ("job_title", "jobTitle", "title"),
    "company_name": ("company_name", "companyName", "company"),
    "location": ("location",),
    "employment_type": ("employment_type", "employmentType"),
    "experience_level": ("experience_level", "experienceLevel"),
    "industry": ("industry",),
    "description": ("description",),
    "hard_skills": ("skills.hard_skills", "skills.hardSkills", "required_skills", "requiredSkills"),
    "soft_skills": ("skills.soft_skills", "skills.softSkills"),
    "languages": ("skills.languages", "languages"),
}

LETTER_TEXT_KEYS = ("letter_text", "cover_letter", "letter")


def _extract_items(raw_items: Any, fields: dict, build, kind: str) -> list:
    if not isinstance(raw_items, list):
        return []
    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            logger.warning("Dropping malformed list item", kind=kind, index=index)
            continue
        items.append(build({name: resolve(raw, paths) for name, paths in fields.items()}))
    return items


def _build_education(values: dict) -> Education:
    return Education(
        institution=_as_str(values["institution"]),
        degree=_as_optional_str(values["degree"]),
        graduation_year=_as_optional_str(values["graduation_year"]),
        field_of_study=_as_optional_str(values["field_of_study"]),
        additional_info=_as_optional_str(values["additional_info"]),
    )


def _build_experience(values: dict) -> WorkExperience:
    return WorkExperience(
        position=_as_str(values["position"]),
        company=_as_str(values["company"]),
        bullet_list=_as_str_list(values["bullet_list"]),
        start_date=_as_optional_str(values["start_date"]),
        end_date=_as_optional_str(values["end_date"]),
        industry=_as_optional_str(values["industry"]),
    )


def extract_resume_data(raw: Any) -> ResumeData:
    """Normalise a parser response into `ResumeData`. Never raises."""
    if not isinstance(raw, dict):
        logger.warning("Resume payload is not an object", payload_type=type(raw).__name__)
        return ResumeData()

    values = {name: resolve(raw, paths) for name, paths in RESUME_FIELDS.items()}

    resume = ResumeData(
        personal_info=PersonalInfo(
            first_name=_as_str(values["first_name"]),
            last_name=_as_str(values["last_name"]),
            email=_as_str(values["email"]),
            phone=_as_str(values["phone"]),
            location=_as_location(values["location"]),
            website=_as_optional_str(values["website"]),
            telegram_id=_as_optional_str(values["telegram_id"]),
        ),
        skills=Skills(
            hard_skills=_as_str_list(values["hard_skills"]),
            soft_skills=_as_str_list(values["soft_skills"]),
            languages=_as_str_list(values["languages"]),
        ),
        education=_extract_items(values["education"], EDUCATION_FIELDS, _build_education, "education"),
        experience=_extract_items(values["experience"], EXPERIENCE_FIELDS, _build_experience, "experience"),
        summary=_as_str(values["summary"]),
        desired_position=_as_str(values["desired_position"]),
        similar_positions=_as_str_list(values["similar_positions"]),
    )

    if len(resume.similar_positions) != EXPECTED_SIMILAR_POSITIONS:
        logger.info(
            "Unexpected number of similar positions",
            expected=EXPECTED_SIMILAR_POSITIONS,
            received=len(resume.similar_positions),
        )

    logger.info(
        "Resume data extracted",
        has_name=bool(resume.full_name),
        hard_skills=len(resume.skills.hard_skills),
        experience_items=len(resume.experience),
    )
    return resume


def empty_job_data() -> JobData:
    """Blank, editable job data used when extraction fails."""
    return JobData()


def extract_job_data(raw: Any) -> JobData:
    """Normalise an extractor response into `JobData`. Never raises."""
    if not isinstance(raw, dict):
        logger.warning("Job payload is not an object", payload_type=type(raw).__name__)
        return empty_job_data()

    data = raw
    for wrapper in JOB_WRAPPERS:
        inner = raw.get(wrapper)
        if isinstance(inner, dict):
            data = inner
            break

    values = {name: resolve(data, paths) for name, paths in JOB_FIELDS.items()}
    return JobData(
        job_title=_as_str(values["job_title"]),
        company_name=_as_str(values["company_name"]),
        location=_as_location(values["location"]),
        employment_type=_as_optional_str(values["employment_type"]),
        experience_level=_as_optional_str(values["experience_level"]),
        industry=_as_optional_str(values["industry"]),
        description=_as_optional_str(values["description"]),
        skills=Skills(
            hard_skills=_as_str_list(values["hard_skills"]),
            soft_skills=_as_str_list(values["soft_skills"]),
            languages=_as_str_list(values["languages"]),
        ),
    )


def extract_letter_text(raw: Any) -> str:
    text = resolve(raw, LETTER_TEXT_KEYS)
    if not isinstance(text, str):
        raise ResponseShapeError("letter_text", collaborator="letter_generator")
    return text
