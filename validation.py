"""Per-step input and response validation."""
import re
from numbers import Number
from typing import Any, Optional
from urllib.parse import urlparse

import structlog
from pydantic import ValidationError

from exceptions import ClientValidationError, ResponseShapeError
from schemas import (
    CreateGenerationData,
    GenerationStatus,
    JobData,
    JobUrlValidation,
    LetterCustomization,
    ResumeData,
    ScoringResults,
)

logger = structlog.get_logger(__name__)

# --- Upload ---

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
ALLOWED_MIME_TYPES = {PDF_MIME: ".pdf", DOCX_MIME: ".docx"}

FORBIDDEN_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def validate_upload(filename: str, size: int, content_type: str) -> None:
    """Raise ClientValidationError on the first violated upload constraint."""
    if not filename:
        raise ClientValidationError("File name is required", field="file_name")

    if size > MAX_FILE_SIZE:
        raise ClientValidationError(
            f"File is too large. Maximum size: {MAX_FILE_SIZE // (1024 * 1024)}MB",
            field="file_size",
        )

    expected_extension = ALLOWED_MIME_TYPES.get(content_type)
    if expected_extension is None:
        raise ClientValidationError(
            "Unsupported file type. Only PDF and DOCX are allowed", field="content_type"
        )

    if not filename.lower().endswith(expected_extension):
        raise ClientValidationError(
            "File extension does not match its type. Use .pdf or .docx", field="file_name"
        )

    if FORBIDDEN_FILENAME_CHARS.search(filename):
        raise ClientValidationError("File name contains forbidden characters", field="file_name")


# --- Job URL ---

JOB_SITES = (
    ("HeadHunter", ("hh.ru", "hh.kz", "hh.by", "hh.uz", "hh.kg"), re.compile(r"/vacancy/\d+")),
    ("LinkedIn", ("linkedin.com",), re.compile(r"/jobs/view/\d+")),
    ("Djinni", ("djinni.co",), re.compile(r"/jobs/\d+")),
    ("Habr Career", ("career.habr.com",), re.compile(r"/vacancies/\d+")),
    ("SuperJob", ("superjob.ru",), re.compile(r"/vakansii/")),
    ("Work.ua", ("work.ua",), re.compile(r"/jobs/\d+")),
    ("Rabota.ua", ("rabota.ua",), re.compile(r"/company\d+/vacancy\d+")),
    ("Jobs.ua", ("jobs.ua",), re.compile(r"/vacancy/")),
)

SUPPORTED_SITES_HINT = ", ".join(name for name, _, _ in JOB_SITES)


def _host_matches(hostname: str, domain: str) -> bool:
    return hostname == domain or hostname.endswith("." + domain)


def validate_job_url(url: Optional[str]) -> JobUrlValidation:
    """Check a vacancy link against the allow-list of job sites.

    The outcome depends only on the hostname and the path.
    """
    if not url or not url.strip():
        return JobUrlValidation(is_valid=False, error="Enter a vacancy link")

    candidate = url.strip()
    if "://" not in candidate:
        candidate = "https://" + candidate

    try:
        parsed = urlparse(candidate)
        hostname = (parsed.hostname or "").lower()
    except ValueError:
        return JobUrlValidation(is_valid=False, error="Invalid link format")

    if parsed.scheme not in ("http", "https"):
        return JobUrlValidation(is_valid=False, error="The link must start with http:// or https://")
    if not hostname:
        return JobUrlValidation(is_valid=False, error="Invalid link format")

    for site, domains, path_pattern in JOB_SITES:
        if not any(_host_matches(hostname, domain) for domain in domains):
            continue
        if path_pattern.search(parsed.path):
            return JobUrlValidation(is_valid=True, detected_site=site)
        return JobUrlValidation(
            is_valid=False,
            error=f"This does not look like a vacancy page on {site}",
            detected_site=site,
        )

    return JobUrlValidation(
        is_valid=False,
        error=f"Unsupported job site. Supported: {SUPPORTED_SITES_HINT}",
    )


# --- Letter ---

def validate_customization(customization: LetterCustomization) -> None:
    limits = (
        ("highlight_experience", 2),
        ("highlight_education", 2),
        ("highlight_skills", 4),
    )
    for field, limit in limits:
        values = getattr(customization, field)
        if len(values) > limit:
            raise ClientValidationError(f"Choose at most {limit} items", field=field)
        if len(set(values)) != len(values):
            raise ClientValidationError("Items must not repeat", field=field)


def validate_generation_inputs(resume: Optional[ResumeData], job: Optional[JobData]) -> None:
    if resume is None:
        raise ClientValidationError("Resume data is required to generate a letter", field="resume_data")
    if job is None:
        raise ClientValidationError("Job data is required to generate a letter", field="job_data")


# --- Scoring ---

def validate_scoring_inputs(
    resume: Optional[ResumeData], job: Optional[JobData], user_id: Optional[str]
) -> None:
    if resume is None:
        raise ClientValidationError("Resume data is missing", field="resume_data")
    if job is None:
        raise ClientValidationError("Job data is missing", field="job_data")
    if not user_id:
        raise ClientValidationError("User id is missing", field="user_id")
    if len(user_id) < 3:
        raise ClientValidationError("User id is too short", field="user_id")

    if not resume.personal_info.first_name.strip():
        raise ClientValidationError("First name is missing from the resume", field="first_name")
    if not resume.personal_info.last_name.strip():
        raise ClientValidationError("Last name is missing from the resume", field="last_name")

    skills = resume.skills.hard_skills + resume.skills.soft_skills
    if not skills or not any(skill.strip() for skill in skills):
        raise ClientValidationError("The resume lists no skills", field="skills")

    if not resume.experience:
        logger.warning("Scoring without work experience", user_id=user_id)
    if not job.skills.hard_skills and not job.skills.soft_skills:
        logger.warning("Scoring without job skills", user_id=user_id)
    if not job.description:
        logger.warning("Scoring without job description", user_id=user_id)


SCORING_RESULT_KEYS = (
    "total_score",
    "breakdown",
    "recommendation",
    "recruiter_recommendation",
    "candidate_recommendation",
)
BREAKDOWN_CATEGORIES = ("hard_skills", "soft_skills", "experience_match", "position_match")
CATEGORY_KEYS = ("score", "summary", "description")


def _require(container: Any, key: str, path: str) -> Any:
    if not isinstance(container, dict) or key not in container or container[key] is None:
        raise ResponseShapeError(path, collaborator="scoring")
    return container[key]


def _check_score(value: Any, path: str) -> None:
    if isinstance(value, bool) or not isinstance(value, Number):
        logger.warning("Score is not a number", field=path, value=repr(value))
    elif not 0 <= value <= 100:
        logger.warning("Score out of range", field=path, value=value)


def validate_scoring_response(payload: Any) -> ScoringResults:
    """Check the scoring payload structure and return it as a model.

    Out-of-range scores are logged and kept.
    """
    result = _require(payload, "scoring_result", "scoring_result")
    for key in SCORING_RESULT_KEYS:
        _require(result, key, f"scoring_result.{key}")

    breakdown = result["breakdown"]
    for category in BREAKDOWN_CATEGORIES:
        entry = _require(breakdown, category, f"scoring_result.breakdown.{category}")
        for key in CATEGORY_KEYS:
            _require(entry, key, f"scoring_result.breakdown.{category}.{key}")

    _check_score(result["total_score"], "scoring_result.total_score")
    for category in BREAKDOWN_CATEGORIES:
        _check_score(breakdown[category]["score"], f"scoring_result.breakdown.{category}.score")

    try:
        return ScoringResults.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        raise ResponseShapeError(
            path, message=f"Response field has an unexpected type: {path}", collaborator="scoring"
        ) from e


# --- Manual resume edits ---

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_resume_edit(resume: ResumeData) -> None:
    info = resume.personal_info
    if not info.first_name.strip():
        raise ClientValidationError("First name is required", field="first_name")
    if not info.last_name.strip():
        raise ClientValidationError("Last name is required", field="last_name")
    if not info.email.strip():
        raise ClientValidationError("Email is required", field="email")
    if not EMAIL_PATTERN.match(info.email.strip()):
        raise ClientValidationError("Email is not valid", field="email")
    if not info.phone.strip():
        raise ClientValidationError("Phone is required", field="phone")
    if not resume.desired_position.strip():
        raise ClientValidationError("Desired position is required", field="desired_position")
    if not resume.summary.strip():
        raise ClientValidationError("Summary is required", field="summary")


# --- Saved generations ---

MAX_TITLE_LENGTH = 200


def validate_create_generation(data: CreateGenerationData) -> None:
    """Collect every violation and raise them together."""
    errors = []
    if not data.job_title.strip():
        errors.append("job_title is required and must be a non-empty string")
    if not data.company_name.strip():
        errors.append("company_name is required and must be a non-empty string")
    if not data.cover_letter_text.strip():
        errors.append("cover_letter_text is required and must be a non-empty string")
    for field in ("scoring_results_json", "resume_data_json", "job_data_json"):
        if not isinstance(getattr(data, field), dict):
            errors.append(f"{field} is required and must be an object")
    # Saved blobs must load back into the workflow when the generation is opened
    for field, model in (("resume_data_json", ResumeData), ("job_data_json", JobData)):
        blob = getattr(data, field)
        if isinstance(blob, dict):
            try:
                model.model_validate(blob)
            except ValidationError as e:
                path = ".".join(str(part) for part in e.errors()[0]["loc"])
                errors.append(f"{field} has an invalid value at {path}")
    if isinstance(data.scoring_results_json, dict):
        try:
            validate_scoring_response(data.scoring_results_json)
        except ResponseShapeError as e:
            errors.append(f"scoring_results_json is missing or has an invalid {e.field}")
    if data.overall_score is not None and not 0 <= data.overall_score <= 100:
        errors.append("overall_score must be a number between 0 and 100")
    if data.title is not None and len(data.title) > MAX_TITLE_LENGTH:
        errors.append(f"title must be a string of at most {MAX_TITLE_LENGTH} characters")
    if data.status not in set(GenerationStatus):
        errors.append(
            "status must be one of: " + ", ".join(status.value for status in GenerationStatus)
        )

    if errors:
        raise ClientValidationError("Generation data is invalid", details={"errors": errors})
