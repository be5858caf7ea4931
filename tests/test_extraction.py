import pytest
from unittest.mock import patch

from exceptions import ResponseShapeError
from extraction import (
    empty_job_data,
    extract_job_data,
    extract_letter_text,
    extract_resume_data,
    resolve,
)
from schemas import JobData, ResumeData


def test_resolve_returns_first_present_non_empty_value():
    data = {"a": {"b": ""}, "c": None, "d": [], "e": "found"}
    assert resolve(data, ("a.b", "c", "d", "e")) == "found"


def test_resolve_tolerates_missing_intermediate_objects():
    assert resolve({"a": "not-a-dict"}, ("a.b.c", "x.y"), default="fallback") == "fallback"


def test_extract_resume_from_snake_case_payload(resume_payload):
    resume = extract_resume_data(resume_payload)

    assert resume.full_name == "Anna Petrova"
    assert resume.personal_info.location.city == "Moscow"
    assert resume.skills.hard_skills == ["Python", "SQL"]
    assert resume.education[0].label == "MSU - BSc"
    assert resume.experience[0].label == "Backend Developer at Acme"
    assert resume.experience[0].bullet_list == ["Built APIs", "Owned the billing service"]
    assert len(resume.similar_positions) == 8


def test_extract_resume_from_partial_camel_case_payload():
    """Mixed nesting and camelCase keys resolve, absent fields become empty."""
    raw = {
        "personalInfo": {"first_name": "Anna"},
        "lastName": "Petrova",
        "skills": {"hardSkills": ["Go", "Kubernetes"]},
        "softSkills": ["Teamwork"],
        "desiredPosition": "Platform Engineer",
    }

    resume = extract_resume_data(raw)

    assert resume.personal_info.first_name == "Anna"
    assert resume.personal_info.last_name == "Petrova"
    assert resume.skills.hard_skills == ["Go", "Kubernetes"]
    assert resume.skills.soft_skills == ["Teamwork"]
    assert resume.skills.languages == []
    assert resume.desired_position == "Platform Engineer"
    assert resume.summary == ""
    assert resume.personal_info.email == ""
    assert resume.experience == []
    assert resume.education == []


def test_extract_resume_summary_falls_back_to_description():
    resume = extract_resume_data({"description": "Seasoned engineer"})
    assert resume.summary == "Seasoned engineer"


def test_extract_resume_drops_malformed_list_items():
    raw = {
        "workExperience": [
            "Acme, 2019-2021",
            {"title": "Engineer", "companyName": "Initech", "responsibilities": "Kept TPS reports"},
        ]
    }
    with patch("extraction.logger") as mock_logger:
        resume = extract_resume_data(raw)

    assert len(resume.experience) == 1
    assert resume.experience[0].position == "Engineer"
    assert resume.experience[0].company == "Initech"
    assert resume.experience[0].bullet_list == ["Kept TPS reports"]
    mock_logger.warning.assert_called_once_with("Dropping malformed list item", kind="experience", index=0)


@pytest.mark.parametrize("raw", [None, "garbage", 42, ["a", "b"]])
def test_extract_resume_never_raises_on_garbage(raw):
    assert extract_resume_data(raw) == ResumeData()


def test_extract_job_unwraps_job_data(job_payload):
    job = extract_job_data(job_payload)

    assert job.job_title == "Senior Python Developer"
    assert job.company_name == "Globex"
    assert job.location.city == "Remote"
    assert job.skills.hard_skills == ["Python", "PostgreSQL"]
    assert job.required_skills == ["Python", "PostgreSQL"]


def test_extract_job_reads_alternate_keys():
    raw = {"title": "QA Engineer", "company": "Umbrella", "required_skills": ["Selenium"], "location": "Berlin"}

    job = extract_job_data(raw)

    assert job.job_title == "QA Engineer"
    assert job.company_name == "Umbrella"
    assert job.skills.hard_skills == ["Selenium"]
    assert job.location.city == "Berlin"
    assert job.description is None


def test_job_dump_keeps_required_skills_mirror():
    job = extract_job_data({"skills": {"hard_skills": ["Rust"]}})
    dumped = job.model_dump()
    assert dumped["required_skills"] == ["Rust"]
    assert JobData.model_validate(dumped) == job


@pytest.mark.parametrize("raw", [None, "oops", {"job_data": "not-an-object"}])
def test_extract_job_degrades_to_empty_data(raw):
    assert extract_job_data(raw) == empty_job_data()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"letter_text": "Dear team,"}, "Dear team,"),
        ({"cover_letter": "Hello"}, "Hello"),
        ({"letter": "Hi there"}, "Hi there"),
        ({"letter_text": "", "cover_letter": "Second"}, "Second"),
    ],
)
def test_extract_letter_text_key_priority(raw, expected):
    assert extract_letter_text(raw) == expected


def test_extract_letter_text_keeps_text_unchanged():
    text = "  Dear hiring manager,\n\nI am writing...\n"
    assert extract_letter_text({"letter_text": text}) == text


def test_extract_letter_text_requires_a_letter():
    with pytest.raises(ResponseShapeError) as exc_info:
        extract_letter_text({"status": "ok"})
    assert exc_info.value.field == "letter_text"
