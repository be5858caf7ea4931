import asyncio
import time
from typing import Iterable, List, Optional

import fastapi
import structlog

import schemas
from collaborators import CollaboratorClient
from exceptions import AuthorizationError, ClientValidationError, CollaboratorError, ResponseShapeError
from extraction import empty_job_data, extract_job_data, extract_letter_text, extract_resume_data
from observability import METRICS_NAMESPACE, metric_scope
from persistence import GenerationStore
from validation import (
    MAX_FILE_SIZE,
    validate_customization,
    validate_generation_inputs,
    validate_job_url,
    validate_resume_edit,
    validate_scoring_inputs,
    validate_scoring_response,
    validate_upload,
)
from workflow import GenerationWorkflow

# Set up logging
logger = structlog.get_logger(__name__)


def _require_identity(identity: Optional[schemas.UserIdentity]) -> schemas.UserIdentity:
    if identity is None or not identity.id:
        raise AuthorizationError()
    return identity


async def pace(started_at: float, minimum: float) -> None:
    """Sleep until at least `minimum` seconds have passed since `started_at` (monotonic)."""
    remaining = minimum - (time.monotonic() - started_at)
    if remaining > 0:
        await asyncio.sleep(remaining)


# ---------------------------------------------------------------------------
# Step runners. Any error ends the step and leaves the workflow as it was.
# ---------------------------------------------------------------------------

async def run_resume_upload(
    workflow: GenerationWorkflow,
    client: CollaboratorClient,
    file: fastapi.UploadFile,
    identity: Optional[schemas.UserIdentity],
) -> schemas.ResumeData:
    """Validate the uploaded file, have it parsed and store the normalised résumé."""
    identity = _require_identity(identity)
    filename = file.filename or ""
    content_type = file.content_type or ""
    # A declared size is checked before anything is buffered
    if file.size is not None:
        validate_upload(filename, file.size, content_type)
    content = await file.read(MAX_FILE_SIZE + 1)
    validate_upload(filename, len(content), content_type)

    previous = workflow.resume
    started = time.monotonic()
    logger.info("Parsing resume", user_id=identity.id, filename=filename, size=len(content))
    raw = await client.parse_resume(content, filename, content_type, identity.id)
    resume = extract_resume_data(raw)

    await pace(started, client.settings.resume_min_display_seconds)
    workflow.require_unchanged(schemas.Step.UPLOAD, resume=previous)
    workflow.complete_upload(resume)
    return resume


async def run_job_analysis(
    workflow: GenerationWorkflow,
    client: CollaboratorClient,
    url: str,
    identity: Optional[schemas.UserIdentity],
) -> schemas.JobAnalysisResult:
    """Extract job data from a vacancy link.

    A collaborator failure does not fail the step: blank job data is stored
    so the user can fill it in by hand.
    """
    identity = _require_identity(identity)
    check = validate_job_url(url)
    if not check.is_valid:
        raise ClientValidationError(check.error, field="vacancy_url")

    previous = workflow.job
    try:
        raw = await client.extract_job(url.strip(), identity.id)
    except (CollaboratorError, ResponseShapeError) as e:
        workflow.require_unchanged(schemas.Step.ANALYZE, job=previous)
        logger.warning(
            "Job extraction failed, falling back to manual entry",
            user_id=identity.id,
            site=check.detected_site,
            error=e.message,
        )
        workflow.complete_analysis(empty_job_data())
        return schemas.JobAnalysisResult(
            job_data=workflow.job, degraded=True, error=e.message, detected_site=check.detected_site
        )

    job = extract_job_data(raw)
    workflow.require_unchanged(schemas.Step.ANALYZE, job=previous)
    workflow.complete_analysis(job)
    logger.info("Job analysed", user_id=identity.id, site=check.detected_site, job_title=job.job_title)
    return schemas.JobAnalysisResult(job_data=job, detected_site=check.detected_site)


def apply_job_edits(workflow: GenerationWorkflow, job: schemas.JobData) -> schemas.JobData:
    workflow.complete_analysis(job)
    return job


def apply_resume_edits(workflow: GenerationWorkflow, resume: schemas.ResumeData) -> schemas.ResumeData:
    validate_resume_edit(resume)
    workflow.complete_upload(resume)
    return resume


async def run_letter_generation(
    workflow: GenerationWorkflow,
    client: CollaboratorClient,
    customization: schemas.LetterCustomization,
    identity: Optional[schemas.UserIdentity],
) -> schemas.CoverLetter:
    identity = _require_identity(identity)
    validate_customization(customization)
    validate_generation_inputs(workflow.resume, workflow.job)

    resume, job = workflow.resume, workflow.job
    raw = await client.generate_letter(resume, job, identity.id, customization)
    text = extract_letter_text(raw)
    workflow.require_unchanged(schemas.Step.GENERATE, resume=resume, job=job)
    workflow.complete_letter(text, customization)
    logger.info(
        "Cover letter generated",
        user_id=identity.id,
        letter_style=customization.letter_style.value,
        letter_length=len(text),
    )
    return workflow.letter


def save_letter_edit(workflow: GenerationWorkflow, text: str) -> schemas.CoverLetter:
    if not text.strip():
        raise ClientValidationError("Cover letter text must not be empty", field="text")
    workflow.complete_letter(text)
    return workflow.letter


async def run_scoring(
    workflow: GenerationWorkflow,
    client: CollaboratorClient,
    identity: Optional[schemas.UserIdentity],
) -> schemas.ScoringResults:
    identity = _require_identity(identity)
    validate_scoring_inputs(workflow.resume, workflow.job, identity.id)

    resume, job = workflow.resume, workflow.job
    started = time.monotonic()
    payload = await client.score_match(resume, job, identity.id)
    result = validate_scoring_response(payload)

    await pace(started, client.settings.scoring_min_display_seconds)
    workflow.require_unchanged(schemas.Step.SCORING, resume=resume, job=job)
    workflow.complete_scoring(result)
    logger.info(
        "Scoring completed",
        user_id=identity.id,
        total_score=result.scoring_result.total_score,
        recommendation=result.scoring_result.recommendation,
    )
    return result


# ---------------------------------------------------------------------------
# Saved generations
# ---------------------------------------------------------------------------

@metric_scope
async def save_generation(
    store: GenerationStore,
    data: schemas.CreateGenerationData,
    identity: Optional[schemas.UserIdentity],
    metrics=None,
) -> schemas.SaveGenerationResponse:
    metrics.set_namespace(METRICS_NAMESPACE)
    try:
        saved = store.save(data, identity)
    except Exception:
        metrics.put_metric("generation_save_failures", 1, "Count")
        raise
    metrics.put_metric("generations_saved", 1, "Count")
    return saved


async def save_workflow(
    workflow: GenerationWorkflow,
    store: GenerationStore,
    identity: Optional[schemas.UserIdentity],
    title: Optional[str] = None,
) -> schemas.SaveGenerationResponse:
    """Persist the finished workflow and return to the dashboard.

    On failure the workflow is left as is so saving can be retried.
    """
    data = workflow.to_create_data(title)
    saved = await save_generation(store, data, identity)
    workflow.return_to_dashboard()
    return saved


def open_generation(
    workflow: GenerationWorkflow,
    store: GenerationStore,
    generation_id: str,
    identity: Optional[schemas.UserIdentity],
) -> schemas.Generation:
    generation = store.get(generation_id, identity)
    workflow.load_generation(generation)
    return generation


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------

SCORING_TEXT_CATEGORIES = (
    ("hard_skills", "Hard skills"),
    ("soft_skills", "Soft skills"),
    ("experience_match", "Experience match"),
    ("position_match", "Position match"),
)


def format_scoring_text(result: schemas.ScoringResults) -> str:
    """Plain-text scoring summary meant to be pasted into a message to a recruiter."""
    scoring = result.scoring_result
    lines = ["Below are the vacancy and candidate scoring values:", ""]
    for number, (key, label) in enumerate(SCORING_TEXT_CATEGORIES, start=1):
        category = getattr(scoring.breakdown, key)
        lines.append(f"{number}. {label}: {category.score}%.")
        lines.append(f'"{category.summary}"')
        lines.append("")
    lines.append(f"5. Total: {scoring.total_score}%")
    lines.append("")
    lines.append(f'6. AI recommendation for the recruiter: "{scoring.recruiter_recommendation}"')
    return "\n".join(lines)


SORT_OPTIONS = ("date", "score", "company")


def filter_and_sort_generations(
    items: Iterable[schemas.GenerationSummary],
    query: Optional[str] = None,
    sort_by: str = "date",
) -> List[schemas.GenerationSummary]:
    if sort_by not in SORT_OPTIONS:
        raise ClientValidationError(
            f"sort_by must be one of: {', '.join(SORT_OPTIONS)}", field="sort_by"
        )

    selected = list(items)
    if query:
        needle = query.lower()
        selected = [
            item
            for item in selected
            if needle in item.job_title.lower()
            or needle in item.company_name.lower()
            or (item.title and needle in item.title.lower())
        ]

    if sort_by == "date":
        selected.sort(key=lambda item: item.created_at, reverse=True)
    elif sort_by == "score":
        selected.sort(key=lambda item: item.overall_score or 0, reverse=True)
    else:
        selected.sort(key=lambda item: item.company_name.lower())
    return selected
