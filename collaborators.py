"""HTTP clients for the external AI services."""
import time
from typing import Any, Optional

import httpx
import structlog

from exceptions import (
    CollaboratorHTTPError,
    CollaboratorNetworkError,
    CollaboratorTimeoutError,
    ResponseShapeError,
)
from observability import METRICS_NAMESPACE, metric_scope
from schemas import JobData, LetterCustomization, ResumeData
from settings import Settings

logger = structlog.get_logger(__name__)

RESUME_PARSER = "resume_parser"
JOB_EXTRACTOR = "job_extractor"
LETTER_GENERATOR = "letter_generator"
SCORING = "scoring"


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    text = response.text.strip()
    if text:
        return text
    return f"HTTP Error: {response.status_code} {response.reason_phrase}"


class CollaboratorClient:
    """Thin async client around the four AI endpoints.

    Calls are never retried; each failure is mapped onto the collaborator
    error taxonomy and left to the caller.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._client = httpx.AsyncClient(transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    @metric_scope
    async def _post(
        self,
        collaborator: str,
        url: str,
        timeout: float,
        *,
        json: Optional[dict] = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
        metrics=None,
    ) -> Any:
        metrics.set_namespace(METRICS_NAMESPACE)
        metrics.put_dimensions({"Collaborator": collaborator})
        metrics.put_metric("collaborator_calls", 1, "Count")

        log = logger.bind(collaborator=collaborator)
        log.info("Calling collaborator", url=url, timeout=timeout)
        started = time.monotonic()

        try:
            response = await self._client.post(url, json=json, data=data, files=files, timeout=timeout)
        except httpx.TimeoutException as e:
            metrics.put_metric("collaborator_failures", 1, "Count")
            log.error("Collaborator timed out", error=str(e))
            raise CollaboratorTimeoutError(collaborator, timeout) from e
        except httpx.TransportError as e:
            metrics.put_metric("collaborator_failures", 1, "Count")
            log.error("Collaborator unreachable", error=str(e))
            raise CollaboratorNetworkError(collaborator, str(e)) from e

        elapsed = time.monotonic() - started
        metrics.put_metric("collaborator_latency", elapsed * 1000, "Milliseconds")

        if not response.is_success:
            metrics.put_metric("collaborator_failures", 1, "Count")
            message = _error_message(response)
            log.error("Collaborator returned an error", status_code=response.status_code, message=message)
            raise CollaboratorHTTPError(collaborator, response.status_code, message)

        try:
            payload = response.json()
        except ValueError as e:
            metrics.put_metric("collaborator_failures", 1, "Count")
            log.error("Collaborator returned a non-JSON body", status_code=response.status_code)
            raise ResponseShapeError(
                "body", message="Response is not valid JSON", collaborator=collaborator
            ) from e

        log.info("Collaborator responded", status_code=response.status_code, elapsed=round(elapsed, 3))
        return payload

    async def parse_resume(self, content: bytes, filename: str, content_type: str, user_id: str) -> Any:
        """Send the original file bytes to the résumé parser."""
        storage_path = f"resume_{user_id}_{int(time.time() * 1000)}_{filename}"
        return await self._post(
            RESUME_PARSER,
            self.settings.resume_parser_url,
            self.settings.resume_parse_timeout,
            data={"user_id": user_id, "File_path": storage_path},
            files={"file_itself": (filename, content, content_type)},
        )

    async def extract_job(self, vacancy_url: str, user_id: str) -> Any:
        return await self._post(
            JOB_EXTRACTOR,
            self.settings.job_extractor_url,
            self.settings.collaborator_timeout,
            json={"vacancy_url": vacancy_url, "user_id": user_id},
        )

    async def generate_letter(
        self,
        resume: ResumeData,
        job: JobData,
        user_id: str,
        customization: LetterCustomization,
    ) -> Any:
        return await self._post(
            LETTER_GENERATOR,
            self.settings.letter_generator_url,
            self.settings.collaborator_timeout,
            json={
                "resume_data": resume.model_dump(mode="json"),
                "job_data": job.model_dump(mode="json"),
                "user_id": user_id,
                "customization": customization.model_dump(mode="json"),
            },
        )

    async def score_match(self, resume: ResumeData, job: JobData, user_id: str) -> Any:
        return await self._post(
            SCORING,
            self.settings.scoring_url,
            self.settings.collaborator_timeout,
            json={
                "resume_data": resume.model_dump(mode="json"),
                "job_data": job.model_dump(mode="json"),
                "user_id": user_id,
            },
        )
