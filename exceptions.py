"""
Error taxonomy for the generation workflow and its collaborators.

Every error terminates at the step boundary that raised it; nothing here is
retried automatically.
"""
from typing import Any, Dict, Optional


class JobMatchError(Exception):
    """Base exception for all JobMatch errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}
        super().__init__(self.message)


class ClientValidationError(JobMatchError):
    """Local validation failed before any collaborator was contacted"""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        self.field = field

        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=error_details,
        )


class CollaboratorError(JobMatchError):
    """Base class for failures talking to an external AI service"""

    def __init__(
        self,
        message: str,
        collaborator: str,
        error_code: str = "COLLABORATOR_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["collaborator"] = collaborator
        self.collaborator = collaborator

        super().__init__(message=message, error_code=error_code, details=error_details)


class CollaboratorHTTPError(CollaboratorError):
    """Collaborator answered with a non-2xx status"""

    def __init__(self, collaborator: str, status_code: int, message: str, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        error_details["status_code"] = status_code
        self.status_code = status_code

        super().__init__(
            message=message,
            collaborator=collaborator,
            error_code="COLLABORATOR_HTTP_ERROR",
            details=error_details,
        )


class CollaboratorTimeoutError(CollaboratorError):
    """The call was aborted after its timeout elapsed"""

    def __init__(self, collaborator: str, timeout: float):
        super().__init__(
            message=(
                f"The {collaborator} service did not answer within {timeout:g} seconds. "
                "The file may be too large or too complex to process."
            ),
            collaborator=collaborator,
            error_code="COLLABORATOR_TIMEOUT",
            details={"timeout": timeout},
        )


class CollaboratorNetworkError(CollaboratorError):
    """The collaborator could not be reached at all"""

    def __init__(self, collaborator: str, error_message: str):
        super().__init__(
            message=f"Network error: unable to connect to the {collaborator} service",
            collaborator=collaborator,
            error_code="COLLABORATOR_NETWORK_ERROR",
            details={"original_error": error_message},
        )


class ResponseShapeError(JobMatchError):
    """A successful response failed structural validation"""

    def __init__(self, field: str, message: Optional[str] = None, collaborator: Optional[str] = None):
        self.field = field
        details: Dict[str, Any] = {"field": field}
        if collaborator:
            details["collaborator"] = collaborator

        super().__init__(
            message=message or f"Response is missing required field: {field}",
            error_code="RESPONSE_SHAPE_ERROR",
            details=details,
        )


class AuthorizationError(JobMatchError):
    """Missing or rejected identity"""

    def __init__(self, message: str = "User is not authenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="AUTHORIZATION_ERROR", details=details)


class GenerationNotFoundError(JobMatchError):
    """Generation does not exist or is not visible to the caller"""

    def __init__(self, generation_id: str):
        self.generation_id = generation_id
        super().__init__(
            message=f"Generation {generation_id} not found",
            error_code="GENERATION_NOT_FOUND",
            details={"generation_id": generation_id},
        )


class WorkflowError(JobMatchError):
    """A workflow transition or step precondition was rejected"""

    def __init__(self, step: str, message: str, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        error_details["step"] = step
        self.step = step

        super().__init__(message=message, error_code="WORKFLOW_ERROR", details=error_details)
