"""Error taxonomy shared by the store, the gateway and the API."""

from typing import Any, Dict, Optional
from uuid import UUID


class ChatError(Exception):
    """Base class for every error the application reports to clients.

    ``session_id`` is set when the failure happened after a session was
    resolved, so a client can retry against that session.
    """

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.session_id: Optional[UUID] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        if self.session_id is not None:
            body["sessionId"] = str(self.session_id)
        return body


class InvalidRequest(ChatError):
    """Malformed or missing required fields."""

    status_code = 400
    error = "invalid_request"


class NotFound(ChatError):
    """Referenced session does not exist."""

    status_code = 404
    error = "not_found"


class CredentialError(ChatError):
    """A provider credential is absent or was rejected upstream."""

    status_code = 401
    error = "credential_error"

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(
            message,
            details
            or "Configure OPENAI_API_KEY or GOOGLE_GENERATIVE_AI_API_KEY and restart the server.",
        )


class GenerationFailed(ChatError):
    """The completion call failed or produced no content."""

    status_code = 500
    error = "generation_failed"


class StorageFailure(ChatError):
    """The persistence layer is unreachable or rejected an operation."""

    status_code = 500
    error = "storage_failure"
