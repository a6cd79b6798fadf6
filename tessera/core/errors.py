"""
Domain exceptions raised by the certificate pipeline and its clients.

Each exception carries the HTTP status the API layer answers with, so the
FastAPI exception handler in ``main.py`` can render any of them uniformly.
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for every error the certificate pipeline raises."""

    status_code: int = 500
    code: str = "PIPELINE_ERROR"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class ValidationInputError(PipelineError):
    """Caller supplied missing or malformed input."""

    status_code = 400
    code = "VALIDATION_INPUT_ERROR"


class NotFoundError(PipelineError):
    """Unknown certificate or institution id."""

    status_code = 404
    code = "NOT_FOUND"


class PreconditionError(PipelineError):
    """A pipeline stage was invoked before the stage it depends on completed."""

    status_code = 400
    code = "PRECONDITION_FAILED"


class ContentValidationError(PipelineError):
    """Pre-flight check of the uploaded metadata or image failed."""

    status_code = 502
    code = "CONTENT_VALIDATION_ERROR"


class UploadError(PipelineError):
    """The content store rejected an upload or could not be reached."""

    status_code = 502
    code = "UPLOAD_ERROR"


class LedgerError(PipelineError):
    """The ledger minting service failed or answered without a transaction hash."""

    status_code = 502
    code = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        upstream_body: Any = None,
    ):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.upstream_status is not None:
            data["upstream_status"] = self.upstream_status
        return data


class EncodingError(PipelineError):
    """The QR code image could not be produced."""

    status_code = 502
    code = "ENCODING_ERROR"


class PersistenceError(PipelineError):
    """The record store rejected a write."""

    status_code = 500
    code = "PERSISTENCE_ERROR"
