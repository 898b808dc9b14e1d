"""
Generation task errors

Each error carries an ``error_code`` that the API layer turns into the
``{"status": "error", "error": ...}`` envelope.
"""
from typing import Any, Optional


class GenerationError(Exception):
    """Base error for the generation task lifecycle"""
    error_code = "generation_error"
    http_status = 500

    def __init__(self, message: str, error_code: Optional[str] = None, detail: Any = None):
        super().__init__(message)
        if error_code:
            self.error_code = error_code
        self.detail = detail


class TaskValidationError(GenerationError):
    """Missing or malformed input at creation time"""
    error_code = "validation_error"
    http_status = 400


class OwnershipError(GenerationError):
    """Caller tried to act on behalf of another owner"""
    error_code = "forbidden"
    http_status = 403


class TaskNotFoundError(GenerationError):
    """Task does not exist or is not visible to the caller"""
    error_code = "not_found"
    http_status = 404


class ProviderSubmissionError(GenerationError):
    """Provider rejected or errored on submit. Terminal for the task."""
    error_code = "provider_submission_failed"
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message, detail=body)
        self.status_code = status_code
        self.body = body

    def diagnostic(self) -> dict:
        """Payload stored in ``generation_tasks.error``"""
        return {"status_code": self.status_code, "body": self.body}


class ProviderStatusError(GenerationError):
    """Provider errored on a status fetch. Transient, never persisted."""
    error_code = "provider_status_failed"
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AssetMirrorError(GenerationError):
    """One asset could not be copied into system storage"""
    error_code = "asset_mirror_failed"
