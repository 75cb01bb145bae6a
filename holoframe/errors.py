"""
Error taxonomy for the HoloFrame API.

Every failure a handler can surface derives from HoloFrameError, which
carries the HTTP status and an optional upstream `detail` payload. The app
module renders these as:

  {"success": false, "error": <message>, "detail": <detail>}

Status codes are shared across kinds (500 for provider and storage
failures alike), so callers tell failures apart by the message text.
"""

from typing import Any, Optional


class HoloFrameError(Exception):
    status_code = 500

    def __init__(self, message: str, detail: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ConfigurationError(HoloFrameError):
    """A required environment variable or credential is absent."""


class RequestValidationError(HoloFrameError):
    status_code = 400


class AuthError(HoloFrameError):
    status_code = 401


class NotFoundError(HoloFrameError):
    status_code = 404


class InsufficientCreditError(HoloFrameError):
    status_code = 400


class ProviderError(HoloFrameError):
    """Upstream AI service rejected a request or reported a failed job."""


class ProviderTimeoutError(ProviderError, TimeoutError):
    """A polling loop hit its cap before the job reached a terminal state."""


class StorageError(HoloFrameError):
    """Download from a provider or upload to Supabase Storage failed."""
