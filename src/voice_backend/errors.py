"""Error taxonomy shared by the HTTP surface and the services behind it."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class VoiceBackendError(RuntimeError):
    """Base error carrying an HTTP status and a user-safe message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message}
        if self.detail is not None:
            payload["error"] = (
                self.detail if isinstance(self.detail, str) else str(self.detail)
            )
        return payload


class ValidationError(VoiceBackendError):
    """Raised when a required request field is missing or empty."""

    status_code = status.HTTP_400_BAD_REQUEST


class GenerationError(VoiceBackendError):
    """Raised when the chat-completion provider fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class SynthesisError(VoiceBackendError):
    """Raised when a speech provider cannot produce audio."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, provider: str | None = None, detail: Any = None):
        super().__init__(message, detail=detail)
        self.provider = provider


class NotFoundError(VoiceBackendError):
    """Raised for unknown audio filenames or correlation ids."""

    status_code = status.HTTP_404_NOT_FOUND


async def _handle_voice_backend_error(
    request: Request, exc: VoiceBackendError
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def install_error_handlers(app: FastAPI) -> None:
    """Render every `VoiceBackendError` as `{success: false, message, error}`."""

    app.add_exception_handler(VoiceBackendError, _handle_voice_backend_error)  # type: ignore[arg-type]


__all__ = [
    "GenerationError",
    "NotFoundError",
    "SynthesisError",
    "ValidationError",
    "VoiceBackendError",
    "install_error_handlers",
]
