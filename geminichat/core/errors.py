"""
Error taxonomy surfaced at the HTTP boundary.
Each kind carries a status code and a short client-safe message; the underlying
store/model error is chained (raise ... from e) for logging only.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse


class ChatError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class UnauthorizedError(ChatError):
    """No/invalid session. Also used where existence must not leak."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class NotFoundError(ChatError):
    """Resource absent or owned by someone else."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class InputValidationError(ChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class UpstreamTransientError(ChatError):
    """Model rate limit / quota, surfaced only after retries are exhausted."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "AI service is busy. Please try again in a moment."


class UpstreamFatalError(ChatError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "AI service temporarily unavailable. Please try again later."


class InternalError(ChatError):
    default_detail = "Failed to process your message. Please try again."


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    headers = None
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )
