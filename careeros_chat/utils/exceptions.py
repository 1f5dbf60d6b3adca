from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from careeros_chat.schemas.base import ErrorCode, ERROR_MESSAGES


class APIException(Exception):
    """Custom API exception"""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.SERVER_ERROR,
        message: str = None,
        status_code: int = 400,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "Unknown error")
        self.status_code = status_code
        super().__init__(self.message)


class ValidationException(APIException):
    """Validation exception"""

    def __init__(self, message: str = None):
        super().__init__(
            code=ErrorCode.PARAM_ERROR,
            message=message or "Invalid parameters",
            status_code=400,
        )


class StoreUnavailableException(APIException):
    """Message store (Redis) could not be reached"""

    def __init__(self, message: str = None):
        super().__init__(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=message or "Message store unavailable",
            status_code=503,
        )


class ProtocolError(Exception):
    """A WebSocket frame the relay refuses to act on.

    Raised while parsing or dispatching a frame and turned into an
    ``{"type": "error", ...}`` frame for the sending socket only.
    """

    def __init__(self, code: ErrorCode, reason: str, message: Optional[str] = None):
        self.code = code
        self.reason = reason
        self.message = message or ERROR_MESSAGES.get(code, "Unknown error")
        super().__init__(f"{reason}: {self.message}")


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handler for APIException"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "data": None,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for generic exceptions"""
    return JSONResponse(
        status_code=500,
        content={
            "code": ErrorCode.SERVER_ERROR,
            "message": str(exc) if request.app.debug else "Internal server error",
            "data": None,
        },
    )
