from pydantic import BaseModel
from typing import TypeVar, Generic, Optional
from enum import IntEnum


class ErrorCode(IntEnum):
    """Error codes shared by the HTTP envelope and WebSocket error frames"""
    SUCCESS = 0
    PARAM_ERROR = 1001
    AUTH_FAILED = 1002
    NOT_AUTHENTICATED = 1004
    UNSUPPORTED_TYPE = 1005
    RESOURCE_NOT_FOUND = 3001
    SERVER_ERROR = 5001
    STORE_UNAVAILABLE = 5003


ERROR_MESSAGES = {
    ErrorCode.SUCCESS: "success",
    ErrorCode.PARAM_ERROR: "Invalid parameters",
    ErrorCode.AUTH_FAILED: "Authentication failed / invalid token",
    ErrorCode.NOT_AUTHENTICATED: "Send an auth frame first",
    ErrorCode.UNSUPPORTED_TYPE: "Unsupported message type",
    ErrorCode.RESOURCE_NOT_FOUND: "Resource not found",
    ErrorCode.SERVER_ERROR: "Internal server error",
    ErrorCode.STORE_UNAVAILABLE: "Message store unavailable",
}


DataT = TypeVar("DataT")


class BaseResponse(BaseModel, Generic[DataT]):
    """Base response model for all API responses"""
    code: int = ErrorCode.SUCCESS
    message: str = "success"
    data: Optional[DataT] = None

    @classmethod
    def success(cls, data: Optional[DataT] = None, message: str = "success") -> "BaseResponse[DataT]":
        return cls(code=ErrorCode.SUCCESS, message=message, data=data)

    @classmethod
    def error(cls, code: ErrorCode, message: Optional[str] = None) -> "BaseResponse[None]":
        return cls(
            code=code,
            message=message or ERROR_MESSAGES.get(code, "Unknown error"),
            data=None,
        )
