from careeros_chat.schemas.base import BaseResponse, ErrorCode

__all__ = [
    "BaseResponse",
    "ErrorCode",
]
