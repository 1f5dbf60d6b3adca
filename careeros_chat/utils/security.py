from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError

from careeros_chat.config import Settings


def create_ws_token(
    conversation_id: int,
    user_id: int,
    settings: Settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a WebSocket connection token"""
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.ws_token_expire_seconds)
    data = {
        "conversation_id": conversation_id,
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": "ws",
    }
    return jwt.encode(
        data,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_ws_token(token: str, settings: Settings) -> Optional[dict]:
    """Decode a WebSocket token"""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("type") != "ws":
            return None
        return payload
    except JWTError:
        return None


def verify_ws_token(
    token: Optional[str],
    conversation_id: int,
    user_id: int,
    settings: Settings,
) -> bool:
    """Check a token was issued for exactly this user and conversation"""
    if not token:
        return False
    payload = decode_ws_token(token, settings)
    if not payload:
        return False
    return (
        payload.get("conversation_id") == conversation_id
        and payload.get("user_id") == user_id
    )
