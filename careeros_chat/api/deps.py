from typing import Annotated
from fastapi import Depends, Request

from careeros_chat.config import Settings
from careeros_chat.services.message_store import MessageStore
from careeros_chat.websocket.relay import ChatRelay


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with"""
    return request.app.state.settings


def get_relay(request: Request) -> ChatRelay:
    """The relay created by the app factory"""
    return request.app.state.relay


def get_message_store(request: Request) -> MessageStore:
    return request.app.state.message_store


# Type alias for dependency injection
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Relay = Annotated[ChatRelay, Depends(get_relay)]
Store = Annotated[MessageStore, Depends(get_message_store)]
