"""Payload models exchanged with the messaging backend."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True)


class User(_Payload):
    id: int
    username: str


class Credentials(_Payload):
    username: str
    password: str


class AuthToken(_Payload):
    token: str


class Message(_Payload):
    id: int
    receiver_username: str
    content: str
    created_at: str
    is_read: bool


class UnreadCount(_Payload):
    count: int


class MarkReadResult(_Payload):
    success: bool


class NewMessageEvent(_Payload):
    """Push notification carrying one newly received message."""

    type: Literal["new_message"]
    data: Message


class UnreadCountEvent(_Payload):
    """Push notification carrying an unread-count snapshot."""

    type: Literal["unread_count"]
    data: UnreadCount


PushEvent = Annotated[
    NewMessageEvent | UnreadCountEvent,
    Field(discriminator="type"),
]

MESSAGE_LIST_ADAPTER: TypeAdapter[list[Message] | None] = TypeAdapter(
    list[Message] | None
)
PUSH_EVENT_ADAPTER: TypeAdapter[NewMessageEvent | UnreadCountEvent] = TypeAdapter(
    PushEvent
)
