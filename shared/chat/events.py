"""Canonical chat feed types and inbound payload normalization."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from shared.chat.errors import MalformedPayload

MessageId = Union[int, str]

def parse_instant(value: Any) -> datetime:
    """
    Parse a serialized timestamp into an aware datetime.

    Accepts ISO-8601 strings (trailing ``Z`` or an explicit offset; naive
    values are taken as UTC) and numeric epoch milliseconds, which is how a
    JavaScript ``Date`` usually travels once it has been through JSON.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise MalformedPayload(f"Timestamp must not be a boolean: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedPayload(f"Timestamp out of range: {value!r}") from exc
    elif isinstance(value, str) and value.strip():
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError as exc:
            raise MalformedPayload(f"Unparsable timestamp: {value!r}") from exc
    else:
        raise MalformedPayload(f"Missing or unsupported timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Author:
    author_id: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class Message:
    message_id: MessageId
    text: str
    author_id: str
    created_at: datetime


@dataclass(frozen=True)
class FeedEntry:
    """A message plus the author display data captured when it was delivered."""

    message: Message
    author: Author

    @property
    def message_id(self) -> MessageId:
        return self.message.message_id

    @property
    def created_at(self) -> datetime:
        return self.message.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": {
                "id": self.message.message_id,
                "text": self.message.text,
                "userId": self.message.author_id,
                "createdAt": self.message.created_at.isoformat().replace("+00:00", "Z"),
            },
            "user": {
                "id": self.author.author_id,
                "name": self.author.name,
                "image": self.author.avatar_url,
            },
        }


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    display_name: str = ""


def _first(block: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in block and block[key] is not None:
            return block[key]
    return None


def _decode(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPayload("Payload is not valid UTF-8", payload) from exc
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedPayload("Payload is not valid JSON", payload) from exc
    if not isinstance(payload, dict):
        raise MalformedPayload("Payload root is not an object", payload)
    return payload


def create_feed_entry(
    *,
    message_id: MessageId,
    text: str,
    author_id: str,
    created_at: Any,
    name: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> FeedEntry:
    if message_id is None or isinstance(message_id, bool):
        raise MalformedPayload(f"Invalid message id: {message_id!r}")
    if not isinstance(message_id, (int, str)) or message_id == "":
        raise MalformedPayload(f"Invalid message id: {message_id!r}")
    if not isinstance(text, str) or not text:
        raise MalformedPayload("Message text is required")
    if author_id is None or author_id == "":
        raise MalformedPayload("Message author id is required")

    message = Message(
        message_id=message_id,
        text=text,
        author_id=str(author_id),
        created_at=parse_instant(created_at),
    )
    author = Author(
        author_id=str(author_id),
        name=str(name) if name else None,
        avatar_url=str(avatar_url) if avatar_url else None,
    )
    return FeedEntry(message=message, author=author)


def normalize_payload(payload: Any) -> FeedEntry:
    """
    Turn one inbound event into a FeedEntry.

    Expected shape::

        {
            "message": {"id": 3, "text": "hi", "userId": "u1",
                        "createdAt": "2024-01-02T10:00:00.000Z"},
            "user": {"id": "u1", "name": "Ada Lovelace", "image": "https://..."}
        }

    Raises MalformedPayload for anything else.
    """
    data = _decode(payload)

    message = data.get("message")
    if not isinstance(message, dict):
        raise MalformedPayload("Payload has no message object", payload)
    user = data.get("user")
    if user is None:
        user = data.get("author") or {}
    if not isinstance(user, dict):
        raise MalformedPayload("Payload user is not an object", payload)

    author_id = _first(message, "userId", "user_id", "authorId") or _first(user, "id")

    try:
        return create_feed_entry(
            message_id=_first(message, "id", "message_id"),
            text=message.get("text"),
            author_id=author_id,
            created_at=_first(message, "createdAt", "created_at"),
            name=_first(user, "name", "display_name"),
            avatar_url=_first(user, "image", "avatar_url"),
        )
    except MalformedPayload as exc:
        if exc.payload is None:
            exc.payload = payload
        raise


__all__ = [
    "Author",
    "Message",
    "MessageId",
    "FeedEntry",
    "SessionIdentity",
    "create_feed_entry",
    "normalize_payload",
    "parse_instant",
]
