"""Message records consumed and produced by the history deriver."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Iterable, Mapping

from palchat.exceptions import MalformedMessageError


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class User:
    id: str
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None
    metadata: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class Message:
    """Base chat event. ``created_at`` is epoch milliseconds when present."""

    type: ClassVar[str] = "message"

    id: str
    author: User
    created_at: int | None = None
    updated_at: int | None = None
    status: str | None = None
    remote_id: str | None = None
    metadata: Mapping[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type
        return data


@dataclass(frozen=True, slots=True, kw_only=True)
class TextMessage(Message):
    type: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ImageMessage(Message):
    type: ClassVar[str] = "image"

    uri: str
    name: str = ""
    size: int = 0
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class FileMessage(Message):
    type: ClassVar[str] = "file"

    uri: str
    name: str = ""
    size: int = 0
    mime_type: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CustomMessage(Message):
    type: ClassVar[str] = "custom"


@dataclass(frozen=True, slots=True, kw_only=True)
class UnsupportedMessage(Message):
    type: ClassVar[str] = "unsupported"


@dataclass(frozen=True, slots=True)
class DerivedMessage:
    """A message plus presentation hints recomputed on every derivation."""

    message: Message
    next_message_in_group: bool
    offset: int
    show_name: bool
    show_status: bool = True

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def type(self) -> str:
        return self.message.type

    @property
    def author(self) -> User:
        return self.message.author

    @property
    def created_at(self) -> int | None:
        return self.message.created_at

    def as_dict(self) -> dict[str, Any]:
        data = self.message.as_dict()
        data.update(
            {
                "next_message_in_group": self.next_message_in_group,
                "offset": self.offset,
                "show_name": self.show_name,
                "show_status": self.show_status,
            }
        )
        return data


@dataclass(frozen=True, slots=True)
class DateHeader:
    """Synthetic divider entry; ``id`` and ``text`` are the formatted date."""

    type: ClassVar[str] = "date_header"

    id: str
    text: str

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "type": self.type}


@dataclass(frozen=True, slots=True)
class PreviewImage:
    id: str
    uri: str


@dataclass(frozen=True, slots=True)
class ChatHistory:
    """Derived, newest-first chat entries plus the oldest-first gallery."""

    chat_messages: tuple[DerivedMessage | DateHeader, ...] = field(default_factory=tuple)
    gallery: tuple[PreviewImage, ...] = field(default_factory=tuple)


_MESSAGE_KINDS: dict[str, type[Message]] = {
    kind.type: kind
    for kind in (TextMessage, ImageMessage, FileMessage, CustomMessage, UnsupportedMessage)
}


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _normalise_text(value: Any) -> str:
    return str(value or "").strip()


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedMessageError(f"Expected an integer, got {value!r}") from exc


def user_from_mapping(data: Mapping[str, Any]) -> User:
    """Validate a storage-shaped author mapping into a :class:`User`."""

    if not isinstance(data, Mapping):
        raise MalformedMessageError("Message author must be a mapping")
    user_id = _normalise_text(data.get("id"))
    if not user_id:
        raise MalformedMessageError("Message author is missing an id")
    return User(
        id=user_id,
        first_name=_pick(data, "first_name", "firstName"),
        last_name=_pick(data, "last_name", "lastName"),
        image_url=_pick(data, "image_url", "imageUrl"),
        metadata=data.get("metadata"),
    )


def message_from_mapping(data: Mapping[str, Any]) -> Message:
    """Validate a storage-shaped message mapping into a typed message.

    Both ``camelCase`` and ``snake_case`` keys are accepted. Messages with an
    unknown ``type`` become :class:`UnsupportedMessage`.
    """

    if not isinstance(data, Mapping):
        raise MalformedMessageError("Message must be a mapping")
    message_id = _normalise_text(data.get("id"))
    if not message_id:
        raise MalformedMessageError("Message is missing an id")
    author_data = data.get("author")
    if author_data is None:
        raise MalformedMessageError(f"Message {message_id} is missing an author")

    common: dict[str, Any] = {
        "id": message_id,
        "author": user_from_mapping(author_data),
        "created_at": _optional_int(_pick(data, "created_at", "createdAt")),
        "updated_at": _optional_int(_pick(data, "updated_at", "updatedAt")),
        "status": data.get("status"),
        "remote_id": _pick(data, "remote_id", "remoteId"),
        "metadata": data.get("metadata"),
    }

    kind = _normalise_text(data.get("type")) or "text"
    cls = _MESSAGE_KINDS.get(kind)
    if cls is None:
        logger.debug("Unknown message type '%s' for %s", kind, message_id)
        return UnsupportedMessage(**common)

    if cls is TextMessage:
        return TextMessage(text=str(data.get("text") or ""), **common)
    if cls is ImageMessage:
        return ImageMessage(
            uri=str(data.get("uri") or ""),
            name=str(data.get("name") or ""),
            size=_optional_int(data.get("size")) or 0,
            width=_optional_int(data.get("width")),
            height=_optional_int(data.get("height")),
            **common,
        )
    if cls is FileMessage:
        return FileMessage(
            uri=str(data.get("uri") or ""),
            name=str(data.get("name") or ""),
            size=_optional_int(data.get("size")) or 0,
            mime_type=_pick(data, "mime_type", "mimeType"),
            **common,
        )
    return cls(**common)


def messages_from_mappings(rows: Iterable[Mapping[str, Any]]) -> list[Message]:
    return [message_from_mapping(row) for row in rows]


__all__ = [
    "ChatHistory",
    "CustomMessage",
    "DateHeader",
    "DerivedMessage",
    "FileMessage",
    "ImageMessage",
    "Message",
    "PreviewImage",
    "TextMessage",
    "UnsupportedMessage",
    "User",
    "message_from_mapping",
    "messages_from_mappings",
    "user_from_mapping",
]
