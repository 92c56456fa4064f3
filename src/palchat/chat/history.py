"""Derive display-ready chat history from the canonical message list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from palchat.exceptions import MalformedMessageError
from palchat.util import get_user_name

from .dates import DateFormatter, default_formatter
from .models import (
    ChatHistory,
    DateHeader,
    DerivedMessage,
    ImageMessage,
    Message,
    PreviewImage,
    TextMessage,
    User,
)


logger = logging.getLogger(__name__)

GROUP_WINDOW_MS = 60_000
DATE_HEADER_THRESHOLD_MS = 900_000
GROUPED_OFFSET = 0
UNGROUPED_OFFSET = 12


@dataclass(slots=True)
class _NameState:
    """Carried across the chronological fold: a name waiting for a text message."""

    pending_name: bool = False


def _validate(messages: Sequence[Message], user: User) -> None:
    if not getattr(user, "id", None):
        raise MalformedMessageError("Viewing user is missing an id")
    for position, message in enumerate(messages):
        if not getattr(message, "id", None):
            raise MalformedMessageError(f"Message at position {position} is missing an id")
        author = getattr(message, "author", None)
        if author is None or not getattr(author, "id", None):
            raise MalformedMessageError(f"Message {message.id} is missing an author")


def _has_timestamp(message: Message | None) -> bool:
    return message is not None and message.created_at is not None


def _starts_name_group(message: Message, previous: Message | None) -> bool:
    if previous is None or message.author.id != previous.author.id:
        return True
    if _has_timestamp(message) and _has_timestamp(previous):
        return message.created_at - previous.created_at > GROUP_WINDOW_MS
    return False


def _resolve_show_name(
    message: Message,
    previous: Message | None,
    state: _NameState,
    *,
    is_mine: bool,
) -> bool:
    is_text = isinstance(message, TextMessage)
    show_name = False

    if not is_mine and _starts_name_group(message, previous):
        state.pending_name = False
        if is_text:
            show_name = True
        else:
            state.pending_name = True

    if is_text and state.pending_name:
        show_name = True
        state.pending_name = False

    return show_name


def calculate_chat_messages(
    messages: Sequence[Message],
    user: User,
    *,
    custom_date_header_text: Callable[[int], str | None] | None = None,
    date_format: str | None = None,
    time_format: str | None = None,
    show_user_names: bool = False,
    formatter: DateFormatter | None = None,
) -> ChatHistory:
    """Return derived chat entries (with date headers) and the image gallery.

    ``messages`` is the canonical newest-first list. The result keeps that
    order for ``chat_messages`` while ``gallery`` is oldest-first. Derived
    fields are recomputed from scratch on every call.
    """

    _validate(messages, user)
    fmt = formatter or default_formatter()

    def header_text(timestamp: int) -> str:
        text = custom_date_header_text(timestamp) if custom_date_header_text else None
        if text is None:
            text = fmt.verbose_date_time(
                timestamp, date_format=date_format, time_format=time_format
            )
        return text

    chronological = list(reversed(messages))
    entries: list[DerivedMessage | DateHeader] = []
    gallery: list[PreviewImage] = []
    state = _NameState()

    for idx, message in enumerate(chronological):
        is_first = idx == 0
        is_last = idx == len(chronological) - 1
        previous = None if is_first else chronological[idx - 1]
        next_message = None if is_last else chronological[idx + 1]
        is_mine = message.author.id == user.id

        show_name = False
        if show_user_names:
            show_name = _resolve_show_name(message, previous, state, is_mine=is_mine)

        crosses_threshold = False
        different_day = False
        in_group = False
        if _has_timestamp(message) and _has_timestamp(next_message):
            gap = next_message.created_at - message.created_at
            crosses_threshold = gap >= DATE_HEADER_THRESHOLD_MS
            different_day = not fmt.is_same_day(message.created_at, next_message.created_at)
            in_group = (
                message.author.id == next_message.author.id and gap <= GROUP_WINDOW_MS
            )

        if is_first and _has_timestamp(message):
            text = header_text(message.created_at)
            entries.append(DateHeader(id=text, text=text))

        entries.append(
            DerivedMessage(
                message=message,
                next_message_in_group=in_group,
                offset=GROUPED_OFFSET if in_group else UNGROUPED_OFFSET,
                show_name=(
                    not is_mine
                    and show_user_names
                    and show_name
                    and bool(get_user_name(message.author))
                ),
                show_status=True,
            )
        )

        if different_day or crosses_threshold:
            text = header_text(next_message.created_at)
            entries.append(DateHeader(id=text, text=text))

        if isinstance(message, ImageMessage):
            gallery.append(PreviewImage(id=message.id, uri=message.uri))

    entries.reverse()
    logger.debug(
        "Derived %d chat entries (%d images) from %d messages",
        len(entries),
        len(gallery),
        len(messages),
    )
    return ChatHistory(chat_messages=tuple(entries), gallery=tuple(gallery))


def exclude_derived_message_props(message: DerivedMessage) -> Message:
    """Strip presentation-only fields, returning the plain canonical message."""

    return message.message


__all__ = [
    "DATE_HEADER_THRESHOLD_MS",
    "GROUP_WINDOW_MS",
    "calculate_chat_messages",
    "exclude_derived_message_props",
]
