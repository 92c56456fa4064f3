from __future__ import annotations

from datetime import datetime, timezone

import pytest

from palchat.chat.history import calculate_chat_messages, exclude_derived_message_props
from palchat.chat.models import (
    DateHeader,
    DerivedMessage,
    ImageMessage,
    Message,
    TextMessage,
    User,
)
from palchat.exceptions import MalformedMessageError


ME = User(id="me", first_name="Me")
ALICE = User(id="alice", first_name="Alice", last_name="Liddell")
BOB = User(id="bob")


def _ms(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


T0 = _ms(2025, 1, 2, 10, 0)


def _text(msg_id: str, author: User, created_at: int | None, text: str = "hi") -> TextMessage:
    return TextMessage(id=msg_id, author=author, created_at=created_at, text=text)


def _image(msg_id: str, author: User, created_at: int | None) -> ImageMessage:
    return ImageMessage(
        id=msg_id, author=author, created_at=created_at, uri=f"file:///{msg_id}.png"
    )


def _newest_first(*chronological: Message) -> list[Message]:
    return list(reversed(chronological))


def _derived(history) -> dict[str, DerivedMessage]:
    return {
        entry.id: entry
        for entry in history.chat_messages
        if isinstance(entry, DerivedMessage)
    }


def test_inserts_date_headers_between_gaps_and_days(formatter) -> None:
    messages = _newest_first(
        _text("a", ME, T0),
        _text("b", ME, T0 + 30_000),
        _text("c", ALICE, T0 + 60_000),
        _text("d", ALICE, T0 + 20 * 60_000),
        _text("e", ALICE, T0 + 24 * 60 * 60_000),
    )

    history = calculate_chat_messages(messages, ME, formatter=formatter)

    assert [entry.id for entry in history.chat_messages] == [
        "e",
        "Jan 3, 10:00",
        "d",
        "Jan 2, 10:20",
        "c",
        "b",
        "a",
        "Jan 2, 10:00",
    ]
    headers = [entry for entry in history.chat_messages if isinstance(entry, DateHeader)]
    assert all(header.id == header.text for header in headers)
    assert all(header.type == "date_header" for header in headers)


def test_grouping_flags_and_offsets(formatter) -> None:
    messages = _newest_first(
        _text("a", ME, T0),
        _text("b", ME, T0 + 30_000),
        _text("c", ALICE, T0 + 60_000),
        _text("d", ALICE, T0 + 20 * 60_000),
    )

    derived = _derived(calculate_chat_messages(messages, ME, formatter=formatter))

    assert derived["a"].next_message_in_group is True
    assert derived["a"].offset == 0
    assert derived["b"].next_message_in_group is False
    assert derived["b"].offset == 12
    assert derived["c"].next_message_in_group is False
    assert derived["d"].next_message_in_group is False
    assert derived["d"].offset == 12
    assert all(entry.show_status for entry in derived.values())


@pytest.mark.parametrize(
    "gap, grouped",
    [(0, True), (60_000, True), (60_001, False)],
)
def test_group_window_boundary(formatter, gap: int, grouped: bool) -> None:
    messages = _newest_first(_text("a", ALICE, T0), _text("b", ALICE, T0 + gap))

    derived = _derived(calculate_chat_messages(messages, ME, formatter=formatter))

    assert derived["a"].next_message_in_group is grouped
    assert derived["a"].offset == (0 if grouped else 12)


@pytest.mark.parametrize(
    "gap, expected_headers",
    [(899_999, 1), (900_000, 2)],
)
def test_idle_threshold_boundary(formatter, gap: int, expected_headers: int) -> None:
    messages = _newest_first(_text("a", ALICE, T0), _text("b", ALICE, T0 + gap))

    history = calculate_chat_messages(messages, ME, formatter=formatter)
    headers = [entry for entry in history.chat_messages if isinstance(entry, DateHeader)]

    assert len(headers) == expected_headers


def test_header_before_day_change_uses_later_message(formatter) -> None:
    late = _ms(2025, 1, 2, 23, 59)
    early = _ms(2025, 1, 3, 0, 1)
    messages = _newest_first(_text("a", ALICE, late), _text("b", ALICE, early))

    history = calculate_chat_messages(messages, ME, formatter=formatter)

    assert [entry.id for entry in history.chat_messages] == [
        "b",
        "Jan 3, 00:01",
        "a",
        "Jan 2, 23:59",
    ]


def test_header_for_today_shows_time_only(formatter) -> None:
    today = _ms(2025, 1, 10, 9, 5)
    history = calculate_chat_messages([_text("a", ALICE, today)], ME, formatter=formatter)

    assert history.chat_messages[-1] == DateHeader(id="09:05", text="09:05")


def test_custom_formats_are_used(formatter) -> None:
    history = calculate_chat_messages(
        [_text("a", ALICE, T0)],
        ME,
        date_format="DD/MM/YYYY",
        time_format="h:mm A",
        formatter=formatter,
    )

    assert history.chat_messages[-1].text == "02/01/2025, 10:00 AM"


def test_custom_date_header_text_overrides_formatting(formatter) -> None:
    seen: list[int] = []

    def header(timestamp: int) -> str:
        seen.append(timestamp)
        return f"at {timestamp}"

    messages = _newest_first(_text("a", ALICE, T0), _text("b", ALICE, T0 + 3_600_000))
    history = calculate_chat_messages(
        messages, ME, custom_date_header_text=header, formatter=formatter
    )

    assert [entry.id for entry in history.chat_messages] == [
        "b",
        f"at {T0 + 3_600_000}",
        "a",
        f"at {T0}",
    ]
    assert seen == [T0, T0 + 3_600_000]


def test_custom_date_header_returning_none_falls_back(formatter) -> None:
    history = calculate_chat_messages(
        [_text("a", ALICE, T0)],
        ME,
        custom_date_header_text=lambda _: None,
        formatter=formatter,
    )

    assert history.chat_messages[-1].text == "Jan 2, 10:00"


def test_messages_without_timestamps_skip_headers_and_grouping(formatter) -> None:
    messages = _newest_first(_text("a", ALICE, None), _text("b", ALICE, None))

    history = calculate_chat_messages(messages, ME, formatter=formatter)

    assert [entry.id for entry in history.chat_messages] == ["b", "a"]
    assert all(entry.offset == 12 for entry in history.chat_messages)
    assert not any(entry.next_message_in_group for entry in history.chat_messages)


def test_show_user_names_follows_name_groups(formatter) -> None:
    messages = _newest_first(
        _image("m1", ALICE, T0),
        _text("m2", ALICE, T0 + 10_000),
        _text("m3", ME, T0 + 20_000),
        _text("m4", BOB, T0 + 30_000),
        _text("m5", ALICE, T0 + 40_000),
        _text("m6", ALICE, T0 + 50_000),
        _text("m7", ALICE, T0 + 200_000),
    )

    derived = _derived(
        calculate_chat_messages(messages, ME, show_user_names=True, formatter=formatter)
    )

    assert {msg_id: entry.show_name for msg_id, entry in derived.items()} == {
        "m1": False,
        "m2": True,
        "m3": False,
        "m4": False,
        "m5": True,
        "m6": False,
        "m7": True,
    }


def test_names_hidden_when_disabled(formatter) -> None:
    messages = _newest_first(_text("a", ALICE, T0), _text("b", BOB, T0 + 1_000))

    derived = _derived(calculate_chat_messages(messages, ME, formatter=formatter))

    assert not any(entry.show_name for entry in derived.values())


def test_gallery_is_oldest_first(formatter) -> None:
    messages = _newest_first(
        _image("i1", ALICE, T0),
        _text("t1", ME, T0 + 1_000),
        _image("i2", ME, T0 + 2_000),
        _image("i3", ALICE, None),
    )

    history = calculate_chat_messages(messages, ME, formatter=formatter)

    assert [image.id for image in history.gallery] == ["i1", "i2", "i3"]
    assert history.gallery[0].uri == "file:///i1.png"


def test_derivation_is_idempotent(formatter) -> None:
    messages = _newest_first(
        _text("a", ALICE, T0),
        _image("b", ALICE, T0 + 5_000),
        _text("c", ME, T0 + 2 * 3_600_000),
    )

    first = calculate_chat_messages(messages, ME, show_user_names=True, formatter=formatter)
    second = calculate_chat_messages(messages, ME, show_user_names=True, formatter=formatter)

    assert first == second


def test_exclude_derived_props_restores_original(formatter) -> None:
    messages = _newest_first(
        _text("a", ALICE, T0),
        _image("b", ME, T0 + 5_000),
        _text("c", BOB, None),
    )

    history = calculate_chat_messages(messages, ME, formatter=formatter)
    restored = [
        exclude_derived_message_props(entry)
        for entry in history.chat_messages
        if isinstance(entry, DerivedMessage)
    ]

    assert restored == messages


def test_empty_history() -> None:
    history = calculate_chat_messages([], ME)

    assert history.chat_messages == ()
    assert history.gallery == ()


def test_rejects_message_without_author_id(formatter) -> None:
    messages = [_text("a", User(id=""), T0)]

    with pytest.raises(MalformedMessageError):
        calculate_chat_messages(messages, ME, formatter=formatter)


def test_rejects_message_without_id(formatter) -> None:
    with pytest.raises(MalformedMessageError):
        calculate_chat_messages([_text("", ALICE, T0)], ME, formatter=formatter)
