from __future__ import annotations

import string

import pytest

from palchat.chat.models import User
from palchat.util import (
    deep_merge,
    format_bytes,
    get_text_size_in_bytes,
    get_user_avatar_name_color,
    get_user_initials,
    get_user_name,
    hash_code,
    rand_id,
    str_to_bool,
)


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 B"),
        (-5, "0 B"),
        (512, "512 B"),
        (1024, "1 kB"),
        (1536, "1.5 kB"),
        (1_500_000, "1.43 MB"),
        (5 * 1024**3, "5 GB"),
    ],
)
def test_format_bytes(size: int, expected: str) -> None:
    assert format_bytes(size) == expected


def test_format_bytes_fraction_digits() -> None:
    assert format_bytes(1_500_000, fraction_digits=0) == "1 MB"


def test_text_size_counts_utf8_bytes() -> None:
    assert get_text_size_in_bytes("abc") == 3
    assert get_text_size_in_bytes("é") == 2


@pytest.mark.parametrize(
    "text, expected",
    [("", 0), ("a", 97), ("ab", 3105), ("hello", 99162322), ("\ud800", 55296)],
)
def test_hash_code(text: str, expected: int) -> None:
    assert hash_code(text) == expected


def test_hash_code_wraps_to_32_bits() -> None:
    value = hash_code("a fairly long user identifier that overflows")

    assert 0 <= value <= 2**31


def test_avatar_color_is_stable() -> None:
    colors = ["red", "green", "blue"]
    user = User(id="ab")

    assert get_user_avatar_name_color(user, colors) == "red"
    assert get_user_avatar_name_color(user, colors) == get_user_avatar_name_color(
        User(id="ab", first_name="Other"), colors
    )


@pytest.mark.parametrize(
    "user, initials, name",
    [
        (User(id="1", first_name="john", last_name="doe"), "JD", "john doe"),
        (User(id="2", last_name="Doe"), "D", "Doe"),
        (User(id="3", first_name="Ann"), "A", "Ann"),
        (User(id="4"), "", ""),
    ],
)
def test_user_initials_and_name(user: User, initials: str, name: str) -> None:
    assert get_user_initials(user) == initials
    assert get_user_name(user) == name


def test_deep_merge_keeps_existing_values() -> None:
    target = {"a": 1, "b": {"c": "x"}, "d": "text", "g": 1}
    source = {"a": 2, "b": {"c": "y", "e": 3}, "d": 5, "f": True, "g": 2.5}

    merged = deep_merge(target, source)

    assert merged == {"a": 1, "b": {"c": "x", "e": 3}, "d": 5, "f": True, "g": 1}
    assert target == {"a": 1, "b": {"c": "x"}, "d": "text", "g": 1}


def test_deep_merge_replaces_non_mapping_with_mapping() -> None:
    assert deep_merge({"a": "flat"}, {"a": {"nested": 1}}) == {"a": {"nested": 1}}


def test_rand_id() -> None:
    first = rand_id()

    assert len(first) == 9
    assert set(first) <= set(string.digits + string.ascii_lowercase)
    assert rand_id() != first


@pytest.mark.parametrize(
    "value, expected",
    [("yes", True), ("Off", False), (1, True), (0, False), (True, True)],
)
def test_str_to_bool(value, expected: bool) -> None:
    assert str_to_bool(value) is expected


def test_str_to_bool_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        str_to_bool("maybe")
