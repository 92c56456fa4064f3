import math
import secrets
import string
from collections.abc import Mapping, Sequence
from copy import deepcopy
from typing import Any, TypeVar

from palchat.chat.models import User

T = TypeVar("T")

_SIZE_UNITS = ("B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")
_ID_ALPHABET = string.digits + string.ascii_lowercase


def str_to_bool(value: str | bool | int | None) -> bool:
    """Convert common truthy / falsy strings and values to `bool`."""

    truthy_values = {"true", "1", "yes", "y", "t", "on"}
    falsy_values = {"false", "0", "no", "n", "f", "off"}

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if not isinstance(value, str):
        raise ValueError(f"Cannot convert '{value}' to a boolean.")

    value = value.strip().lower()

    if value in truthy_values:
        return True
    if value in falsy_values:
        return False
    raise ValueError(f"Cannot convert '{value}' to a boolean.")


def format_bytes(size: float, fraction_digits: int = 2) -> str:
    """Return a text representation of ``size`` bytes, e.g. ``1.5 kB``."""

    if size <= 0:
        return "0 B"
    multiple = int(math.floor(math.log(size) / math.log(1024)))
    multiple = min(max(multiple, 0), len(_SIZE_UNITS) - 1)
    scaled = size / math.pow(1024, multiple)
    text = f"{scaled:.{fraction_digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[multiple]}"


def get_text_size_in_bytes(text: str) -> int:
    return len(text.encode("utf-8"))


def hash_code(text: str = "") -> int:
    """Return a stable, non-negative 32-bit hash of ``text``.

    Matches the classic ``(h << 5) - h + c`` string hash over UTF-16 code
    units so the same user id maps to the same colour on every client.
    """

    value = 0
    encoded = text.encode("utf-16-le", "surrogatepass")
    for idx in range(0, len(encoded), 2):
        unit = encoded[idx] | (encoded[idx + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def get_user_avatar_name_color(user: User, colors: Sequence[T]) -> T:
    """Return the avatar / name colour for ``user`` picked from ``colors``."""

    if not colors:
        raise ValueError("colors must not be empty")
    return colors[hash_code(user.id) % len(colors)]


def get_user_initials(user: User) -> str:
    first = (user.first_name or "")[:1]
    last = (user.last_name or "")[:1]
    return f"{first}{last}".upper().strip()


def get_user_name(user: User) -> str:
    return f"{user.first_name or ''} {user.last_name or ''}".strip()


def _same_kind(left: Any, right: Any) -> bool:
    numbers = (int, float)
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool)
    if isinstance(left, numbers) and isinstance(right, numbers):
        return True
    return type(left) is type(right)


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``target`` with properties from ``source`` merged in deeply.

    Existing values in ``target`` win unless missing or of a different kind;
    nested mappings are merged recursively. ``target`` itself is not modified.
    """

    out = deepcopy(dict(target))
    for key, value in (source or {}).items():
        if isinstance(value, Mapping):
            current = out.get(key)
            base = current if isinstance(current, Mapping) else {}
            out[key] = deep_merge(base, value)
        elif key not in out or not _same_kind(out[key], value):
            out[key] = deepcopy(value)
    return out


def rand_id(length: int = 9) -> str:
    """Return a short random base-36 identifier."""

    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


__all__ = [
    "deep_merge",
    "format_bytes",
    "get_text_size_in_bytes",
    "get_user_avatar_name_color",
    "get_user_initials",
    "get_user_name",
    "hash_code",
    "rand_id",
    "str_to_bool",
]
