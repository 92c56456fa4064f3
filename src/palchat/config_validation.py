"""Helpers for validating runtime configuration."""

from __future__ import annotations

from collections.abc import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from palchat.chat.dates import SUPPORTED_LOCALES
from palchat.llm.templates import BUILTIN_TEMPLATES, TemplateRegistry
from palchat.settings import settings, template_overrides
from palchat.util import str_to_bool


def _normalise_text(value: object | None) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _validate_locale() -> Iterable[str]:
    language = _normalise_text(settings.get("LOCALE.language")).lower()
    if language and language.split("-", 1)[0] not in SUPPORTED_LOCALES:
        supported = ", ".join(sorted(SUPPORTED_LOCALES))
        yield f"LOCALE.language must be one of: {supported}."

    timezone = _normalise_text(settings.get("LOCALE.timezone"))
    if timezone:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            yield f"LOCALE.timezone '{timezone}' is not a valid IANA timezone."


def _validate_chat_settings() -> Iterable[str]:
    for key in ("CHAT.date_format", "CHAT.time_format"):
        value = settings.get(key)
        if value is not None and not isinstance(value, str):
            yield f"{key} must be a string."

    try:
        str_to_bool(settings.get("CHAT.show_user_names", False))
    except ValueError:
        yield "CHAT.show_user_names must be a boolean."


def _validate_templates() -> Iterable[str]:
    registry = TemplateRegistry(BUILTIN_TEMPLATES)
    try:
        registry.apply_overrides(template_overrides())
    except ValueError as exc:
        yield f"TEMPLATES.overrides is invalid: {exc}"


def validate_settings() -> list[str]:
    """Return a list of configuration validation error messages."""

    errors: list[str] = []
    errors.extend(_validate_locale())
    errors.extend(_validate_chat_settings())
    errors.extend(_validate_templates())
    return errors


__all__ = ["validate_settings"]
