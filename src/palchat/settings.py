from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent

logger = logging.getLogger(__name__)


def _resolve_config_dir() -> Path | None:
    env_override = os.environ.get("PALCHAT_CONFIG_DIR")
    candidates: list[Path] = []

    if env_override:
        candidates.append(Path(env_override).expanduser())

    candidates.append(PROJECT_ROOT / "config")
    candidates.append(PROJECT_ROOT.parent / "config")

    for candidate in candidates:
        expanded = candidate.expanduser()
        if expanded.is_dir():
            return expanded.resolve()

    if env_override:
        raise RuntimeError(
            f"PALCHAT_CONFIG_DIR points to '{env_override}', which is not a directory."
        )

    searched = ", ".join(str(path) for path in candidates)
    logger.debug("No configuration directory found (searched: %s)", searched)
    return None


CONFIG_DIR = _resolve_config_dir()


DEFAULTS: dict[str, Any] = {
    "LOG_LEVEL": "INFO",
    "LOCALE": {
        "language": "en",
        "timezone": None,
    },
    "CHAT": {
        "show_user_names": False,
        "date_format": None,
        "time_format": None,
    },
    "TEMPLATES": {
        "overrides": {},
    },
}


def _settings_files() -> list[Path]:
    if CONFIG_DIR is None:
        return []
    return [
        CONFIG_DIR / "settings.toml",
        CONFIG_DIR / ".secrets.toml",
        CONFIG_DIR / "settings.local.toml",
    ]


settings = Dynaconf(
    envvar_prefix="PALCHAT",
    settings_files=_settings_files(),
    environments=True,
    env_switcher="PALCHAT_ENV",
    load_dotenv=True,
    envvar_parse_values=True,
    merge_enabled=True,
    defaults=DEFAULTS,
)


_MISSING = object()


def _ensure_defaults(prefix: str, defaults: dict[str, Any]) -> None:
    for key, value in defaults.items():
        dotted = f"{prefix}.{key}" if prefix else key
        existing = settings.get(dotted, _MISSING)

        if isinstance(value, dict):
            if existing is _MISSING:
                settings.set(dotted, value.copy())
                existing = settings.get(dotted, _MISSING)
            # Only recurse into mappings so user-provided primitives survive.
            if isinstance(existing, Mapping):
                _ensure_defaults(dotted, value)
            continue

        if existing is _MISSING:
            settings.set(dotted, value)


_ensure_defaults("", DEFAULTS)


def _coerce_mapping(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, Mapping):
        return {str(k): v for k, v in value.items()}
    return {}


def _normalise_mapping_keys(data: dict[str, Any]) -> dict[str, Any]:
    normalised: dict[str, Any] = {}
    for key, value in data.items():
        key_str = str(key).replace("-", "_").lower()
        if isinstance(value, Mapping):
            value = _normalise_mapping_keys(_coerce_mapping(value))
        normalised[key_str] = value
    return normalised


def template_overrides() -> dict[str, dict[str, Any]]:
    """Return configured template overrides keyed by lower-cased template name."""

    raw = _coerce_mapping(settings.get("TEMPLATES.overrides", {}))
    return {
        str(name).strip().lower(): _normalise_mapping_keys(_coerce_mapping(fields))
        for name, fields in raw.items()
    }


settings.set(
    "LOCALE.language",
    str(settings.get("LOCALE.language") or "").strip().lower()
    or DEFAULTS["LOCALE"]["language"],
)

__all__ = ["settings", "template_overrides"]
