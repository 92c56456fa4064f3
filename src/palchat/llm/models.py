"""Model descriptors and display helpers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from palchat.exceptions import TemplateResolutionError
from palchat.util import deep_merge

from .templates import (
    ChatTemplateConfig,
    TemplateRegistry,
    default_registry,
    merge_template,
    template_from_mapping,
)


logger = logging.getLogger(__name__)

BILLION = 1e9
DISK_HEADROOM_BYTES = 1e7

DEFAULT_MODEL: dict[str, Any] = {
    "name": "",
    "params": 0.0,
    "template_name": "",
}


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """A model the user can run. ``size`` is in GB and ``params`` in billions."""

    id: str
    name: str = ""
    size: str | float = "0"
    params: float | None = None
    chat_template: ChatTemplateConfig | None = None
    template_name: str | None = None


@dataclass(frozen=True, slots=True)
class LoadedModelInfo:
    """What the inference runtime reports about the loaded model."""

    size: int
    n_params: int
    chat_template: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LoadedModelInfo":
        size = data.get("size")
        n_params = data.get("n_params", data.get("nParams"))
        if isinstance(size, bool) or not isinstance(size, (int, float)):
            raise ValueError(f"Loaded model size must be a number, got {size!r}")
        if isinstance(n_params, bool) or not isinstance(n_params, (int, float)):
            raise ValueError(f"Loaded model nParams must be a number, got {n_params!r}")
        template = data.get("chat_template", data.get("chatTemplate"))
        return cls(
            size=int(size),
            n_params=int(n_params),
            chat_template=str(template) if template else None,
        )


def _format_number(value: float | int | str) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _parse_size(value: str | float | int | None) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def round_to_billion(num: float) -> float:
    return math.floor((num / BILLION) * 10 + 0.5) / 10


def bytes_to_gb(size: float) -> str:
    """Return ``size`` bytes as decimal gigabytes with two decimals."""

    return f"{size / 1000**3:.2f}"


def get_model_description(
    model: ModelDescriptor,
    is_active_model: bool,
    info: LoadedModelInfo | None = None,
) -> str:
    if is_active_model and info is not None:
        size = f"{bytes_to_gb(info.size)} GB"
        params = f"{_format_number(round_to_billion(info.n_params))} B"
    else:
        size = f"{_format_number(model.size)} GB"
        params = f"{_format_number(model.params)} B" if model.params else "N/A"

    return f"Size: {size} | Parameters: {params}"


def has_enough_space(model: ModelDescriptor, free_disk_bytes: float) -> bool:
    """Return whether ``free_disk_bytes`` can hold ``model`` plus headroom."""

    required_gb = _parse_size(model.size)
    if required_gb is None or required_gb <= 0:
        logger.error("Invalid model size: %r", model.size)
        return False

    required_bytes = required_gb * BILLION + DISK_HEADROOM_BYTES
    return required_bytes <= free_disk_bytes


def _has_formatting(template: ChatTemplateConfig) -> bool:
    delimiters = (
        template.system_prefix,
        template.system_suffix,
        template.user_prefix,
        template.user_suffix,
        template.assistant_prefix,
        template.assistant_suffix,
    )
    return any(delimiters) or bool(template.chat_template)


def _inline_template(
    fields: dict[str, Any], model_id: str, registry: TemplateRegistry
) -> ChatTemplateConfig:
    name = str(fields.pop("name", "") or "").strip()
    if name and name in registry:
        return merge_template(registry.get(name), fields)

    template = template_from_mapping(name or model_id, fields)
    if not _has_formatting(template):
        raise TemplateResolutionError(
            f"Chat template for model '{model_id}' names no registered template "
            "and defines no delimiters"
        )
    return template


def model_from_mapping(
    data: Mapping[str, Any], *, registry: TemplateRegistry | None = None
) -> ModelDescriptor:
    """Build a descriptor from a stored model entry.

    Entries persisted by older versions may lack newer fields; those are
    filled from :data:`DEFAULT_MODEL` without overwriting stored values.
    An inline ``chatTemplate`` naming a registered template is applied on
    top of that template.
    """

    merged = deep_merge(data, DEFAULT_MODEL)
    model_id = str(merged.get("id") or "").strip()
    if not model_id:
        raise ValueError("Model entry is missing an id")

    template = merged.get("chat_template") or merged.get("chatTemplate")
    chat_template: ChatTemplateConfig | None = None
    template_name: str | None = None
    if isinstance(template, str):
        template_name = template
    elif isinstance(template, Mapping) and template:
        chat_template = _inline_template(
            dict(template), model_id, registry or default_registry()
        )

    params = merged.get("params")
    return ModelDescriptor(
        id=model_id,
        name=str(merged.get("name") or ""),
        size=merged.get("size") or "0",
        params=float(params) if params else None,
        chat_template=chat_template,
        template_name=template_name or merged.get("template_name") or None,
    )


__all__ = [
    "LoadedModelInfo",
    "ModelDescriptor",
    "bytes_to_gb",
    "get_model_description",
    "has_enough_space",
    "model_from_mapping",
    "round_to_billion",
]
