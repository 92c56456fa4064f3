"""Chat template descriptors and the registry of known templates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from threading import Lock
from typing import Any, Iterable, Mapping

from palchat.exceptions import TemplateResolutionError
from palchat.settings import template_overrides


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChatTemplateConfig:
    """Delimiters and special tokens describing how turns become one prompt.

    ``chat_template`` optionally carries a Jinja source; when present it takes
    precedence over the delimiter fields.
    """

    name: str
    bos_token: str = ""
    eos_token: str = ""
    add_bos_token: bool = False
    add_eos_token: bool = False
    add_generation_prompt: bool = True
    system_prefix: str = ""
    system_suffix: str = ""
    user_prefix: str = ""
    user_suffix: str = ""
    assistant_prefix: str = ""
    assistant_suffix: str = ""
    system_prompt: str | None = None
    chat_template: str | None = None

    def prefix_for(self, role: str) -> str:
        return getattr(self, f"{role}_prefix")

    def suffix_for(self, role: str) -> str:
        return getattr(self, f"{role}_suffix")


BUILTIN_TEMPLATES: tuple[ChatTemplateConfig, ...] = (
    ChatTemplateConfig(
        name="danube2",
        bos_token="<s>",
        eos_token="</s>",
        add_eos_token=True,
        user_prefix="<|prompt|>",
        assistant_prefix="<|answer|>",
    ),
    ChatTemplateConfig(
        name="chatml",
        eos_token="<|im_end|>",
        system_prefix="<|im_start|>system\n",
        system_suffix="<|im_end|>\n",
        user_prefix="<|im_start|>user\n",
        user_suffix="<|im_end|>\n",
        assistant_prefix="<|im_start|>assistant\n",
        assistant_suffix="<|im_end|>\n",
        system_prompt="You are a helpful assistant.",
    ),
    ChatTemplateConfig(
        name="llama3",
        bos_token="<|begin_of_text|>",
        eos_token="<|eot_id|>",
        add_bos_token=True,
        system_prefix="<|start_header_id|>system<|end_header_id|>\n\n",
        system_suffix="<|eot_id|>",
        user_prefix="<|start_header_id|>user<|end_header_id|>\n\n",
        user_suffix="<|eot_id|>",
        assistant_prefix="<|start_header_id|>assistant<|end_header_id|>\n\n",
        assistant_suffix="<|eot_id|>",
    ),
    ChatTemplateConfig(
        name="phi3",
        bos_token="<s>",
        eos_token="<|endoftext|>",
        system_prefix="<|system|>\n",
        system_suffix="<|end|>\n",
        user_prefix="<|user|>\n",
        user_suffix="<|end|>\n",
        assistant_prefix="<|assistant|>\n",
        assistant_suffix="<|end|>\n",
    ),
    ChatTemplateConfig(
        name="gemma",
        bos_token="<bos>",
        eos_token="<eos>",
        add_bos_token=True,
        # Gemma has no system role; system turns are sent as user turns.
        system_prefix="<start_of_turn>user\n",
        system_suffix="<end_of_turn>\n",
        user_prefix="<start_of_turn>user\n",
        user_suffix="<end_of_turn>\n",
        assistant_prefix="<start_of_turn>model\n",
        assistant_suffix="<end_of_turn>\n",
    ),
    ChatTemplateConfig(
        name="zephyr",
        bos_token="<s>",
        eos_token="</s>",
        add_eos_token=True,
        system_prefix="<|system|>\n",
        user_prefix="\n<|user|>\n",
        assistant_prefix="\n<|assistant|>\n",
    ),
)


_FIELD_TYPES: dict[str, tuple[type, ...]] = {}
for _field in fields(ChatTemplateConfig):
    if _field.name in {"system_prompt", "chat_template"}:
        _FIELD_TYPES[_field.name] = (str, type(None))
    elif _field.name.startswith("add_"):
        _FIELD_TYPES[_field.name] = (bool,)
    else:
        _FIELD_TYPES[_field.name] = (str,)

_FIELD_ALIASES: dict[str, str] = {
    "isbeginningofsequence": "add_bos_token",
    "isendofsequence": "add_eos_token",
}
_FIELD_ALIASES.update({name.replace("_", ""): name for name in _FIELD_TYPES})


def _field_name(key: str) -> str:
    compact = str(key).replace("_", "").replace("-", "").lower()
    name = _FIELD_ALIASES.get(compact)
    if name is None:
        raise ValueError(f"Unknown chat template field '{key}'")
    return name


def merge_template(
    base: ChatTemplateConfig, overrides: Mapping[str, Any]
) -> ChatTemplateConfig:
    """Return ``base`` with ``overrides`` applied field by field.

    Keys may use ``snake_case`` or ``camelCase``. Unknown fields and values of
    the wrong type raise ``ValueError``.
    """

    changes: dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        name = _field_name(key)
        expected = _FIELD_TYPES[name]
        if not isinstance(value, expected):
            raise ValueError(
                f"Chat template field '{name}' expects {expected[0].__name__}, "
                f"got {type(value).__name__}"
            )
        changes[name] = value
    changes.pop("name", None)
    return replace(base, **changes) if changes else base


def template_from_mapping(name: str, data: Mapping[str, Any]) -> ChatTemplateConfig:
    return merge_template(ChatTemplateConfig(name=name), data)


class TemplateRegistry:
    """Lookup of chat templates by (case-insensitive) name."""

    def __init__(self, templates: Iterable[ChatTemplateConfig] = ()) -> None:
        self._templates: dict[str, ChatTemplateConfig] = {}
        self._lock = Lock()
        for template in templates:
            self.register(template)

    @staticmethod
    def _key(name: str) -> str:
        return str(name or "").strip().lower()

    def register(self, template: ChatTemplateConfig) -> None:
        key = self._key(template.name)
        if not key:
            raise ValueError("Chat template must have a name")
        with self._lock:
            self._templates[key] = template

    def apply_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> None:
        for name, data in overrides.items():
            key = self._key(name)
            base = self._templates.get(key) or ChatTemplateConfig(name=key)
            self.register(merge_template(base, data))
            logger.debug("Applied chat template override for '%s'", key)

    def get(self, name: str | None) -> ChatTemplateConfig:
        key = self._key(name or "")
        if not key:
            raise TemplateResolutionError("No chat template name given")
        template = self._templates.get(key)
        if template is None:
            raise TemplateResolutionError(f"Chat template '{name}' is not registered")
        return template

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._key(name) in self._templates

    def names(self) -> list[str]:
        return sorted(self._templates)


def build_default_registry() -> TemplateRegistry:
    """Return a registry with the built-in templates plus configured overrides."""

    registry = TemplateRegistry(BUILTIN_TEMPLATES)
    registry.apply_overrides(template_overrides())
    return registry


_REGISTRY: TemplateRegistry | None = None
_REGISTRY_LOCK = Lock()


def default_registry() -> TemplateRegistry:
    global _REGISTRY
    if _REGISTRY is not None:
        return _REGISTRY

    with _REGISTRY_LOCK:
        if _REGISTRY is None:
            _REGISTRY = build_default_registry()
        return _REGISTRY


def get_template(name: str | None) -> ChatTemplateConfig:
    return default_registry().get(name)


def register_template(template: ChatTemplateConfig) -> None:
    default_registry().register(template)


__all__ = [
    "BUILTIN_TEMPLATES",
    "ChatTemplateConfig",
    "TemplateRegistry",
    "build_default_registry",
    "default_registry",
    "get_template",
    "merge_template",
    "register_template",
    "template_from_mapping",
]
