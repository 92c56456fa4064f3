"""Chat prompt assembly from role-tagged turns and a model's chat template."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Literal, Mapping, NoReturn, Sequence, cast

from jinja2 import Template, TemplateError
from jinja2.sandbox import ImmutableSandboxedEnvironment

from palchat.chat.models import Message, TextMessage, User
from palchat.exceptions import TemplateRenderError, TemplateResolutionError

from .models import LoadedModelInfo, ModelDescriptor
from .templates import ChatTemplateConfig, TemplateRegistry, default_registry


logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]
ROLES: tuple[str, ...] = ("system", "user", "assistant")


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One role-tagged turn of a conversation."""

    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def _coerce_chat_messages(
    messages: Iterable[ChatMessage | Mapping[str, Any]],
) -> list[ChatMessage]:
    normalised: list[ChatMessage] = []
    for raw in messages:
        if isinstance(raw, ChatMessage):
            normalised.append(raw)
            continue
        data = cast(Mapping[str, Any], raw)
        role = str(data.get("role") or "").strip().lower()
        if role not in ROLES:
            raise ValueError(f"Unsupported chat role '{data.get('role')}'")
        content = data.get("content")
        normalised.append(ChatMessage(role=cast(Role, role), content=str(content or "")))
    return normalised


def resolve_template(
    model: ModelDescriptor | None,
    context: LoadedModelInfo | None = None,
    *,
    registry: TemplateRegistry | None = None,
) -> ChatTemplateConfig:
    """Return the chat template for ``model``.

    The model's bound config wins, then its registered template name, then a
    Jinja template embedded in the loaded model file.
    """

    if model is not None and model.chat_template is not None:
        return model.chat_template

    if model is not None and model.template_name:
        return (registry or default_registry()).get(model.template_name)

    if context is not None and context.chat_template:
        logger.debug("Using chat template embedded in the loaded model")
        return ChatTemplateConfig(name="embedded", chat_template=context.chat_template)

    model_id = model.id if model is not None else "<none>"
    raise TemplateResolutionError(f"Model '{model_id}' has no chat template")


def _render_delimited(turns: Sequence[ChatMessage], template: ChatTemplateConfig) -> str:
    parts: list[str] = []
    if template.add_bos_token:
        parts.append(template.bos_token)

    # The EOS token closes the previous turn, so it is emitted before each
    # turn after the first and before the generation prompt.
    emitted = False
    for turn in turns:
        if emitted and template.add_eos_token:
            parts.append(template.eos_token)
        parts.append(template.prefix_for(turn.role))
        parts.append(turn.content)
        parts.append(template.suffix_for(turn.role))
        emitted = True

    if template.add_generation_prompt:
        if emitted and template.add_eos_token:
            parts.append(template.eos_token)
        parts.append(template.assistant_prefix)

    return "".join(parts)


def _raise_exception(message: str) -> NoReturn:
    raise TemplateError(message)


@lru_cache(maxsize=32)
def _compile_template(source: str) -> Template:
    env = ImmutableSandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)
    env.globals["raise_exception"] = _raise_exception
    return env.from_string(source)


def _render_jinja(turns: Sequence[ChatMessage], template: ChatTemplateConfig) -> str:
    source = template.chat_template or ""
    try:
        compiled = _compile_template(source)
        return compiled.render(
            messages=[turn.as_dict() for turn in turns],
            bos_token=template.bos_token,
            eos_token=template.eos_token,
            add_generation_prompt=template.add_generation_prompt,
        )
    except TemplateError as exc:
        raise TemplateRenderError(
            f"Chat template '{template.name}' failed to render: {exc}"
        ) from exc


def render_chat_prompt(
    messages: Iterable[ChatMessage | Mapping[str, Any]],
    template: ChatTemplateConfig,
) -> str:
    """Render ``messages`` with ``template`` into a single prompt string."""

    turns = _coerce_chat_messages(messages)
    if template.chat_template:
        return _render_jinja(turns, template)
    return _render_delimited(turns, template)


def apply_chat_template(
    messages: Iterable[ChatMessage | Mapping[str, Any]],
    model: ModelDescriptor | None,
    context: LoadedModelInfo | None = None,
    *,
    registry: TemplateRegistry | None = None,
) -> str:
    """Format ``messages`` for ``model``.

    Raises :class:`TemplateResolutionError` when no template can be resolved;
    unformatted text is never returned.
    """

    template = resolve_template(model, context, registry=registry)
    logger.debug("Applying chat template '%s'", template.name)
    return render_chat_prompt(messages, template)


def convert_to_chat_messages(
    messages: Sequence[Message],
    *,
    user: User,
    assistant: User,
) -> list[ChatMessage]:
    """Map the newest-first canonical list to oldest-first template turns.

    Only text messages take part. The assistant's messages become
    ``assistant`` turns, the user's become ``user`` turns and anything else
    is passed along as ``system``.
    """

    turns: list[ChatMessage] = []
    for message in reversed(messages):
        if not isinstance(message, TextMessage):
            continue
        if message.author.id == assistant.id:
            role: Role = "assistant"
        elif message.author.id == user.id:
            role = "user"
        else:
            role = "system"
        turns.append(ChatMessage(role=role, content=message.text))
    return turns


def build_conversation(
    messages: Sequence[Message],
    model: ModelDescriptor | None,
    *,
    user: User,
    assistant: User,
    system_prompt: str | None = None,
    context: LoadedModelInfo | None = None,
    registry: TemplateRegistry | None = None,
) -> list[ChatMessage]:
    """Return template turns for ``messages`` led by the system prompt, if any."""

    turns = convert_to_chat_messages(messages, user=user, assistant=assistant)
    prompt = system_prompt
    if prompt is None:
        prompt = resolve_template(model, context, registry=registry).system_prompt
    if prompt:
        turns.insert(0, ChatMessage(role="system", content=prompt))
    return turns


__all__ = [
    "ChatMessage",
    "ROLES",
    "apply_chat_template",
    "build_conversation",
    "convert_to_chat_messages",
    "render_chat_prompt",
    "resolve_template",
]
