"""A single conversation wired to the inference runtime."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Callable, Iterable

from palchat.llm.chat_template import apply_chat_template, build_conversation
from palchat.llm.models import ModelDescriptor
from palchat.llm.runtime import InferenceRuntime
from palchat.llm.templates import TemplateRegistry
from palchat.settings import settings
from palchat.util import rand_id, str_to_bool

from .dates import DateFormatter
from .history import calculate_chat_messages
from .models import ChatHistory, Message, TextMessage, User


logger = logging.getLogger(__name__)

DEFAULT_USER = User(id="y9d7f8pgn")
DEFAULT_ASSISTANT = User(id="h3o3lc5xj")


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatSession:
    """Holds the newest-first message list and runs one completion at a time."""

    def __init__(
        self,
        runtime: InferenceRuntime,
        model: ModelDescriptor | None,
        *,
        user: User = DEFAULT_USER,
        assistant: User = DEFAULT_ASSISTANT,
        messages: Iterable[Message] = (),
        system_prompt: str | None = None,
        registry: TemplateRegistry | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.runtime = runtime
        self.model = model
        self.user = user
        self.assistant = assistant
        self.system_prompt = system_prompt
        self._registry = registry
        self._clock = clock
        self._messages: list[Message] = list(messages)
        self._lock = asyncio.Lock()

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_inferencing(self) -> bool:
        return self._lock.locked()

    def add_message(self, message: Message) -> None:
        self._messages.insert(0, message)

    def replace_message(self, message: Message) -> None:
        for idx, existing in enumerate(self._messages):
            if existing.id == message.id:
                self._messages[idx] = message
                return
        raise KeyError(message.id)

    def prompt_for_history(self) -> str:
        """Return the prompt the runtime would receive for the current history."""

        context = self.runtime.model_info
        turns = build_conversation(
            self._messages,
            self.model,
            user=self.user,
            assistant=self.assistant,
            system_prompt=self.system_prompt,
            context=context,
            registry=self._registry,
        )
        return apply_chat_template(turns, self.model, context, registry=self._registry)

    async def send(self, text: str) -> TextMessage:
        """Append a user message and stream the assistant's reply into history."""

        if self._lock.locked():
            raise RuntimeError("A completion is already in progress")

        async with self._lock:
            self.add_message(
                TextMessage(
                    id=rand_id(),
                    author=self.user,
                    created_at=self._clock(),
                    text=text,
                )
            )
            prompt = self.prompt_for_history()

            reply = TextMessage(
                id=rand_id(),
                author=self.assistant,
                created_at=self._clock(),
                text="",
            )
            chunks: list[str] = []
            added = False

            def on_token(token: str) -> None:
                nonlocal reply, added
                chunks.append(token)
                reply = replace(reply, text="".join(chunks))
                if added:
                    self.replace_message(reply)
                else:
                    self.add_message(reply)
                    added = True

            result = await self.runtime.completion(prompt, on_token)

            metadata: dict[str, Any] = dict(reply.metadata or {})
            if result.timings:
                metadata["timings"] = dict(result.timings)
            if result.interrupted:
                metadata["interrupted"] = True
            reply = replace(
                reply,
                text=result.text or reply.text,
                metadata=metadata or None,
            )
            if added:
                self.replace_message(reply)
            else:
                self.add_message(reply)

            logger.debug("Completion finished with %d streamed tokens", len(chunks))
            return reply

    async def stop(self) -> None:
        if self._lock.locked():
            await self.runtime.stop_completion()

    def derive(
        self,
        *,
        formatter: DateFormatter | None = None,
        show_user_names: bool | None = None,
    ) -> ChatHistory:
        if show_user_names is None:
            show_user_names = str_to_bool(settings.get("CHAT.show_user_names") or False)
        return calculate_chat_messages(
            self._messages,
            self.user,
            date_format=settings.get("CHAT.date_format"),
            time_format=settings.get("CHAT.time_format"),
            show_user_names=show_user_names,
            formatter=formatter,
        )


__all__ = ["ChatSession", "DEFAULT_ASSISTANT", "DEFAULT_USER"]
