"""Interface to the inference runtime that executes prompts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol, runtime_checkable

from .models import LoadedModelInfo


TokenCallback = Callable[[str], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Final text of a completion plus whatever timings the runtime reports."""

    text: str
    timings: Mapping[str, Any] = field(default_factory=dict)
    interrupted: bool = False


@runtime_checkable
class InferenceRuntime(Protocol):
    """Executes a fully templated prompt; token streaming is the runtime's job."""

    @property
    def model_info(self) -> LoadedModelInfo | None: ...

    async def completion(
        self, prompt: str, on_token: TokenCallback | None = None
    ) -> CompletionResult: ...

    async def stop_completion(self) -> None: ...


__all__ = ["CompletionResult", "InferenceRuntime", "TokenCallback"]
