"""Exceptions raised by the history deriver and the template engine."""

from __future__ import annotations


class MalformedMessageError(ValueError):
    """Exception raised when a message is missing its id or author."""


class TemplateResolutionError(LookupError):
    """Exception raised when no chat template can be resolved for a model."""


class TemplateRenderError(RuntimeError):
    """Exception raised when a Jinja chat template fails to render."""


__all__ = [
    "MalformedMessageError",
    "TemplateRenderError",
    "TemplateResolutionError",
]
