"""palchat: chat history derivation and prompt templating for local models."""

from .chat.history import calculate_chat_messages, exclude_derived_message_props
from .llm.chat_template import apply_chat_template


__all__ = [
    "apply_chat_template",
    "calculate_chat_messages",
    "exclude_derived_message_props",
]
