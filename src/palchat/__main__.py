"""Command line entry point: render prompts and derived history from JSON files."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

import orjson

from palchat.chat.dates import default_formatter
from palchat.chat.history import calculate_chat_messages
from palchat.chat.models import User, messages_from_mappings
from palchat.config_validation import validate_settings
from palchat.exceptions import (
    MalformedMessageError,
    TemplateRenderError,
    TemplateResolutionError,
)
from palchat.llm.chat_template import apply_chat_template
from palchat.llm.models import ModelDescriptor
from palchat.llm.templates import default_registry
from palchat.settings import settings


logger = logging.getLogger(__name__)


def _load_json(path: str) -> Any:
    return orjson.loads(Path(path).read_bytes())


def _render(args: argparse.Namespace) -> int:
    turns = _load_json(args.file)
    if not isinstance(turns, list):
        raise ValueError("Expected a JSON list of {role, content} turns")

    registry = default_registry()
    template = registry.get(args.template)
    if args.no_generation_prompt:
        template = replace(template, add_generation_prompt=False)
    model = ModelDescriptor(id=args.template, chat_template=template)
    sys.stdout.write(apply_chat_template(turns, model, registry=registry))
    sys.stdout.write("\n")
    return 0


def _templates(_: argparse.Namespace) -> int:
    for name in default_registry().names():
        print(name)
    return 0


def _history(args: argparse.Namespace) -> int:
    rows = _load_json(args.file)
    if not isinstance(rows, list):
        raise ValueError("Expected a JSON list of messages (newest first)")

    history = calculate_chat_messages(
        messages_from_mappings(rows),
        User(id=args.user),
        date_format=settings.get("CHAT.date_format"),
        time_format=settings.get("CHAT.time_format"),
        show_user_names=args.show_names,
        formatter=default_formatter(),
    )
    payload = {
        "chat_messages": [entry.as_dict() for entry in history.chat_messages],
        "gallery": [{"id": image.id, "uri": image.uri} for image in history.gallery],
    }
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
    sys.stdout.write("\n")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="palchat")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render a conversation with a chat template")
    render.add_argument("template", help="Registered chat template name")
    render.add_argument("file", help="JSON file with a list of {role, content} turns")
    render.add_argument("--no-generation-prompt", action="store_true")
    render.set_defaults(handler=_render)

    templates = sub.add_parser("templates", help="List registered chat templates")
    templates.set_defaults(handler=_templates)

    history = sub.add_parser("history", help="Print derived chat history as JSON")
    history.add_argument("file", help="JSON file with messages, newest first")
    history.add_argument("--user", required=True, help="Id of the viewing user")
    history.add_argument("--show-names", action="store_true")
    history.set_defaults(handler=_history)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=str(settings.get("LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    for problem in validate_settings():
        logger.warning("Configuration problem: %s", problem)

    args = _build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except (TemplateResolutionError, TemplateRenderError) as exc:
        print(f"Cannot format conversation: {exc}", file=sys.stderr)
        return 2
    except (MalformedMessageError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
