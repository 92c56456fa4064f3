from __future__ import annotations

import pytest

from palchat.exceptions import TemplateResolutionError
from palchat.llm.templates import (
    BUILTIN_TEMPLATES,
    ChatTemplateConfig,
    TemplateRegistry,
    default_registry,
    get_template,
    merge_template,
    template_from_mapping,
)


def test_builtin_names_are_registered() -> None:
    registry = TemplateRegistry(BUILTIN_TEMPLATES)

    assert registry.names() == ["chatml", "danube2", "gemma", "llama3", "phi3", "zephyr"]


def test_lookup_is_case_insensitive() -> None:
    registry = TemplateRegistry(BUILTIN_TEMPLATES)

    assert registry.get(" Danube2 ").name == "danube2"
    assert "CHATML" in registry


@pytest.mark.parametrize("name", [None, "", "unknown"])
def test_lookup_failures_raise_resolution_error(name: str | None) -> None:
    with pytest.raises(TemplateResolutionError):
        TemplateRegistry(BUILTIN_TEMPLATES).get(name)


def test_merge_accepts_camel_case_and_sequence_aliases() -> None:
    base = ChatTemplateConfig(name="base")

    merged = merge_template(
        base,
        {
            "eosToken": "</s>",
            "isEndOfSequence": True,
            "isBeginningOfSequence": False,
            "addGenerationPrompt": False,
            "user_prefix": "<|prompt|>",
        },
    )

    assert merged.eos_token == "</s>"
    assert merged.add_eos_token is True
    assert merged.add_bos_token is False
    assert merged.add_generation_prompt is False
    assert merged.user_prefix == "<|prompt|>"
    assert merged.name == "base"
    assert base.eos_token == ""


def test_merge_rejects_unknown_fields_and_bad_types() -> None:
    base = ChatTemplateConfig(name="base")

    with pytest.raises(ValueError, match="Unknown"):
        merge_template(base, {"bogus": "x"})
    with pytest.raises(ValueError, match="expects bool"):
        merge_template(base, {"add_eos_token": "yes"})
    with pytest.raises(ValueError, match="expects str"):
        merge_template(base, {"eos_token": 1})


def test_overrides_update_builtins_and_add_new_templates() -> None:
    registry = TemplateRegistry(BUILTIN_TEMPLATES)

    registry.apply_overrides(
        {
            "danube2": {"add_bos_token": True},
            "Custom": {"user_prefix": "USER: ", "assistant_prefix": "BOT: "},
        }
    )

    assert registry.get("danube2").add_bos_token is True
    assert registry.get("danube2").user_prefix == "<|prompt|>"
    custom = registry.get("custom")
    assert custom == template_from_mapping(
        "custom", {"user_prefix": "USER: ", "assistant_prefix": "BOT: "}
    )


def test_default_registry_exposes_builtins() -> None:
    assert default_registry() is default_registry()
    assert get_template("danube2").eos_token == "</s>"
