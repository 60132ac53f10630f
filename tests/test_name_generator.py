"""
Tests for model name suggestions
"""

from types import SimpleNamespace

import pytest

from src.services.name_generator import (
    FALLBACK_NAMES,
    NameGenerator,
    clean_name,
    generate_fallback_name,
)


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content):
    completions = FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_clean_name():
    assert clean_name('"Giulia"') == "Giulia"
    assert clean_name("```\nHana\n```") == "Hana"
    assert clean_name("  'Sofia'  ") == "Sofia"


def test_fallback_by_nationality():
    assert generate_fallback_name("Japanese") == "Sakura"
    assert generate_fallback_name("Mexican") == "Isabella"
    assert generate_fallback_name("Icelandic") in FALLBACK_NAMES
    assert generate_fallback_name(None) in FALLBACK_NAMES


@pytest.mark.asyncio
async def test_generate_uses_openai_answer():
    client, completions = fake_client('"Giulia"')
    generator = NameGenerator(client=client)

    name = await generator.generate(nationality="Italian", occupation="chef", gender="female")

    assert name == "Giulia"
    assert "Italian" in completions.calls[0]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_unusable_answer_falls_back():
    client, _ = fake_client("x" * 80)
    generator = NameGenerator(client=client)

    assert await generator.generate(nationality="Japan") == "Sakura"
