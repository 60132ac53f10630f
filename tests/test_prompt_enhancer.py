"""
Tests for the OpenAI prompt enhancer (fake client)
"""

from types import SimpleNamespace

import pytest

from src.core.exceptions import ConfigurationError
from src.services.prompt_enhancer import PromptEnhancer, build_model_context, clean_completion


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def enhancer_with(content):
    completions = FakeCompletions(content)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return PromptEnhancer(client=client), completions


def test_build_model_context():
    context = build_model_context(
        25,
        "Brazilian",
        {"gender": "female", "hairLength": "long", "hairColor": "brown", "eyeColor": "hazel"},
        {"faceShape": "heart"},
    )

    assert context.splitlines()[0] == "Model Information:"
    assert "- Age: 25" in context
    assert "- Nationality/Ethnicity: Brazilian" in context
    assert "- Hair: long brown" in context
    assert "- Face Shape: heart" in context


def test_clean_completion_strips_fences():
    assert clean_completion("```\nmirror selfie, beach\n```") == "mirror selfie, beach"
    assert clean_completion("  plain prompt ") == "plain prompt"


@pytest.mark.asyncio
async def test_enhance_sends_reference_image():
    enhancer, completions = enhancer_with("mirror selfie at the beach")

    prompt = await enhancer.enhance(
        "at the beach", age=25, reference_image_url="https://cdn.example.com/ref.png"
    )

    assert prompt == "mirror selfie at the beach"
    user_content = completions.calls[0]["messages"][1]["content"]
    assert user_content[1]["image_url"]["url"] == "https://cdn.example.com/ref.png"


@pytest.mark.asyncio
async def test_enhance_empty_answer_returns_none():
    enhancer, _ = enhancer_with("")

    assert await enhancer.enhance("at the beach") is None


@pytest.mark.asyncio
async def test_unconfigured_enhancer():
    enhancer = PromptEnhancer(client=None)

    assert enhancer.is_configured is False
    assert await enhancer.enhance("anything") is None
    with pytest.raises(ConfigurationError):
        await enhancer.enhance_free_form("base", "more")
