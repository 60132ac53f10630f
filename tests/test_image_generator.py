"""
Tests for the image provider chain
"""

import pytest

from src.core.exceptions import GenerationError, ProviderUnavailableError
from src.services.image_generator import ImageGenerator, Provider


class FakeProvider:
    def __init__(self, urls=None, error=None, configured=True):
        self.urls = urls or []
        self.error = error
        self.is_configured = configured
        self.calls = 0

    async def generate_images(self, prompt, negative_prompt, num_images, reference_image_url, on_image):
        self.calls += 1
        if self.error:
            raise self.error
        return self.urls


@pytest.mark.asyncio
async def test_first_provider_wins():
    first = FakeProvider(urls=["a"])
    second = FakeProvider(urls=["b"])
    generator = ImageGenerator([Provider("first", first), Provider("second", second)])

    assert await generator.generate_images("prompt") == ["a"]
    assert second.calls == 0


@pytest.mark.asyncio
async def test_unavailable_provider_falls_through():
    first = FakeProvider(error=ProviderUnavailableError("429"))
    second = FakeProvider(urls=["b"])
    generator = ImageGenerator([Provider("first", first), Provider("second", second)])

    assert await generator.generate_images("prompt") == ["b"]
    assert first.calls == 1


@pytest.mark.asyncio
async def test_unconfigured_providers_skipped():
    skipped = FakeProvider(urls=["a"], configured=False)
    used = FakeProvider(urls=["b"])
    generator = ImageGenerator([Provider("skipped", skipped), Provider("used", used)])

    assert await generator.generate_images("prompt") == ["b"]
    assert skipped.calls == 0


@pytest.mark.asyncio
async def test_all_failed():
    generator = ImageGenerator([
        Provider("first", FakeProvider(error=GenerationError("boom"))),
        Provider("second", FakeProvider(error=ProviderUnavailableError("503"))),
    ])

    with pytest.raises(GenerationError) as exc_info:
        await generator.generate_images("prompt")

    assert "currently unavailable" in exc_info.value.message


@pytest.mark.asyncio
async def test_no_provider_configured():
    generator = ImageGenerator([])

    with pytest.raises(GenerationError) as exc_info:
        await generator.generate_images("prompt")

    assert exc_info.value.message == "No image generation API configured"
