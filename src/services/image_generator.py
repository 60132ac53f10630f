# coding: utf-8
"""
Image generation with provider fallback

Order: Google Gemini -> Fal.ai. A provider that is rate-limited, overloaded
or refuses the reference image hands the request to the next one.
"""

import random
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import aiohttp
from loguru import logger

from config.config import FAL_AI_KEY
from src.core.exceptions import (
    GenerationError,
    ProviderUnavailableError,
    ReferenceImageRejectedError,
)
from src.services.gemini_service import gemini_service


ProgressCallback = Callable[[int], Awaitable[None]]


class FalAiService:
    """Fal.ai Flux Pro (text-to-image and image-to-image)"""

    URL = "https://fal.run/fal-ai/flux-pro"
    TIMEOUT_SECONDS = 120

    # Reference strength for image-to-image (0 = ignore, 1 = copy)
    REFERENCE_STRENGTH = 0.6

    def __init__(self, api_key: str = FAL_AI_KEY):
        self.api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_images(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None,
        num_images: int = 3,
        reference_image_url: Optional[str] = None,
        on_image: Optional[ProgressCallback] = None,
    ) -> List[str]:
        body = {
            "prompt": prompt,
            "negative_prompt": negative_prompt,
            "num_images": num_images,
            "image_size": {"width": 768, "height": 1024},
            "num_inference_steps": 28,
            "guidance_scale": 3.5,
            "enable_safety_checker": True,
            "seed": random.randint(0, 999_999),
        }
        # Fal.ai needs a fetchable URL, not a data URL
        if reference_image_url and not reference_image_url.startswith("data:"):
            body["image_url"] = reference_image_url
            body["strength"] = self.REFERENCE_STRENGTH

        headers = {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.TIMEOUT_SECONDS)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.URL, json=body, headers=headers) as response:
                    if response.status in (429, 503):
                        raise ProviderUnavailableError(f"Fal.ai unavailable ({response.status})")
                    if response.status != 200:
                        text = await response.text()
                        logger.error(f"Fal.ai error {response.status}: {text[:300]}")
                        raise GenerationError(f"Fal.ai request failed ({response.status})")
                    data = await response.json()

        except aiohttp.ClientError as e:
            raise ProviderUnavailableError(f"Fal.ai connection failed: {e}") from e

        urls = [image["url"] for image in data.get("images", []) if image.get("url")]
        if not urls:
            raise GenerationError("Fal.ai returned no images")

        if on_image:
            await on_image(len(urls))
        return urls


@dataclass
class Provider:
    name: str
    service: object


class ImageGenerator:
    """Runs the provider chain"""

    def __init__(self, providers: Optional[List[Provider]] = None):
        self.providers = providers if providers is not None else [
            Provider("Google Gemini", gemini_service),
            Provider("Fal.ai", FalAiService()),
        ]

    def available_providers(self) -> List[Provider]:
        return [p for p in self.providers if p.service.is_configured]

    async def generate_images(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None,
        num_images: int = 3,
        reference_image_url: Optional[str] = None,
        on_image: Optional[ProgressCallback] = None,
    ) -> List[str]:
        """
        Generate images with the first provider that succeeds

        Returns:
            Image URLs (data URLs from Gemini, https URLs from Fal.ai)

        Raises:
            GenerationError: No provider configured or all providers failed
        """
        providers = self.available_providers()
        if not providers:
            raise GenerationError("No image generation API configured")

        if reference_image_url:
            logger.info("🔒 Locked reference image detected - using image-to-image generation")

        last_error: Optional[GenerationError] = None

        for provider in providers:
            try:
                logger.info(f"🎨 Generating {num_images} images with {provider.name}...")
                images = await provider.service.generate_images(
                    prompt,
                    negative_prompt,
                    num_images,
                    reference_image_url,
                    on_image,
                )
                logger.info(f"✅ Generated {len(images)} images with {provider.name}")
                return images

            except ProviderUnavailableError as e:
                logger.warning(f"⚠️ {provider.name} is rate-limited or overloaded: {e}")
                last_error = e
            except ReferenceImageRejectedError as e:
                logger.warning(f"⚠️ {provider.name} does not accept the reference image: {e}")
                last_error = e
            except GenerationError as e:
                logger.error(f"❌ {provider.name} failed: {e}")
                last_error = e

        logger.error("❌ All image generation providers failed")
        raise GenerationError(
            "All image generation services are currently unavailable. Please try again later."
        ) from last_error


# Global instance
image_generator = ImageGenerator()
