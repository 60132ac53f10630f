# coding: utf-8
"""
Google Gemini Service

- Vision: reference image descriptions, merged description, structured analysis
- Image generation: one 9:16 image per call, optional reference image
"""
import asyncio
import json
import logging  # Needed for tenacity before_sleep_log level constants
import re
from typing import Awaitable, Callable, List, Optional

import httpx
from google import genai
from google.genai import errors, types
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from loguru import logger

from config.ai_prompts import (
    REFERENCE_IMAGE_DESCRIPTION_PROMPT,
    REFERENCE_ANALYSIS_PROMPT,
    MERGED_PORTRAIT_SUFFIX,
    get_merge_prompt,
)
from config.config import (
    GOOGLE_API_KEY,
    GEMINI_IMAGE_MODEL,
    GEMINI_VISION_MODEL,
    ModelConfig,
)
from src.core.exceptions import (
    ConfigurationError,
    GenerationError,
    ProviderUnavailableError,
    ReferenceImageRejectedError,
    UpstreamQuotaError,
    UpstreamRateLimitError,
)
from src.utils.image_data import load_image, parse_data_url, to_data_url


REFERENCE_PREFIX = "Using the reference image provided above for facial features and identity, "

# Pause between sequential image calls
IMAGE_REQUEST_DELAY = 0.5

RETRYABLE_ERRORS = (errors.ServerError, httpx.TransportError)


def extract_json(text: str) -> dict:
    """Parse JSON from a model reply, tolerating surrounding prose"""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", text or "")
        if not match:
            raise ValueError("No JSON object in model response")
        return json.loads(match.group(0))


def map_api_error(error: errors.APIError) -> Exception:
    """Translate a Gemini API error into a domain error"""
    message = (error.message or "").lower()
    if error.code == 429:
        if "billing" in message or "insufficient" in message:
            return UpstreamQuotaError("Google AI quota exceeded. Please contact support.")
        return UpstreamRateLimitError("Google AI rate limit exceeded. Please try again in a moment.")
    return GenerationError(f"Google AI request failed ({error.code})")


class GeminiService:
    """
    Service for Google Gemini vision and image generation

    Features:
    - Async client (client.aio)
    - Retries on 5xx / transport errors
    - Reference image passed as inline data
    """

    def __init__(self, client: Optional[genai.Client] = None):
        self.client = client
        if self.client is None and GOOGLE_API_KEY:
            self.client = genai.Client(
                api_key=GOOGLE_API_KEY,
                http_options=types.HttpOptions(timeout=ModelConfig.GEMINI_TIMEOUT * 1000),
            )

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> genai.Client:
        if self.client is None:
            raise ConfigurationError("GOOGLE_API_KEY not configured")
        return self.client

    @retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _generate_content(self, model: str, contents: list, config=None):
        client = self._require_client()
        return await client.aio.models.generate_content(
            model=model,
            contents=contents,
            config=config,
        )

    # ===========================
    # VISION
    # ===========================

    async def describe_reference_image(self, image_data_url: str) -> str:
        """Free-text character description of one reference photo"""
        mime_type, data = parse_data_url(image_data_url)
        response = await self._generate_content(
            GEMINI_VISION_MODEL,
            [types.Part.from_bytes(data=data, mime_type=mime_type), REFERENCE_IMAGE_DESCRIPTION_PROMPT],
        )
        if not response.text:
            raise GenerationError("Empty description from Google AI")
        return response.text.strip()

    async def merge_descriptions(self, descriptions: List[str]) -> dict:
        """
        Merge per-image descriptions into one

        Returns:
            {"mergedDescription": str, "attributes": {...}}
        """
        response = await self._generate_content(
            GEMINI_VISION_MODEL,
            [get_merge_prompt(descriptions)],
            config=types.GenerateContentConfig(response_mime_type="application/json"),
        )
        merged = extract_json(response.text or "")
        merged.setdefault("attributes", {})
        if not merged.get("mergedDescription"):
            raise GenerationError("Merged description missing from Google AI response")
        return merged

    async def analyze_reference_set(self, images: List[str], model_name: Optional[str] = None) -> dict:
        """
        Describe each reference image, then merge the descriptions

        Args:
            images: Base64 data URLs
            model_name: For logging

        Returns:
            {analysis, extractedAttributes, mergedPrompt, mergedDescription}

        Raises:
            UpstreamRateLimitError / UpstreamQuotaError / GenerationError
        """
        logger.info(f"🔍 Analyzing {len(images)} reference images for model: {model_name}")

        try:
            analysis = []
            for index, image in enumerate(images, start=1):
                analysis.append(await self.describe_reference_image(image))
                logger.debug(f"Image {index}/{len(images)} analyzed")

            merged = await self.merge_descriptions(analysis)

        except errors.APIError as e:
            raise map_api_error(e) from e
        except ValueError as e:
            raise GenerationError(f"Could not parse reference analysis: {e}") from e

        description = merged["mergedDescription"].rstrip(". ")
        return {
            "analysis": analysis,
            "extractedAttributes": merged["attributes"],
            "mergedPrompt": f"{description}. {MERGED_PORTRAIT_SUFFIX}",
            "mergedDescription": merged["mergedDescription"],
        }

    async def analyze_reference_images(self, image_urls: List[str]) -> dict:
        """
        Structured analysis (gender, age, hair, eyes, face shapes, ...) of reference photos

        Args:
            image_urls: Data URLs or public URLs of the same person

        Returns:
            Analysis dict
        """
        contents = []
        for url in image_urls:
            loaded = await load_image(url)
            if loaded:
                mime_type, data = loaded
                contents.append(types.Part.from_bytes(data=data, mime_type=mime_type))

        if not contents:
            raise GenerationError("No reference images could be loaded")

        contents.append(REFERENCE_ANALYSIS_PROMPT)

        try:
            response = await self._generate_content(
                GEMINI_VISION_MODEL,
                contents,
                config=types.GenerateContentConfig(response_mime_type="application/json", temperature=0.1),
            )
            return extract_json(response.text or "")
        except errors.APIError as e:
            raise map_api_error(e) from e

    # ===========================
    # IMAGE GENERATION
    # ===========================

    async def generate_images(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None,
        num_images: int = 3,
        reference_image_url: Optional[str] = None,
        on_image: Optional[Callable[[int], Awaitable[None]]] = None,
    ) -> List[str]:
        """
        Generate images one call at a time

        Args:
            prompt: Positive prompt
            negative_prompt: Appended as "Avoid: ..."
            num_images: Number of images
            reference_image_url: Locked reference image (identity)
            on_image: Awaited with the count of images produced so far

        Returns:
            Data URLs of the generated images

        Raises:
            ProviderUnavailableError: 429 / overloaded after retries
            ReferenceImageRejectedError: 400 while a reference image was sent
            GenerationError: Anything else
        """
        self._require_client()

        reference = None
        if reference_image_url:
            reference = await load_image(reference_image_url)
            if reference is None:
                logger.warning("Failed to load reference image, generating without it")

        text = f"{REFERENCE_PREFIX}{prompt}" if reference else prompt
        if negative_prompt:
            text += f"\n\nAvoid: {negative_prompt}"

        contents = []
        if reference:
            mime_type, data = reference
            contents.append(types.Part.from_bytes(data=data, mime_type=mime_type))
        contents.append(text)

        config = types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=ModelConfig.IMAGE_ASPECT_RATIO),
        )

        images = []
        for index in range(num_images):
            try:
                response = await self._generate_content(GEMINI_IMAGE_MODEL, contents, config=config)
            except errors.ServerError as e:
                raise ProviderUnavailableError(f"Google AI unavailable ({e.code})") from e
            except errors.ClientError as e:
                if e.code == 429:
                    raise ProviderUnavailableError("Google AI rate limited") from e
                if reference and e.code == 400:
                    raise ReferenceImageRejectedError("Google AI rejected the reference image") from e
                raise GenerationError(f"Google AI request failed ({e.code})") from e
            except httpx.TransportError as e:
                raise ProviderUnavailableError("Google AI connection failed") from e

            images.append(self._extract_image(response))
            logger.info(f"✅ Generated image {index + 1}/{num_images}")

            if on_image:
                await on_image(len(images))
            if index < num_images - 1:
                await asyncio.sleep(IMAGE_REQUEST_DELAY)

        return images

    @staticmethod
    def _extract_image(response) -> str:
        """First inline image of the response as a data URL"""
        for candidate in response.candidates or []:
            if not candidate.content:
                continue
            for part in candidate.content.parts or []:
                if part.inline_data and part.inline_data.data:
                    return to_data_url(part.inline_data.data, part.inline_data.mime_type or "image/png")
        raise GenerationError("No image data in Google AI response")


# Global instance
gemini_service = GeminiService()
