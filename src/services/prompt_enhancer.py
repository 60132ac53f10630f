"""
OpenAI prompt enhancer

Turns a user's chat request plus the model's traits into a detailed
mirror-selfie prompt. Returns None when OpenAI is unavailable so callers
fall back to the keyword chat prompt.
"""
import logging  # Needed for tenacity before_sleep_log level constants
from typing import Optional

from openai import (
    AsyncOpenAI,
    APIError,
    RateLimitError,
    APIConnectionError,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from loguru import logger

from config.ai_prompts import (
    ENHANCER_SYSTEM_PROMPT,
    ENHANCE_ENDPOINT_SYSTEM_PROMPT,
    get_enhancer_user_prompt,
    get_enhance_endpoint_prompt,
)
from config.config import OPENAI_API_KEY, OPENAI_CHAT_MODEL, ModelConfig
from src.core.exceptions import (
    ConfigurationError,
    UpstreamQuotaError,
    UpstreamRateLimitError,
)


def build_model_context(
    age: Optional[int],
    nationality: Optional[str],
    attributes: Optional[dict],
    facial_features: Optional[dict],
) -> str:
    """Model facts as "- Key: value" lines"""
    attributes = attributes or {}
    facial_features = facial_features or {}

    lines = ["Model Information:"]
    if age:
        lines.append(f"- Age: {age}")
    if attributes.get("gender"):
        lines.append(f"- Gender: {attributes['gender']}")
    if nationality:
        lines.append(f"- Nationality/Ethnicity: {nationality}")
    if attributes.get("hairColor"):
        hair = " ".join(
            str(v) for v in (attributes.get("hairLength"), attributes.get("hairStyle"), attributes["hairColor"]) if v
        )
        lines.append(f"- Hair: {hair}")
    if attributes.get("eyeColor"):
        lines.append(f"- Eyes: {attributes['eyeColor']}")
    if attributes.get("skinTone"):
        lines.append(f"- Skin: {attributes['skinTone']}")
    if facial_features.get("faceShape"):
        lines.append(f"- Face Shape: {facial_features['faceShape']}")
    if facial_features.get("expression"):
        lines.append(f"- Expression: {facial_features['expression']}")
    return "\n".join(lines)


def clean_completion(text: str) -> str:
    """Strip markdown code fences the model sometimes adds"""
    text = text.strip()
    if text.startswith("```"):
        lines = [line for line in text.splitlines() if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()
    return text


class PromptEnhancer:
    """OpenAI-backed prompt enhancement"""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client
        if self.client is None and OPENAI_API_KEY:
            self.client = AsyncOpenAI(api_key=OPENAI_API_KEY)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    @retry(
        retry=retry_if_exception_type((APIConnectionError,)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _complete(self, messages: list, max_tokens: int, temperature: float) -> str:
        response = await self.client.chat.completions.create(
            model=OPENAI_CHAT_MODEL,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ValueError("Empty response from OpenAI")
        return clean_completion(content)

    async def enhance(
        self,
        user_prompt: str,
        age: Optional[int] = None,
        nationality: Optional[str] = None,
        attributes: Optional[dict] = None,
        facial_features: Optional[dict] = None,
        reference_image_url: Optional[str] = None,
    ) -> Optional[str]:
        """
        Enhance a chat request into a detailed prompt

        Args:
            user_prompt: Firewall-filtered user request
            age, nationality, attributes, facial_features: Model traits
            reference_image_url: Locked reference image (sent as vision input)

        Returns:
            Enhanced prompt or None (not configured / failed)
        """
        if not self.is_configured:
            logger.info("OpenAI API key not configured, using default chat prompt")
            return None

        context = build_model_context(age, nationality, attributes, facial_features)
        content = [{
            "type": "text",
            "text": get_enhancer_user_prompt(context, user_prompt, has_reference=bool(reference_image_url)),
        }]
        if reference_image_url:
            content.append({
                "type": "image_url",
                "image_url": {"url": reference_image_url, "detail": "high"},
            })

        try:
            prompt = await self._complete(
                [
                    {"role": "system", "content": ENHANCER_SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
                max_tokens=ModelConfig.ENHANCER_MAX_TOKENS,
                temperature=ModelConfig.ENHANCER_TEMPERATURE,
            )
            logger.debug(f"Enhanced prompt: {prompt[:200]}...")
            return prompt
        except (APIError, ValueError) as e:
            logger.warning(f"Prompt enhancement failed, falling back: {e}")
            return None

    async def enhance_free_form(self, base_prompt: str, user_input: str) -> str:
        """
        Combine a base description with a user request (POST /api/ai/enhance-prompt)

        Raises:
            ConfigurationError: OpenAI not configured
            UpstreamRateLimitError: OpenAI 429
            UpstreamQuotaError: OpenAI quota exhausted
        """
        if not self.is_configured:
            raise ConfigurationError("Prompt enhancement is not configured")

        try:
            return await self._complete(
                [
                    {"role": "system", "content": ENHANCE_ENDPOINT_SYSTEM_PROMPT},
                    {"role": "user", "content": get_enhance_endpoint_prompt(base_prompt, user_input)},
                ],
                max_tokens=ModelConfig.ENHANCER_MAX_TOKENS,
                temperature=ModelConfig.ENHANCER_TEMPERATURE,
            )
        except RateLimitError as e:
            if getattr(e, "code", None) == "insufficient_quota":
                raise UpstreamQuotaError("OpenAI API quota exceeded. Please contact support.") from e
            raise UpstreamRateLimitError("OpenAI rate limit exceeded. Please try again in a moment.") from e


# Global instance
prompt_enhancer = PromptEnhancer()
