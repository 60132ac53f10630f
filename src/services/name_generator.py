"""
Model name generator (OpenAI gpt-4o-mini with local fallback)
"""
import random
from typing import Optional

from openai import AsyncOpenAI, APIError
from loguru import logger

from config.ai_prompts import NAME_GENERATOR_SYSTEM_PROMPT, get_name_generator_prompt
from config.config import OPENAI_API_KEY, OPENAI_NAME_MODEL, ModelConfig


FALLBACK_NAMES = [
    "Sophia", "Emma", "Olivia", "Isabella", "Ava", "Mia", "Charlotte", "Amelia",
    "Harper", "Evelyn", "Luna", "Aria", "Chloe", "Layla", "Zoe", "Victoria",
    "Nora", "Riley", "Lily", "Aubrey",
]

# (nationality fragments, name) checked in order
NATIONALITY_NAMES = [
    (("japan",), "Sakura"),
    (("korea",), "Min-ji"),
    (("china", "chinese"), "Li Wei"),
    (("india",), "Priya"),
    (("spanish", "spain", "mexic", "latin"), "Isabella"),
    (("french", "france"), "Sophie"),
    (("german",), "Emma"),
    (("russia",), "Anastasia"),
]

MAX_NAME_LENGTH = 50


def generate_fallback_name(nationality: Optional[str] = None) -> str:
    """Culturally fitting name by nationality, else a random pick"""
    if nationality:
        value = nationality.lower()
        for fragments, name in NATIONALITY_NAMES:
            if any(fragment in value for fragment in fragments):
                return name
    return random.choice(FALLBACK_NAMES)


def clean_name(raw: str) -> str:
    name = raw.strip().strip("`").strip()
    name = name.splitlines()[0].strip() if name else ""
    return name.strip("\"'").strip()


class NameGenerator:
    """Service for model name suggestions"""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client
        if self.client is None and OPENAI_API_KEY:
            self.client = AsyncOpenAI(api_key=OPENAI_API_KEY)

    async def generate(
        self,
        nationality: Optional[str] = None,
        occupation: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> str:
        """
        Suggest a model name

        Never raises: any OpenAI problem falls back to a local name.
        """
        if self.client is None:
            logger.info("OpenAI API key not configured, using fallback name generation")
            return generate_fallback_name(nationality)

        try:
            response = await self.client.chat.completions.create(
                model=OPENAI_NAME_MODEL,
                messages=[
                    {"role": "system", "content": NAME_GENERATOR_SYSTEM_PROMPT},
                    {"role": "user", "content": get_name_generator_prompt(nationality, occupation, gender)},
                ],
                max_tokens=ModelConfig.NAME_MAX_TOKENS,
                temperature=ModelConfig.NAME_TEMPERATURE,
            )
            content = response.choices[0].message.content if response.choices else ""
            name = clean_name(content or "")

            if 0 < len(name) <= MAX_NAME_LENGTH:
                logger.debug(f"Generated model name: {name}")
                return name

            logger.warning(f"Unusable name from OpenAI: {content!r}")

        except APIError as e:
            logger.warning(f"OpenAI name generation failed: {e}")

        return generate_fallback_name(nationality)


# Global instance
name_generator = NameGenerator()
