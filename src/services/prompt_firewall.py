"""
Prompt firewall for identity-locked generation

Once a model has a locked reference image, user text may change style
(pose, expression, outfit, scene, lighting) but not identity (face, age,
ethnicity, body, gender). Clauses mentioning identity traits are dropped.
"""

import re
from dataclasses import dataclass, field
from typing import List

from loguru import logger


DEFAULT_STYLE_PROMPT = "Professional portrait, natural lighting, neutral expression"

IDENTITY_KEYWORDS = [
    # Face structure
    "face", "facial", "jawline", "jaw", "chin", "cheekbones", "forehead",
    # Eyes
    "eye color", "eye shape", "eyes", "eyebrows", "eyelashes",
    # Nose
    "nose", "nostrils",
    # Mouth
    "lips", "mouth", "teeth", "smile shape",
    # Skin
    "skin color", "skin tone", "complexion", "tan", "pale", "dark skin", "light skin",
    # Hair color / texture (style is allowed)
    "hair color", "blonde", "brunette", "redhead", "black hair", "white hair", "gray hair",
    "hair texture", "curly hair", "straight hair", "wavy hair",
    # Age
    "age", "older", "younger", "aged", "wrinkles", "baby face", "mature",
    # Identity
    "ethnicity", "race", "nationality", "look like", "become", "transform into",
    "change to", "turn into",
    # Body type
    "body type", "muscular", "thin", "fat", "skinny", "heavy", "build",
    # Gender
    "gender", "male", "female", "man", "woman", "boy", "girl",
]

STYLE_KEYWORDS = [
    # Pose & expression
    "pose", "standing", "sitting", "lying", "leaning", "kneeling",
    "smiling", "laughing", "serious", "expression", "looking", "gazing",
    # Clothing & accessories
    "wearing", "outfit", "clothes", "dress", "shirt", "pants", "skirt",
    "jewelry", "necklace", "earrings", "hat", "glasses", "sunglasses",
    # Hair style
    "hairstyle", "ponytail", "bun", "braids", "updo",
    # Scene
    "background", "setting", "location", "place",
    "beach", "park", "room", "street", "city", "forest", "mountain",
    # Lighting
    "lighting", "light", "bright", "dark", "shadows", "sunset", "sunrise",
    "golden hour", "blue hour", "night", "day", "indoor", "outdoor",
    # Composition
    "close-up", "portrait", "full body", "wide shot", "angle", "perspective",
    # Mood
    "cinematic", "artistic", "professional", "casual", "elegant", "dramatic",
    "vintage", "modern", "minimalist",
]


def _keyword_pattern(keyword: str) -> re.Pattern:
    """Whole-word pattern; multi-word keywords allow any whitespace"""
    body = r"\s+".join(re.escape(part) for part in keyword.split())
    return re.compile(rf"\b{body}\b", re.IGNORECASE)


_IDENTITY_PATTERNS = [(keyword, _keyword_pattern(keyword)) for keyword in IDENTITY_KEYWORDS]
_CLAUSE_SPLIT = re.compile(r"[.!?,]+")


@dataclass
class FirewallResult:
    filtered_prompt: str
    blocked: bool
    original: str
    blocked_keywords: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def find_identity_keywords(text: str) -> List[str]:
    return [keyword for keyword, pattern in _IDENTITY_PATTERNS if pattern.search(text)]


def filter_prompt(user_prompt: str) -> FirewallResult:
    """
    Drop clauses that try to change identity

    Args:
        user_prompt: Raw user text

    Returns:
        FirewallResult; filtered_prompt falls back to DEFAULT_STYLE_PROMPT
        when every clause was removed
    """
    blocked_keywords = find_identity_keywords(user_prompt)
    warnings = [f'Blocked identity change: "{keyword}"' for keyword in blocked_keywords]

    filtered = user_prompt
    if blocked_keywords:
        clauses = [c.strip() for c in _CLAUSE_SPLIT.split(user_prompt)]
        kept = [c for c in clauses if c and not find_identity_keywords(c)]
        filtered = ", ".join(kept).strip()

        if not filtered:
            filtered = DEFAULT_STYLE_PROMPT
            warnings.append("All content was filtered. Using default style prompt.")

    return FirewallResult(
        filtered_prompt=filtered,
        blocked=bool(blocked_keywords),
        original=user_prompt,
        blocked_keywords=blocked_keywords,
        warnings=warnings,
    )


def is_prompt_safe(user_prompt: str) -> bool:
    """True if the text only asks for style changes"""
    return not find_identity_keywords(user_prompt)


def extract_style_keywords(user_prompt: str) -> List[str]:
    text = user_prompt.lower()
    return [keyword for keyword in STYLE_KEYWORDS if keyword in text]


def generate_safe_prompt(user_prompt: str, model_id: str | None = None, strict: bool = True) -> FirewallResult:
    """
    Main firewall entry point

    In strict mode a prompt with no style keywords gets a style-focus suffix.
    """
    result = filter_prompt(user_prompt)

    if strict and not extract_style_keywords(result.filtered_prompt):
        result.filtered_prompt = (
            f"{result.filtered_prompt}. Professional photography, natural lighting, high quality."
        )

    if result.warnings:
        logger.info(
            f"🛡️ Prompt firewall [model {model_id}]: '{user_prompt}' -> '{result.filtered_prompt}' "
            f"(blocked: {', '.join(result.blocked_keywords)})"
        )

    return result
