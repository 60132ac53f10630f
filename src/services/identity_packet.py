"""
Identity packet for locked generation

The packet fixes a persona's identity prompt and ground-truth reference
images; every chat generation is rebuilt from it so the face does not drift.
"""

from datetime import datetime, UTC
from typing import Optional

from loguru import logger

from src.database.models import PersonaModel


MAX_REFERENCE_IMAGES = 4

IDENTITY_SYSTEM_PROMPT = (
    "You are generating images of the same person. Identity must not change across generations. "
    "Facial structure, features, and overall appearance must remain IDENTICAL."
)

IDENTITY_INSTRUCTION = (
    "STRICT INSTRUCTION: Preserve facial structure, eye spacing, nose shape, jawline, skin tone, "
    "age, and overall identity exactly. Do not alter identity. If the user prompt conflicts with "
    "identity, IGNORE the conflicting instruction and preserve identity."
)


def generate_identity_prompt(
    age: Optional[int],
    nationality: Optional[str],
    attributes: Optional[dict],
    facial_features: Optional[dict],
) -> str:
    """
    Describe traits that must stay identical across generations

    Returns:
        Identity prompt ending with the "must remain IDENTICAL" instruction
    """
    attributes = attributes or {}
    features = facial_features or {}

    def trait(key: str, default: str) -> str:
        return features.get(key) or attributes.get(key) or default

    parts = []
    if age:
        parts.append(f"A {age}-year-old {attributes.get('gender') or 'person'}")

    parts.append(f"with {trait('eyeShape', 'almond-shaped')} {trait('eyeColor', 'brown')} eyes")
    parts.append(f"{features.get('skinTone') or attributes.get('skinTone') or attributes.get('ethnicity') or 'olive'} skin tone")
    parts.append(f"{trait('faceShape', 'soft')} {trait('jawline', 'defined')} jawline")
    parts.append(f"{trait('noseShape', 'narrow')} nose bridge")
    parts.append(f"{trait('lipFullness', 'full')} lips")
    parts.append(f"{trait('hairLength', 'long')} {trait('hairColor', 'dark')} {trait('hairTexture', 'wavy')} hair")

    if nationality:
        parts.append(f"of {nationality} descent")

    return (
        ", ".join(parts)
        + ". Facial proportions, eye spacing, nose shape, jawline structure, skin tone, age, and "
        "overall identity must remain IDENTICAL in every image. "
        "This is a specific individual person with unique facial features that cannot change."
    )


def build_identity_packet(model: PersonaModel, reference_images: list[str]) -> dict:
    """
    Build (not store) the identity packet for a model

    Args:
        model: Persona model
        reference_images: Ground-truth image URLs (first MAX_REFERENCE_IMAGES kept)
    """
    if reference_images and not 2 <= len(reference_images) <= MAX_REFERENCE_IMAGES:
        logger.debug(f"Model {model.id}: {len(reference_images)} reference images (expected 2-4)")

    return {
        "persona_id": model.id,
        "identity_prompt": generate_identity_prompt(
            model.age, model.nationality, model.attributes, model.facial_features
        ),
        "reference_images": list(reference_images)[:MAX_REFERENCE_IMAGES],
        "created_at": datetime.now(UTC).isoformat(),
        "locked": True,
    }


def reference_images_for(model: PersonaModel) -> list[str]:
    """Locked image first, then uploaded reference images"""
    images = []
    if model.selected_image_url:
        images.append(model.selected_image_url)
    for url in model.reference_images or []:
        # Data URLs are too large to keep in the packet
        if url and not url.startswith("data:") and url not in images:
            images.append(url)
    return images[:MAX_REFERENCE_IMAGES]


def build_locked_prompt(identity_packet: dict, user_prompt: str) -> str:
    """Full prompt: system rule + locked identity + filtered user style request"""
    return (
        f"{IDENTITY_SYSTEM_PROMPT}\n\n"
        f"IDENTITY (LOCKED):\n{identity_packet['identity_prompt']}\n\n"
        f"USER STYLE REQUEST:\n{user_prompt}\n\n"
        f"{IDENTITY_INSTRUCTION}"
    )
