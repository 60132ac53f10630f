"""
Tests for prompt builders and the identity packet
"""

from src.database.models import PersonaModel
from src.services.identity_packet import (
    IDENTITY_INSTRUCTION,
    MAX_REFERENCE_IMAGES,
    build_identity_packet,
    build_locked_prompt,
    reference_images_for,
)
from src.services.prompt_generator import (
    MIRROR_FULL_BODY,
    generate_chat_prompt,
    generate_negative_prompt,
    generate_prompt,
    generate_prompt_from_analysis,
)


ATTRIBUTES = {
    "gender": "female",
    "hairLength": "Long",
    "hairStyle": "Wavy",
    "hairColor": "Blonde",
    "eyeColor": "Green",
}


# ============================================================================
# DESCRIBE / ANALYSIS
# ============================================================================


def test_describe_prompt_from_attributes():
    prompt = generate_prompt(ATTRIBUTES, {"setting": "Bedroom"}, age=24)

    assert prompt.startswith(MIRROR_FULL_BODY[0])
    assert "24 year old female" in prompt
    assert "with long wavy blonde hair" in prompt
    assert "green eyes" in prompt
    assert "in bedroom" in prompt
    assert "casual home environment" in prompt


def test_describe_prompt_defaults():
    prompt = generate_prompt()

    assert "young adult" in prompt
    assert "wearing casual modern clothing" in prompt
    assert "simple indoor background" in prompt


def test_negative_prompt():
    negative = generate_negative_prompt()

    assert "phone visible" in negative
    assert "watermark" in negative


def test_prompt_from_analysis():
    analysis = {
        "gender": "woman",
        "age": 30,
        "ethnicity": "Japanese",
        "hairColor": "black",
        "faceShape": "oval",
    }
    prompt = generate_prompt_from_analysis(analysis, {"style": "streetwear"})

    assert "30 year old woman" in prompt
    assert "Japanese ethnicity" in prompt
    assert "with black hair" in prompt
    assert "oval-shaped face" in prompt
    assert "wearing streetwear outfit" in prompt


# ============================================================================
# CHAT
# ============================================================================


def test_chat_prompt_setting_and_suitable_outfit():
    prompt = generate_chat_prompt("suitable outfit for the beach", ATTRIBUTES, age=24)

    assert "at the beach" in prompt
    assert "wearing beachwear, bikini or swimsuit" in prompt
    assert "24 year old female" in prompt


def test_chat_prompt_full_body():
    prompt = generate_chat_prompt("full body shot in a park, sitting")

    assert prompt.startswith(MIRROR_FULL_BODY[0])
    assert "sitting in front of mirror" in prompt
    assert "in a park" in prompt


def test_chat_prompt_explicit_garment():
    prompt = generate_chat_prompt("wearing a red silk dress, golden hour")

    assert "wearing red silk dress" in prompt
    assert "golden hour lighting" in prompt


# ============================================================================
# IDENTITY PACKET
# ============================================================================


def make_model(**fields) -> PersonaModel:
    defaults = dict(
        id="model-1",
        user_id="user-1",
        name="Aria",
        age=24,
        nationality="Italian",
        attributes=dict(ATTRIBUTES),
        facial_features={"eyeShape": "almond"},
        reference_images=[],
    )
    defaults.update(fields)
    return PersonaModel(**defaults)


def test_identity_packet_is_locked_and_capped():
    model = make_model()
    refs = [f"https://cdn.example.com/{i}.png" for i in range(6)]

    packet = build_identity_packet(model, refs)

    assert packet["locked"] is True
    assert packet["persona_id"] == "model-1"
    assert len(packet["reference_images"]) == MAX_REFERENCE_IMAGES
    assert "A 24-year-old female" in packet["identity_prompt"]
    assert "of Italian descent" in packet["identity_prompt"]
    assert "must remain IDENTICAL" in packet["identity_prompt"]


def test_reference_images_selected_first_without_data_urls():
    model = make_model(
        selected_image_url="https://cdn.example.com/locked.png",
        reference_images=[
            "data:image/png;base64,AAAA",
            "https://cdn.example.com/upload.png",
            "https://cdn.example.com/locked.png",
        ],
    )

    assert reference_images_for(model) == [
        "https://cdn.example.com/locked.png",
        "https://cdn.example.com/upload.png",
    ]


def test_locked_prompt_layout():
    packet = build_identity_packet(make_model(), [])

    prompt = build_locked_prompt(packet, "wearing a coat in the snow")

    assert "IDENTITY (LOCKED):" in prompt
    assert "USER STYLE REQUEST:\nwearing a coat in the snow" in prompt
    assert prompt.endswith(IDENTITY_INSTRUCTION)
