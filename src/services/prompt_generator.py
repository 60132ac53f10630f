"""
Prompt builders for image generation

Keyword-driven prompts for the mirror-selfie look used across Fanova:
- describe prompt (wizard attributes / facial features)
- analysis prompt (reference image analysis)
- chat prompt (free-text request for an existing model)
"""

from typing import Optional


NEGATIVE_PROMPT_TERMS = [
    # Quality issues
    "lowres", "bad anatomy", "bad hands", "deformed fingers", "missing fingers", "extra fingers",
    "text", "error", "cropped", "worst quality", "low quality", "jpeg artifacts",
    "blurry", "out of focus face", "distorted", "disfigured", "poorly drawn face",
    "bad proportions", "mutation", "deformed", "ugly",
    # Phone and camera UI
    "phone visible", "smartphone visible", "iPhone visible", "phone in hand", "phone screen",
    "camera UI", "camera interface", "camera app", "camera buttons", "camera controls",
    "phone frame", "phone bezel", "screen UI", "interface elements",
    "shutter button", "camera icon", "timer display", "flash icon",
    "phone case visible", "phone reflection", "phone shadow",
    # Studio look
    "professional studio photo", "DSLR camera", "professional camera", "studio backdrop",
    "perfect lighting", "commercial photography", "fashion photography",
    "landscape orientation", "horizontal photo", "wide angle",
    # Unwanted elements
    "multiple people", "crowd", "watermark", "signature", "username", "logo",
    "cartoon", "anime", "drawing", "painting", "CGI", "3D render",
    "black and white", "grayscale", "sepia",
    # Artificial skin
    "perfect skin", "airbrushed", "overly smooth", "plastic skin",
    "unnatural colors", "oversaturated", "HDR artifact", "halo effect",
    # Wrong perspective
    "through phone screen", "looking at phone", "phone camera view", "camera preview",
    # Technical issues
    "noise", "grain", "compression artifacts", "pixelated",
    "overexposed", "underexposed", "harsh shadows", "red eye",
]

MIRROR_FULL_BODY = [
    "full body mirror selfie photo",
    "reflection in full length mirror",
    "person standing in front of full length mirror",
    "viewing full body reflection in mirror",
]

MIRROR_DEFAULT = [
    "mirror selfie photo",
    "reflection in mirror",
    "person standing in front of mirror",
    "viewing reflection in mirror",
]

REALISM_TAIL = [
    "direct view of mirror reflection",
    "no phone or screen visible",
    "ultra realistic",
    "photorealistic",
    "looks like real person",
    "authentic candid moment",
]

CLOTHING_KEYWORDS = [
    "pajamas", "pyjamas", "pj", "nightwear", "nightgown",
    "dress", "gown", "outfit", "clothes", "clothing",
    "shirt", "blouse", "top", "tank top", "t-shirt", "tshirt",
    "pants", "jeans", "shorts", "skirt", "leggings",
    "suit", "jacket", "coat", "hoodie", "sweatshirt",
    "bikini", "swimsuit", "bathing suit",
    "uniform", "costume",
]

_CLOTHING_STOPWORDS = {"wearing", "in", "with", "the", "a", "an", "is", "are", "be"}


def _lower(value) -> str:
    return str(value).strip().lower() if value else ""


def _subject(age: Optional[int], gender: Optional[str]) -> str:
    if age and gender:
        return f"{age} year old {gender}"
    if age:
        return f"{age} year old person"
    if gender:
        return f"young adult {gender}"
    return "young adult"


def _appearance_parts(attributes: dict, facial_features: dict) -> list[str]:
    """Hair, eyes, skin, body and face shape fragments"""
    parts = []

    hair = [
        _lower(attributes.get("hairLength")),
        _lower(attributes.get("hairStyle")),
        _lower(attributes.get("hairColor")),
    ]
    hair = [h for h in hair if h]
    if hair:
        parts.append(f"with {' '.join(hair)} hair")

    if attributes.get("eyeColor"):
        parts.append(f"{_lower(attributes['eyeColor'])} eyes")
    if attributes.get("skinTone"):
        parts.append(f"{_lower(attributes['skinTone'])} skin")
    if attributes.get("bodyType"):
        parts.append(f"{_lower(attributes['bodyType'])} body type")

    if facial_features.get("faceShape"):
        parts.append(f"{_lower(facial_features['faceShape'])}-shaped face")
    if facial_features.get("eyeShape"):
        parts.append(f"{_lower(facial_features['eyeShape'])}-shaped eyes")
    if facial_features.get("noseShape"):
        parts.append(f"{_lower(facial_features['noseShape'])} nose")
    if facial_features.get("lipShape"):
        parts.append(f"{_lower(facial_features['lipShape'])} lips")

    return parts


# ===========================
# DESCRIBE PROMPT
# ===========================


def generate_prompt(
    attributes: Optional[dict] = None,
    facial_features: Optional[dict] = None,
    age: Optional[int] = None,
) -> str:
    """
    Full-body mirror selfie prompt from wizard attributes

    Args:
        attributes: gender, hairColor, hairStyle, hairLength, eyeColor, skinTone, bodyType, style
        facial_features: faceShape, eyeShape, noseShape, lipShape, expression, lighting, setting
        age: Model age

    Returns:
        Comma-separated prompt
    """
    attributes = attributes or {}
    facial_features = facial_features or {}

    parts = list(MIRROR_FULL_BODY)
    parts += ["vertical 9:16 portrait orientation", "full body composition"]
    parts.append(_subject(age, attributes.get("gender")))
    parts += _appearance_parts(attributes, facial_features)

    expression = _lower(facial_features.get("expression"))
    if expression in ("smiling", "laughing"):
        parts.append("genuine warm smile")
    elif expression == "neutral":
        parts.append("relaxed natural expression")
    elif expression:
        parts.append(f"{expression} expression")
    else:
        parts.append("natural friendly expression")

    if attributes.get("style"):
        parts.append(f"wearing {_lower(attributes['style'])} outfit")
    else:
        parts.append("wearing casual modern clothing")

    lighting = _lower(facial_features.get("lighting")) or "natural"
    if lighting in ("natural", "golden hour"):
        parts += ["natural window light", "soft even lighting on face"]
    elif lighting in ("studio", "ring light"):
        parts += ["bright even indoor lighting", "ring light catch light in eyes"]
    elif lighting == "dramatic":
        parts += ["dramatic side lighting", "high contrast"]
    else:
        parts += ["soft natural lighting", "well-lit face"]

    parts += [
        "reflection quality",
        "face in sharp focus",
        "accurate skin tones",
        "realistic lighting",
        "mirror reflection perspective",
        "full body visible, head to toe",
        "full body shot, entire figure visible",
        "full body framing, standing full body",
        "centered composition",
        "entire body from head to feet visible",
    ]

    setting = _lower(facial_features.get("setting"))
    if setting:
        parts += [f"in {setting}", f"{setting} background visible"]
        if "bedroom" in setting or "room" in setting:
            parts.append("casual home environment")
        elif "gym" in setting or "workout" in setting:
            parts.append("fitness environment")
        elif "car" in setting:
            parts.append("sitting in vehicle")
        elif any(k in setting for k in ("coffee", "cafe", "restaurant")):
            parts.append("public indoor space")
        elif any(k in setting for k in ("beach", "park", "outdoor")):
            parts.append("natural outdoor environment")
        elif "office" in setting or "work" in setting:
            parts.append("professional setting")
    else:
        parts += ["simple indoor background", "casual home environment"]

    parts += [
        "high quality photo",
        "crisp modern photo quality",
        "natural photo processing",
        "Instagram-ready",
        "social media aesthetic",
    ]
    parts += REALISM_TAIL

    return ", ".join(parts)


def generate_negative_prompt() -> str:
    """Fixed negative prompt for mirror selfies"""
    return ", ".join(NEGATIVE_PROMPT_TERMS)


# ===========================
# ANALYSIS PROMPT
# ===========================


def generate_prompt_from_analysis(analysis: dict, attributes: Optional[dict] = None) -> str:
    """
    Prompt from a structured reference-image analysis

    Args:
        analysis: gender, age, ethnicity, hair*, eyeColor, skinTone, *Shape, bodyType, distinctiveFeatures
        attributes: Model attributes (style overrides the default outfit)

    Returns:
        Comma-separated prompt
    """
    attributes = attributes or {}

    parts = list(MIRROR_DEFAULT)
    parts.append("vertical 9:16 portrait orientation")

    if analysis.get("age") and analysis.get("gender"):
        parts.append(f"{analysis['age']} year old {analysis['gender']}")
    if analysis.get("ethnicity"):
        parts.append(f"{analysis['ethnicity']} ethnicity")

    hair = [analysis.get(k) for k in ("hairLength", "hairStyle", "hairColor") if analysis.get(k)]
    if hair:
        parts.append(f"with {' '.join(str(h) for h in hair)} hair")

    for key, suffix in (
        ("eyeColor", "eyes"),
        ("skinTone", "skin"),
        ("bodyType", "body type"),
        ("noseShape", "nose"),
        ("lipShape", "lips"),
    ):
        if analysis.get(key):
            parts.append(f"{analysis[key]} {suffix}")

    if analysis.get("faceShape"):
        parts.append(f"{analysis['faceShape']}-shaped face")
    if analysis.get("eyeShape"):
        parts.append(f"{analysis['eyeShape']}-shaped eyes")
    if analysis.get("distinctiveFeatures"):
        parts.append(str(analysis["distinctiveFeatures"]))

    if attributes.get("style"):
        parts.append(f"wearing {attributes['style']} outfit")
    else:
        parts.append("wearing casual modern clothing")

    parts += [
        "natural friendly expression",
        "soft natural lighting",
        "well-lit face",
        "face in sharp focus",
        "accurate skin tones",
        "centered composition",
        "head and shoulders visible",
        "face taking up 40% of frame",
        "simple indoor background",
        "casual home environment",
    ]
    parts += REALISM_TAIL

    return ", ".join(parts)


# ===========================
# CHAT PROMPT
# ===========================


def _detect_composition(text: str) -> tuple[str, str, str]:
    """(composition, framing, body visibility) requested in the text"""
    if any(k in text for k in ("full body", "full-body", "head to toe", "entire body", "whole body", "full shot")):
        return "full body visible, head to toe", "full body shot, entire figure visible", "full body framing, standing full body"
    if any(k in text for k in ("half body", "half-body", "upper body", "upper-body", "waist up", "torso visible")):
        return "upper body visible, waist up", "upper body framing, torso visible", "half body shot, waist up"
    if any(k in text for k in ("head and shoulders", "headshot", "portrait", "close-up")):
        return "head and shoulders visible", "face taking up 40% of frame", "portrait framing, head and shoulders"
    return "head and shoulders visible", "face taking up 40% of frame", ""


def _detect_pose(text: str) -> str:
    pose = "person standing in front of mirror"
    if any(k in text for k in ("crouch", "squat")):
        pose = "crouching down in front of mirror"
    elif "sitting" in text or "sit down" in text:
        pose = "sitting in front of mirror"
    elif "stand" in text:
        pose = "standing in front of mirror"
    elif "lean" in text:
        pose = "leaning casually against mirror"

    if "phone" in text:
        pose = pose.replace("in front of mirror", "holding phone in front of mirror")
    return pose


def _detect_expression(text: str) -> str:
    if any(k in text for k in ("smil", "happy", "laugh")):
        return "genuine warm smile, happy expression"
    if "serious" in text or "no smile" in text:
        return "serious expression, confident look"
    if "playful" in text or "fun" in text:
        return "playful expression, slight smile"
    if "confident" in text:
        return "confident expression, slight smile"
    return "genuine warm smile"


def _detect_gaze(text: str) -> str:
    if "looking at camera" in text or "look at camera" in text:
        return "looking directly at camera, eye contact with viewer"
    if "looking away" in text:
        return "looking slightly away from camera, candid moment"
    if "looking down" in text:
        return "looking down, candid moment"
    return "looking directly at camera"


def _detect_activity(text: str) -> list[str]:
    if "petting" in text or "pet " in text:
        if "dog" in text:
            return ["petting a friendly dog", "hand gently on dog", "dog in frame"]
        if "cat" in text:
            return ["petting a cat", "cat visible in scene"]
    elif "holding" in text and "coffee" in text:
        return ["holding a coffee cup in one hand"]
    elif "hold" in text and "flower" in text:
        return ["holding flowers"]
    return []


# (keywords, setting, extra fragments)
SETTINGS = [
    (("restaurant", "fine dining"), "in a fancy restaurant", [
        "elegant restaurant interior in background",
        "upscale dining atmosphere",
        "restaurant lighting, warm ambient lighting",
    ]),
    (("coffee shop", "cafe"), "in a cozy coffee shop", [
        "cafe interior in background",
        "warm indoor lighting",
        "casual public space atmosphere",
    ]),
    (("park",), "in a park", [
        "green trees and grass in background",
        "natural outdoor setting",
        "bright daylight",
    ]),
    (("beach",), "at the beach", [
        "sand and ocean in background",
        "bright natural sunlight",
        "coastal atmosphere",
    ]),
    (("gym", "workout"), "at the gym", [
        "gym equipment in background",
        "fitness environment",
        "wearing athletic clothes",
    ]),
    (("bedroom", "room"), "in bedroom", [
        "casual home environment",
        "soft indoor lighting",
    ]),
    (("outdoor",), "outdoors", [
        "natural outdoor background",
        "daylight",
    ]),
]


def _detect_setting(text: str) -> tuple[str, list[str]]:
    for keywords, setting, extra in SETTINGS:
        if any(k in text for k in keywords):
            return setting, [setting] + extra
    return "", ["simple indoor background", "soft natural lighting"]


def _detect_clothing(text: str, setting: str) -> list[str]:
    # Outfit suited to the place ("suitable outfit for the beach")
    if any(k in text for k in ("suitable", "appropriate", "for the", "for a")):
        if "beach" in text or "swim" in text or "beach" in setting:
            return ["wearing beachwear, bikini or swimsuit", "casual beach clothing"]
        if any(k in text for k in ("restaurant", "fancy", "fine dining")) or "restaurant" in setting:
            return ["wearing elegant dress or formal attire", "fancy restaurant outfit"]
        if "gym" in text or "workout" in text or "gym" in setting:
            return ["wearing athletic clothes, workout attire"]
        if "coffee" in text or "cafe" in text or "coffee" in setting:
            return ["wearing casual modern clothing"]

    # Explicit garment, keeping up to 4 descriptive words before it
    for keyword in CLOTHING_KEYWORDS:
        index = text.find(keyword)
        if index == -1:
            continue
        before = text[max(0, index - 40):index].split()
        descriptive = [w for w in before if len(w) > 2 and w not in _CLOTHING_STOPWORDS][-4:]
        if descriptive:
            return [f"wearing {' '.join(descriptive)} {keyword}"]
        return [f"wearing {keyword}"]

    if "beach" in setting:
        return ["wearing beachwear, bikini or swimsuit", "casual beach clothing"]
    if "restaurant" in setting:
        return ["wearing elegant dress or formal attire"]
    if "gym" in setting:
        return ["wearing athletic clothes, workout attire"]

    if "casual" in text:
        return ["wearing casual outfit"]
    if "professional" in text or "business" in text:
        return ["wearing professional business attire"]
    return ["wearing casual modern clothing"]


def generate_chat_prompt(
    user_prompt: str,
    attributes: Optional[dict] = None,
    facial_features: Optional[dict] = None,
    age: Optional[int] = None,
) -> str:
    """
    Prompt combining a free-text request with the model's appearance

    Composition, pose, expression, gaze, activity, setting, lighting and
    clothing are inferred from keywords in the request.

    Args:
        user_prompt: User's scene description
        attributes: Model attributes
        facial_features: Model facial features
        age: Model age

    Returns:
        Comma-separated prompt
    """
    attributes = attributes or {}
    facial_features = facial_features or {}
    text = user_prompt.lower()

    composition, framing, body_visibility = _detect_composition(text)

    parts = list(MIRROR_FULL_BODY if "full body" in composition else MIRROR_DEFAULT)
    parts.append("vertical 9:16 portrait orientation")
    parts.append(_subject(age, attributes.get("gender")))
    parts += _appearance_parts(attributes, facial_features)

    parts += [_detect_pose(text), _detect_expression(text), _detect_gaze(text)]
    if body_visibility:
        parts.append(body_visibility)
    parts += [composition, framing]
    parts += _detect_activity(text)

    setting, setting_parts = _detect_setting(text)
    parts += setting_parts

    if "golden hour" in text or "sunset" in text:
        parts += ["golden hour lighting", "warm soft glow"]
    elif "bright" in text or "sunny" in text:
        parts += ["bright natural lighting", "well-lit"]
    elif not setting:
        parts += ["soft natural window light", "well-lit face"]

    parts += _detect_clothing(text, setting)

    parts += [
        "mirror reflection perspective",
        "face in sharp focus",
        "accurate skin tones",
        "realistic lighting",
        "centered composition",
        "high quality photo",
        "crisp modern photo quality",
        "natural photo processing",
    ]
    parts += REALISM_TAIL

    return ", ".join(parts)
