# coding: utf-8
"""
Prompts for AI calls (Gemini vision, OpenAI enhancer / name generator)
"""

from typing import Optional


# Per-image description of a reference photo (Gemini vision)
REFERENCE_IMAGE_DESCRIPTION_PROMPT = """
You are an AI art director creating descriptions of fictional characters for image generation.

Based on this reference photo, write a detailed character description capturing its visual aesthetic:
- Overall aesthetic and vibe
- Hair: color, length, style, texture
- General facial features and structure
- Skin tone and complexion
- Body type and build
- Fashion style and clothing
- Color palette and mood

Write a prompt suitable for AI image generation. This is for original fictional artwork,
not for identifying or recreating a real person.
"""


def get_merge_prompt(descriptions: list[str]) -> str:
    """
    Prompt merging several reference descriptions into one JSON description

    Args:
        descriptions: Per-image descriptions

    Returns:
        Formatted prompt string
    """
    blocks = "\n\n".join(
        f"DESCRIPTION {i}:\n{text}" for i, text in enumerate(descriptions, start=1)
    )

    return f"""
You are creating a unified character description for AI artwork based on {len(descriptions)} reference descriptions.

{blocks}

Task:
1. Find the visual characteristics that are CONSISTENT across all descriptions
2. Write one merged character description for image generation
3. Extract key attributes

Respond ONLY with JSON in this format:
{{
  "mergedDescription": "unified character description",
  "attributes": {{
    "hair_color": "...",
    "hair_style": "...",
    "eye_color": "...",
    "skin_tone": "...",
    "face_shape": "...",
    "body_type": "...",
    "distinctive_features": "...",
    "style_aesthetic": "..."
  }}
}}
"""


# Appended to the merged description so the first images work as a locked reference
MERGED_PORTRAIT_SUFFIX = (
    "Close-up portrait shot, face clearly visible from shoulders up, taken with iPhone "
    "camera quality with natural imperfections and slight grain, natural daylight lighting, "
    "shallow depth of field, photorealistic, 4K resolution, clear eyes and hair details captured."
)


# Structured analysis used by the initial generation path
REFERENCE_ANALYSIS_PROMPT = """
Analyze these reference photos of the same person and extract physical characteristics for AI image generation.

Return ONLY JSON with this structure:
{
  "gender": "female/male/non-binary",
  "age": estimated age (number),
  "hairColor": "specific color",
  "hairStyle": "straight/wavy/curly/coily/braided",
  "hairLength": "short/medium/long/very-long",
  "eyeColor": "brown/blue/green/hazel/gray/amber",
  "skinTone": "skin tone",
  "faceShape": "oval/round/heart/square/diamond/oblong",
  "eyeShape": "almond/round/hooded/monolid/upturned/downturned",
  "noseShape": "straight/button/roman/aquiline/wide/narrow",
  "lipShape": "full/thin/bow-shaped/wide/heart-shaped",
  "bodyType": "slim/athletic/average/curvy/plus-size",
  "distinctiveFeatures": "freckles, dimples, etc.",
  "ethnicity": "apparent ethnicity if identifiable",
  "overallDescription": "2-3 sentence description for image generation"
}
"""


ENHANCER_SYSTEM_PROMPT = """
You are an expert prompt engineer for AI image generation. You write detailed prompts for realistic mirror selfie photos.

Requirements:
1. Mirror selfie: reflection in mirror, person standing in front of mirror, direct view of the reflection
2. Composition: full body, half body or head and shoulders (default) as the user asks
3. Vertical 9:16 portrait orientation
4. Ultra realistic, looks like a real iPhone photo with subtle grain and natural imperfections
5. No phone, camera UI or screen elements unless explicitly requested
6. The user's setting and clothing are the HIGHEST PRIORITY. A "messy bedroom" must look messy; never replace it with a clean default
7. If a nationality is given, the person must clearly look like that nationality

Return ONLY the prompt text. No explanations, no code blocks, no markdown.
"""


def get_enhancer_user_prompt(model_context: str, user_prompt: str, has_reference: bool = False) -> str:
    """
    User message for the prompt enhancer

    Args:
        model_context: Model facts ("- Age: 25" lines)
        user_prompt: What the user asked for
        has_reference: A locked reference image is attached

    Returns:
        Formatted prompt string
    """
    prompt = f"""
{model_context}

User Request: "{user_prompt}"

Create a detailed prompt for a mirror selfie photo that:
1. Fulfils the user's request EXACTLY - this is the priority
2. Uses the model's physical characteristics listed above
3. Describes the requested setting and clothing exactly, overriding the model's stored style
4. Uses the requested composition (full body if asked, otherwise head and shoulders)
5. Includes "taken on iPhone", "iPhone camera quality" and realistic imperfections like subtle film grain
"""

    if has_reference:
        prompt += "6. Keeps the EXACT same face, hair, skin tone and overall appearance as the reference image\n"

    prompt += "\nReturn ONLY the prompt text, nothing else."
    return prompt


# Free-form enhancement used by POST /api/ai/enhance-prompt
ENHANCE_ENDPOINT_SYSTEM_PROMPT = (
    "You create detailed image generation prompts. Combine the base description with "
    "the user's request into a cohesive, detailed prompt."
)


def get_enhance_endpoint_prompt(base_prompt: str, user_input: str) -> str:
    return (
        f"Base character description: {base_prompt}\n\n"
        f"User wants: {user_input}\n\n"
        "Create a detailed image generation prompt that keeps the character's core appearance "
        "while incorporating the user's request. Be specific and descriptive."
    )


NAME_GENERATOR_SYSTEM_PROMPT = """
You are a creative naming expert. Generate a single memorable name for an AI model character.
The name must be:
- Easy to remember and pronounce
- 1-2 words maximum (first name, or first name + last name)
- Suitable for a fashion/modeling context and not offensive

Return ONLY the name. No quotes, no explanations.
"""


def get_name_generator_prompt(
    nationality: Optional[str] = None,
    occupation: Optional[str] = None,
    gender: Optional[str] = None,
) -> str:
    prompt = "Generate a creative and memorable name for an AI model."
    if nationality:
        prompt += f" The model is {nationality}."
    if occupation:
        prompt += f" Occupation: {occupation}."
    if gender:
        prompt += f" Gender: {gender}."
    return prompt
