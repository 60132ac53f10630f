"""
AI proxy endpoints

- POST /ai/analyze-reference-images: Gemini vision describes 3 reference photos and merges them
- POST /ai/enhance-prompt: OpenAI combines a base description with a user request
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.api.auth import Principal, get_current_principal
from src.core.exceptions import FanovaError, to_http_exception
from src.services.gemini_service import gemini_service
from src.services.prompt_enhancer import prompt_enhancer
from src.utils.image_data import is_data_url

REFERENCE_IMAGE_COUNT = 3

# Create router
router = APIRouter(prefix="/ai", tags=["ai"])


class AnalyzeReferenceImagesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    images: Optional[List[str]] = None
    model_name: Optional[str] = Field(None, alias="modelName")


class EnhancePromptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_prompt: Optional[str] = Field(None, alias="basePrompt")
    user_input: Optional[str] = Field(None, alias="userInput")


@router.post("/analyze-reference-images")
async def analyze_reference_images(
    body: AnalyzeReferenceImagesRequest,
    principal: Principal = Depends(get_current_principal),
) -> Dict[str, Any]:
    """
    Analyze exactly 3 reference images of the same person

    Returns:
        {
            "success": true,
            "analysis": ["...", "...", "..."],
            "extractedAttributes": {"hair_color": "...", ...},
            "mergedPrompt": "... close-up portrait ...",
            "mergedDescription": "..."
        }
    """
    images = body.images or []
    if len(images) != REFERENCE_IMAGE_COUNT or not all(is_data_url(image) for image in images):
        raise HTTPException(
            status_code=400,
            detail={"error": "Please provide exactly 3 reference images"},
        )

    try:
        result = await gemini_service.analyze_reference_set(images, body.model_name)
        logger.info(f"✅ Reference analysis complete for {body.model_name} (user {principal.user_id})")
        return {"success": True, **result}

    except FanovaError as e:
        logger.warning(f"Reference analysis failed: {e.message}")
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error analyzing reference images: {e}")
        raise HTTPException(status_code=500, detail="Failed to analyze images. Please try again.")


@router.post("/enhance-prompt")
async def enhance_prompt(
    body: EnhancePromptRequest,
    principal: Principal = Depends(get_current_principal),
) -> Dict[str, Any]:
    if not body.base_prompt or not body.user_input:
        raise HTTPException(
            status_code=400,
            detail={"error": "basePrompt and userInput are required"},
        )

    try:
        enhanced = await prompt_enhancer.enhance_free_form(body.base_prompt, body.user_input)
        return {"success": True, "enhancedPrompt": enhanced}

    except FanovaError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error enhancing prompt: {e}")
        raise HTTPException(status_code=500, detail="Failed to enhance prompt")
