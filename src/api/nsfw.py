"""
NSFW generation endpoint (Wavespeed image edit)

Credits (plan NSFW price) are charged before Wavespeed is called and
refunded when the edit fails or times out.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import Principal, ensure_model_access, require_unlocked_principal
from src.core.exceptions import FanovaError, to_http_exception
from src.database import crud
from src.database.engine import get_session
from src.database.models import JobKind
from src.services.generation_service import GenerationRequest, generation_service

# Create router
router = APIRouter(prefix="/nsfw", tags=["nsfw"])


class NsfwGenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: Optional[str] = Field(None, alias="imageUrl")
    prompt: Optional[str] = None
    model_id: Optional[str] = Field(None, alias="modelId")
    background: bool = False


@router.post("/generate")
async def generate_nsfw(
    body: NsfwGenerateRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_unlocked_principal),
    session: AsyncSession = Depends(get_session),
):
    """
    Edit an image with Wavespeed Seedream v4

    Returns:
        {"success": true, "jobId": "...", "imageUrl": "https://..."}
    """
    if not body.image_url or not body.prompt:
        raise HTTPException(status_code=400, detail={"error": "imageUrl and prompt are required"})

    if body.model_id:
        model = await crud.get_model(session, body.model_id)
        if model is None:
            raise HTTPException(status_code=404, detail="Model not found")
        ensure_model_access(principal, model.user_id)

    request = GenerationRequest(
        kind=JobKind.NSFW.value,
        user_id=principal.user_id,
        model_id=body.model_id,
        num_images=1,
        user_prompt=body.prompt,
        is_nsfw=True,
        options={"batch": False},
        image_url=body.image_url,
    )
    logger.info(f"🌶️ NSFW generation for user {principal.user_id} (model {body.model_id or 'N/A'})")

    try:
        job = await generation_service.create_and_charge(session, request)

        if body.background:
            background_tasks.add_task(generation_service.run_in_background, job.id, request)
            return JSONResponse(
                status_code=202,
                content={"success": True, "jobId": job.id, "status": job.status},
            )

        job = await generation_service.run(session, job, request)
        return {"success": True, "jobId": job.id, "imageUrl": job.result_urls[0]}

    except FanovaError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error generating NSFW image: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate NSFW image")
