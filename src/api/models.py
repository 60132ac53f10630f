"""
Model (persona) API Endpoints

CRUD, keep/select image (reference lock) and the two generation flows:
- POST /models/{id}/generate       wizard generation (description or reference images)
- POST /models/{id}/generate-chat  chat generation for an existing model
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.pricing import ALLOWED_IMAGE_COUNTS, BATCH_SIZE
from src.api.auth import (
    Principal,
    ensure_model_access,
    get_current_principal,
    require_unlocked_principal,
)
from src.core.exceptions import FanovaError, to_http_exception
from src.database import crud
from src.database.engine import get_session
from src.database.models import GenerationMethod, JobKind, PersonaModel
from src.services.email_service import email_service
from src.services.generation_service import GenerationRequest, generation_service
from src.services.identity_packet import build_identity_packet, reference_images_for
from src.services.name_generator import name_generator
from src.services.storage_service import supabase_service
from src.utils.image_data import is_data_url

# Create router
router = APIRouter(prefix="/models", tags=["models"])


# ===========================
# REQUEST MODELS
# ===========================


class CreateModelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    age: Optional[int] = None
    nationality: Optional[str] = None
    occupation: Optional[str] = None
    gender: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    generation_method: GenerationMethod = Field(GenerationMethod.DESCRIBE, alias="generationMethod")
    reference_images: List[str] = Field(default_factory=list, alias="referenceImages")


class AttributesRequest(BaseModel):
    attributes: Dict[str, Any]


class FacialFeaturesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    facial_features: Dict[str, Any] = Field(alias="facialFeatures")


class KeepImageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(alias="imageUrl", min_length=1)
    prompt: Optional[str] = None
    lock_reference: bool = Field(False, alias="lockReference")


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    num_images: int = Field(BATCH_SIZE, alias="numImages")
    reference_images: Optional[List[str]] = Field(None, alias="referenceImages")
    background: bool = False


class GenerateChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_prompt: Optional[str] = Field(None, alias="userPrompt")
    num_images: int = Field(BATCH_SIZE, alias="numImages")
    is_nsfw: bool = Field(False, alias="isNsfw")
    options: Dict[str, Any] = Field(default_factory=dict)
    background: bool = False


class GenerateNameRequest(BaseModel):
    nationality: Optional[str] = None
    occupation: Optional[str] = None
    gender: Optional[str] = None


# ===========================
# HELPERS
# ===========================


async def _get_owned_model(session: AsyncSession, principal: Principal, model_id: str) -> PersonaModel:
    model = await crud.get_model(session, model_id)
    if model is None:
        raise HTTPException(status_code=404, detail="Model not found")
    ensure_model_access(principal, model.user_id)
    return model


async def _refresh_identity_packet(session: AsyncSession, model: PersonaModel) -> None:
    """Rebuild the locked identity packet after the reference image changed"""
    packet = build_identity_packet(model, reference_images_for(model))
    await crud.update_model(session, model, identity_packet=packet)


async def _is_first_kept_image(session: AsyncSession, model: PersonaModel) -> bool:
    if await crud.count_user_models(session, model.user_id) != 1:
        return False
    return not await crud.get_model_images(session, model.id, limit=1)


async def _start_generation(
    session: AsyncSession,
    background_tasks: BackgroundTasks,
    model: PersonaModel,
    request: GenerationRequest,
    background: bool,
):
    """Charge, then run inline or hand over to a background task"""
    if request.num_images not in ALLOWED_IMAGE_COUNTS:
        raise HTTPException(
            status_code=400,
            detail={"error": f"numImages must be 1 or {BATCH_SIZE}"},
        )

    job = await generation_service.create_and_charge(session, request)

    if background:
        background_tasks.add_task(generation_service.run_in_background, job.id, request)
        logger.info(f"Job {job.id} queued for model {model.id}")
        return JSONResponse(
            status_code=202,
            content={"success": True, "jobId": job.id, "status": job.status},
        )

    job = await generation_service.run(session, job, request)
    await session.refresh(model)

    return {
        "success": True,
        "jobId": job.id,
        "images": job.result_urls,
        "prompt": request.user_prompt,
        "fullPrompt": job.full_prompt,
        "model": {
            "id": model.id,
            "name": model.name,
            "generationCount": model.generation_count,
        },
    }


# ===========================
# CRUD
# ===========================


@router.post("", status_code=201)
async def create_model(
    body: CreateModelRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Create a model profile (wizard step 1)

    Returns:
        {"success": true, "model": {...}}
    """
    try:
        attributes = dict(body.attributes)
        if body.gender:
            attributes.setdefault("gender", body.gender)

        model = await crud.create_model(
            session,
            user_id=principal.user_id,
            name=body.name or "",
            age=body.age,
            nationality=body.nationality,
            occupation=body.occupation,
            attributes=attributes,
            generation_method=body.generation_method.value,
            reference_images=body.reference_images,
        )
        return {"success": True, "model": crud.serialize_model(model, [])}

    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error creating model: {e}")
        raise HTTPException(status_code=500, detail="Failed to create model profile")


@router.get("")
async def list_models(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Own models, newest first, each with its latest images"""
    models = await crud.get_user_models(session, principal.user_id)
    result = []
    for model in models:
        images = await crud.get_model_images(session, model.id)
        result.append(crud.serialize_model(model, images))
    return {"success": True, "models": result}


@router.get("/selected")
async def get_selected_model(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Most recently updated model with a selected image (null when none)"""
    model = await crud.get_selected_model(session, principal.user_id)
    if model is None:
        return {"success": True, "model": None}
    images = await crud.get_model_images(session, model.id)
    return {"success": True, "model": crud.serialize_model(model, images)}


@router.post("/generate-name")
async def generate_name(
    body: GenerateNameRequest,
    principal: Principal = Depends(get_current_principal),
) -> Dict[str, Any]:
    name = await name_generator.generate(body.nationality, body.occupation, body.gender)
    return {"success": True, "name": name}


@router.get("/{model_id}")
async def get_model(
    model_id: str,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    model = await _get_owned_model(session, principal, model_id)
    images = await crud.get_model_images(session, model.id)
    return {"success": True, "model": crud.serialize_model(model, images)}


@router.put("/{model_id}/attributes")
async def update_attributes(
    model_id: str,
    body: AttributesRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    model = await _get_owned_model(session, principal, model_id)
    model = await crud.update_model(session, model, attributes=body.attributes)
    return {
        "success": True,
        "model": {"id": model.id, "name": model.name, "attributes": model.attributes},
    }


@router.put("/{model_id}/facial-features")
async def update_facial_features(
    model_id: str,
    body: FacialFeaturesRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    model = await _get_owned_model(session, principal, model_id)
    model = await crud.update_model(session, model, facial_features=body.facial_features)
    return {
        "success": True,
        "model": {"id": model.id, "name": model.name, "facialFeatures": model.facial_features},
    }


@router.delete("/{model_id}")
async def delete_model(
    model_id: str,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    model = await _get_owned_model(session, principal, model_id)
    await crud.delete_model(session, model)
    return {"success": True, "message": "Model deleted successfully"}


# ===========================
# IMAGES
# ===========================


@router.post("/{model_id}/images")
async def keep_image(
    model_id: str,
    body: KeepImageRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Keep one generated candidate

    Data URLs are uploaded to Supabase Storage first. A repeated keep of the
    same URL returns the stored row with duplicate=true. lockReference makes
    the image the model's only selected image and rebuilds the identity packet.

    Returns:
        {"success": true, "image": {...}, "duplicate": false}
    """
    model = await _get_owned_model(session, principal, model_id)

    try:
        image_url = body.image_url
        if is_data_url(image_url):
            if supabase_service.is_configured:
                image_url = await supabase_service.store_data_url(image_url, model.user_id, model.id)
            else:
                logger.warning(f"Supabase Storage not configured, keeping data URL for model {model.id}")

        first_image = await _is_first_kept_image(session, model)

        image, duplicate = await crud.save_generated_image(
            session,
            model,
            image_url,
            prompt=body.prompt,
            lock_reference=body.lock_reference,
        )

        if body.lock_reference:
            await _refresh_identity_packet(session, model)

        if first_image and not duplicate:
            owner = await crud.get_profile(session, model.user_id)
            if owner and owner.email:
                background_tasks.add_task(
                    email_service.send_first_model_email,
                    owner.email,
                    model.id,
                    model.name,
                    owner.full_name,
                )

        return {"success": True, "image": crud.serialize_image(image), "duplicate": duplicate}

    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except FanovaError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error saving image for model {model_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save image")


@router.post("/{model_id}/images/{image_id}/select")
async def select_image(
    model_id: str,
    image_id: str,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Make an existing image the model's only selected / locked reference image"""
    model = await _get_owned_model(session, principal, model_id)

    image = await crud.select_model_image(session, model, image_id)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")

    await _refresh_identity_packet(session, model)
    return {"success": True, "image": crud.serialize_image(image), "model": crud.serialize_model(model)}


@router.delete("/{model_id}/images/{image_id}")
async def delete_image(
    model_id: str,
    image_id: str,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    model = await _get_owned_model(session, principal, model_id)
    if not await crud.delete_image(session, model, image_id):
        raise HTTPException(status_code=404, detail="Image not found")
    return {"success": True, "message": "Image deleted successfully"}


# ===========================
# GENERATION
# ===========================


@router.post("/{model_id}/generate")
async def generate(
    model_id: str,
    body: GenerateRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_unlocked_principal),
    session: AsyncSession = Depends(get_session),
):
    """
    Wizard generation

    Reference images (when given) are analysed first; a failed analysis falls
    back to the description prompt. Three images are charged as a batch.
    """
    model = await _get_owned_model(session, principal, model_id)

    request = GenerationRequest(
        kind=JobKind.INITIAL.value,
        user_id=principal.user_id,
        model_id=model.id,
        num_images=body.num_images,
        reference_images=body.reference_images or list(model.reference_images or []),
    )
    logger.info(f"[Generate] model {model_id}, numImages={body.num_images}")

    try:
        return await _start_generation(session, background_tasks, model, request, body.background)
    except FanovaError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error generating images for model {model_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate images")


@router.post("/{model_id}/generate-chat")
async def generate_chat(
    model_id: str,
    body: GenerateChatRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_unlocked_principal),
    session: AsyncSession = Depends(get_session),
):
    """
    Chat generation

    Returns:
        {"success", "jobId", "images", "prompt", "fullPrompt", "model": {"id", "name", "generationCount"}}
    """
    if not body.user_prompt or not body.user_prompt.strip():
        raise HTTPException(status_code=400, detail={"error": "User prompt is required"})

    model = await _get_owned_model(session, principal, model_id)

    request = GenerationRequest(
        kind=JobKind.CHAT.value,
        user_id=principal.user_id,
        model_id=model.id,
        num_images=body.num_images,
        user_prompt=body.user_prompt.strip(),
        is_nsfw=body.is_nsfw,
        options=body.options,
    )

    try:
        return await _start_generation(session, background_tasks, model, request, body.background)
    except FanovaError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error generating chat images for model {model_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate images")
