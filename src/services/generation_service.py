# coding: utf-8
"""
Generation Orchestrator

Every generation request is a GenerationJob:
    queued -> running -> completed | failed

Order of operations:
1. create job, gate & charge atomically (CreditService)
2. build the prompt, call the providers (progress per produced image)
3. failure: refund the charge, mark the job failed
4. success: bump generation_count, watermark if the plan requires it
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.pricing import ALLOWED_IMAGE_COUNTS, BATCH_SIZE, should_add_watermark
from src.core.exceptions import FanovaError, GenerationError
from src.database import crud
from src.database.engine import get_session_maker
from src.database.models import GenerationJob, JobKind, JobStatus, PersonaModel
from src.services.credit_service import CreditService
from src.services.gemini_service import gemini_service
from src.services.identity_packet import build_locked_prompt
from src.services.image_generator import image_generator
from src.services.prompt_enhancer import prompt_enhancer
from src.services.prompt_firewall import generate_safe_prompt
from src.services.prompt_generator import (
    generate_chat_prompt,
    generate_negative_prompt,
    generate_prompt,
    generate_prompt_from_analysis,
)
from src.services.wavespeed_service import wavespeed_service
from src.services.watermark_service import add_watermark, watermark_mime_type
from src.utils.image_data import load_image, to_data_url


@dataclass
class GenerationRequest:
    """Everything a job needs to run (also outside the request)"""

    kind: str
    user_id: str
    model_id: Optional[str] = None
    num_images: int = BATCH_SIZE
    user_prompt: Optional[str] = None
    is_nsfw: bool = False
    options: dict = field(default_factory=dict)
    reference_images: List[str] = field(default_factory=list)
    image_url: Optional[str] = None  # NSFW edit source


class GenerationService:
    """Runs generation jobs"""

    def __init__(
        self,
        generator=image_generator,
        enhancer=prompt_enhancer,
        vision=gemini_service,
        editor=wavespeed_service,
    ):
        self.generator = generator
        self.enhancer = enhancer
        self.vision = vision
        self.editor = editor

    # ===========================
    # CHARGE
    # ===========================

    async def create_and_charge(self, session: AsyncSession, request: GenerationRequest) -> GenerationJob:
        """
        Create the job and charge for it

        A free-tier request is cut down to the free images left; the job and
        request then carry the granted count.

        Raises:
            ValueError: image count other than 1 or a batch
            NsfwNotAllowedError / FreeLimitReachedError / InsufficientCreditsError:
                the job is stored as failed, nothing was charged
        """
        if request.kind != JobKind.NSFW.value and request.num_images not in ALLOWED_IMAGE_COUNTS:
            raise ValueError(f"num_images must be one of {ALLOWED_IMAGE_COUNTS}, got {request.num_images}")

        job = await crud.create_job(
            session,
            user_id=request.user_id,
            kind=request.kind,
            model_id=request.model_id,
            num_images=request.num_images,
            user_prompt=request.user_prompt,
        )

        options = dict(request.options or {})
        if request.kind != JobKind.NSFW.value:
            options["batch"] = request.num_images == BATCH_SIZE

        try:
            deduction = await CreditService.check_and_deduct_for_generation(
                session,
                request.user_id,
                is_nsfw=request.is_nsfw,
                options=options,
                idempotency_key=f"generation:{job.id}",
                num_images=request.num_images,
            )
        except FanovaError as e:
            job = await self._reload(session, job.id)
            await crud.update_job(session, job, status=JobStatus.FAILED.value, error=e.message)
            raise

        if deduction.num_images < request.num_images:
            logger.info(f"Job {job.id} capped to {deduction.num_images} free image(s)")
            request.num_images = deduction.num_images

        return await crud.update_job(
            session,
            job,
            cost=deduction.cost,
            is_free=deduction.is_free,
            transaction_id=deduction.transaction_id,
            num_images=request.num_images,
        )

    # ===========================
    # RUN
    # ===========================

    async def run(self, session: AsyncSession, job: GenerationJob, request: GenerationRequest) -> GenerationJob:
        """
        Run a charged job to completion

        Raises:
            GenerationError (and other FanovaError): job failed, charge refunded
        """
        job_id = job.id
        await crud.update_job(session, job, status=JobStatus.RUNNING.value, progress=5)

        async def on_image(count: int) -> None:
            progress = 10 + int(80 * count / max(request.num_images, 1))
            await crud.update_job(session, job, progress=min(progress, 90))

        try:
            if request.kind == JobKind.NSFW.value:
                full_prompt = request.user_prompt
                images = [await self.editor.edit_image(request.image_url, request.user_prompt)]
            else:
                model = await crud.get_model(session, request.model_id)
                if model is None:
                    raise GenerationError("Model not found")

                prompt, reference = await self._build_prompt(session, model, request)
                full_prompt = prompt
                images = await self.generator.generate_images(
                    prompt,
                    generate_negative_prompt(),
                    request.num_images,
                    reference,
                    on_image,
                )

            profile = await crud.get_profile(session, request.user_id)
            if should_add_watermark(profile.subscription_plan if profile else None):
                images = [await self._watermark(url) for url in images]

        except FanovaError as e:
            await self._fail(session, job_id, request.user_id, e.message)
            raise
        except Exception as e:
            logger.exception(f"❌ Unexpected error in generation job {job_id}: {e}")
            await self._fail(session, job_id, request.user_id, "Failed to generate images")
            raise GenerationError("Failed to generate images. Please try again.") from e

        if request.model_id:
            await crud.increment_generation_count(session, request.model_id, len(images))

        job = await self._reload(session, job_id)
        job = await crud.update_job(
            session,
            job,
            status=JobStatus.COMPLETED.value,
            progress=100,
            result_urls=images,
            full_prompt=full_prompt,
        )
        logger.info(f"✅ Job {job_id} completed with {len(images)} images")
        return job

    async def run_in_background(self, job_id: str, request: GenerationRequest) -> None:
        """BackgroundTask entry point: own session, errors end up on the job row"""
        session_maker = get_session_maker()
        async with session_maker() as session:
            job = await crud.get_job(session, job_id)
            if job is None:
                logger.error(f"Background job {job_id} not found")
                return
            try:
                await self.run(session, job, request)
            except FanovaError as e:
                logger.warning(f"Background job {job_id} failed: {e.message}")

    # ===========================
    # HELPERS
    # ===========================

    async def _build_prompt(
        self, session: AsyncSession, model: PersonaModel, request: GenerationRequest
    ) -> Tuple[str, Optional[str]]:
        """
        Returns:
            (prompt, locked reference image URL or None)
        """
        reference = model.selected_image_url

        if request.kind == JobKind.INITIAL.value:
            prompt = None
            if request.reference_images:
                try:
                    analysis = await self.vision.analyze_reference_images(request.reference_images)
                    await crud.update_model(session, model, analyzed_features=analysis)
                    prompt = generate_prompt_from_analysis(analysis, model.attributes)
                except (FanovaError, ValueError) as e:
                    logger.warning(f"Reference analysis failed for model {model.id}, using attributes: {e}")

            if prompt is None:
                prompt = generate_prompt(model.attributes, model.facial_features, model.age)

            await crud.update_model(session, model, prompt=prompt)
            return prompt, reference

        user_prompt = request.user_prompt or ""
        if reference:
            user_prompt = generate_safe_prompt(user_prompt, model.id).filtered_prompt

        prompt = await self.enhancer.enhance(
            user_prompt,
            age=model.age,
            nationality=model.nationality,
            attributes=model.attributes,
            facial_features=model.facial_features,
            reference_image_url=reference,
        )
        if not prompt:
            prompt = generate_chat_prompt(user_prompt, model.attributes, model.facial_features, model.age)

        if reference and model.identity_packet:
            prompt = build_locked_prompt(model.identity_packet, prompt)

        return prompt, reference

    async def _watermark(self, url: str) -> str:
        loaded = await load_image(url)
        if loaded is None:
            logger.warning(f"Could not load image for watermarking: {url[:80]}")
            return url
        _, data = loaded
        marked = await run_in_threadpool(add_watermark, data)
        return to_data_url(marked, watermark_mime_type(data))

    async def _fail(self, session: AsyncSession, job_id: str, user_id: str, error: str) -> None:
        """Refund the charge (once) and mark the job failed"""
        await session.rollback()
        job = await self._reload(session, job_id)

        if job.cost > 0:
            await CreditService.refund(
                session,
                user_id,
                job.cost,
                reason=f"generation failed (job {job_id})",
                transaction_id=f"refund:{job_id}",
            )
            job = await self._reload(session, job_id)

        await crud.update_job(session, job, status=JobStatus.FAILED.value, error=error)
        logger.warning(f"❌ Job {job_id} failed: {error}")

    @staticmethod
    async def _reload(session: AsyncSession, job_id: str) -> GenerationJob:
        return await session.get(GenerationJob, job_id, populate_existing=True)


# Global instance
generation_service = GenerationService()
