# coding: utf-8
"""
Wavespeed Service (Seedream v4 image edit, used for NSFW generation)

Tasks are asynchronous: submit, then poll the result URL until the task
completes, fails or the poll budget runs out.
"""
import asyncio
import logging  # Needed for tenacity before_sleep_log level constants
from typing import Optional

import aiohttp
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from loguru import logger

from config.config import WAVESPEED_API_KEY, WavespeedConfig
from src.core.exceptions import ConfigurationError, GenerationError


COMPLETED_STATUSES = ("completed", "succeeded")
FAILED_STATUSES = ("failed", "error")
PENDING_STATUSES = ("created", "processing", "starting")


def extract_output_url(result: dict) -> Optional[str]:
    """First output of a completed task (string or {url|image_url}), else top-level url fields"""
    outputs = result.get("outputs") or []
    if outputs:
        first = outputs[0]
        if isinstance(first, str):
            return first
        if isinstance(first, dict):
            return first.get("url") or first.get("image_url")
    return result.get("image_url") or result.get("url") or result.get("result")


class WavespeedService:
    """Client for the Wavespeed edit API"""

    def __init__(
        self,
        api_key: str = WAVESPEED_API_KEY,
        max_poll_attempts: int = WavespeedConfig.MAX_POLL_ATTEMPTS,
        poll_interval: float = WavespeedConfig.POLL_INTERVAL_SECONDS,
    ):
        self.api_key = api_key
        self.max_poll_attempts = max_poll_attempts
        self.poll_interval = poll_interval

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    @retry(
        retry=retry_if_exception_type(aiohttp.ClientConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _submit(self, session: aiohttp.ClientSession, image_url: str, prompt: str) -> dict:
        body = {
            "enable_base64_output": False,
            "enable_sync_mode": False,
            "images": [image_url],
            "prompt": prompt,
        }
        async with session.post(WavespeedConfig.EDIT_URL, json=body, headers=self._headers()) as response:
            if response.status != 200:
                text = await response.text()
                logger.error(f"Wavespeed submit failed {response.status}: {text[:300]}")
                raise GenerationError(f"Wavespeed API error: {response.status}")
            return await response.json()

    async def _poll(self, session: aiohttp.ClientSession, result_url: str) -> str:
        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)

            async with session.get(result_url, headers=self._headers()) as response:
                if response.status != 200:
                    logger.warning(f"Wavespeed poll {attempt} returned {response.status}")
                    continue
                payload = await response.json()

            result = payload.get("data") or payload
            status = (result.get("status") or "").lower()
            logger.debug(f"Wavespeed poll {attempt}/{self.max_poll_attempts}: {status}")

            if status in COMPLETED_STATUSES:
                output = extract_output_url(result)
                if not output:
                    raise GenerationError("No output image in Wavespeed result")
                return output

            if status in FAILED_STATUSES:
                raise GenerationError(result.get("error") or "Wavespeed generation failed")

            if status not in PENDING_STATUSES:
                logger.warning(f"Unknown Wavespeed status: {status}")

        raise GenerationError("Wavespeed generation timed out")

    async def edit_image(self, image_url: str, prompt: str) -> str:
        """
        Submit an edit task and wait for the result

        Args:
            image_url: Source image (public URL)
            prompt: Edit prompt

        Returns:
            Output image URL

        Raises:
            ConfigurationError: WAVESPEED_API_KEY missing
            GenerationError: Task failed, timed out or the API errored
        """
        if not self.is_configured:
            raise ConfigurationError("Wavespeed API key not configured")

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30)) as session:
                submitted = await self._submit(session, image_url, prompt)

                data = submitted.get("data") or submitted
                task_id = data.get("id")
                result_url = (data.get("urls") or {}).get("get")

                if result_url:
                    logger.info(f"🌶️ Wavespeed task submitted: {task_id}")
                    output = await self._poll(session, result_url)
                elif (data.get("status") or "").lower() in COMPLETED_STATUSES and extract_output_url(data):
                    output = extract_output_url(data)
                else:
                    raise GenerationError("No result URL in Wavespeed response")

        except aiohttp.ClientError as e:
            raise GenerationError(f"Wavespeed connection failed: {e}") from e

        logger.info(f"✅ Wavespeed task {task_id} completed")
        return output


# Global instance
wavespeed_service = WavespeedService()
