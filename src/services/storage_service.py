"""
Supabase Storage + Auth admin wrapper

The supabase client is synchronous; calls run in the threadpool so they
never block the event loop.
"""
import uuid
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from loguru import logger
from supabase import AuthApiError, Client, create_client

from config.config import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_STORAGE_BUCKET, SUPABASE_URL
from src.core.exceptions import ConfigurationError
from src.utils.image_data import extension_for, parse_data_url


class SupabaseService:
    """Storage uploads and auth user administration"""

    def __init__(self, client: Optional[Client] = None, bucket: str = SUPABASE_STORAGE_BUCKET):
        self._client = client
        self.bucket = bucket

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.is_configured:
                raise ConfigurationError("Supabase is not configured")
            self._client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
        return self._client

    # ===========================
    # STORAGE
    # ===========================

    async def upload_image(self, data: bytes, path: str, content_type: str = "image/png") -> str:
        """
        Upload bytes to the images bucket

        Returns:
            Public URL of the stored object
        """
        bucket = self.client.storage.from_(self.bucket)
        await run_in_threadpool(
            bucket.upload,
            path,
            data,
            {"content-type": content_type, "upsert": "false"},
        )
        url = await run_in_threadpool(bucket.get_public_url, path)
        logger.debug(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return url.rstrip("?")

    async def store_data_url(self, data_url: str, user_id: str, model_id: str) -> str:
        """Decode a base64 data URL and store it under <user>/<model>/"""
        mime_type, data = parse_data_url(data_url)
        path = f"{user_id}/{model_id}/{uuid.uuid4().hex}.{extension_for(mime_type)}"
        return await self.upload_image(data, path, mime_type)

    # ===========================
    # AUTH ADMIN
    # ===========================

    async def create_auth_user(self, email: str, password: str) -> str:
        """Create a confirmed auth user, returns its id"""
        response = await run_in_threadpool(
            self.client.auth.admin.create_user,
            {"email": email, "password": password, "email_confirm": True},
        )
        return response.user.id

    async def update_auth_user_password(self, user_id: str, password: str) -> None:
        await run_in_threadpool(
            self.client.auth.admin.update_user_by_id,
            user_id,
            {"password": password},
        )

    async def delete_auth_user(self, user_id: str) -> None:
        await run_in_threadpool(self.client.auth.admin.delete_user, user_id)

    async def sign_in(self, email: str, password: str) -> Optional[str]:
        """
        Password sign-in

        Returns:
            User id, or None when the credentials are rejected
        """
        try:
            response = await run_in_threadpool(
                self.client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except AuthApiError as e:
            logger.info(f"Supabase sign-in rejected for {email}: {e}")
            return None
        return response.user.id if response.user else None


# Global instance
supabase_service = SupabaseService()
