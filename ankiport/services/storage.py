"""
Object storage client.

Talks to a Supabase-compatible storage REST API:
    POST {base}/storage/v1/object/{bucket}/{path}          upload (x-upsert)
    GET  {base}/storage/v1/object/public/{bucket}/{path}   public URL
"""

from typing import Protocol
from urllib.parse import quote

import httpx

from ankiport.config import settings
from ankiport.models.failure import ConfigurationError


class StorageError(Exception):
    """Raised when an object upload fails."""


class MediaStorage(Protocol):
    """Narrow write contract used by the media migrator."""

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store `data` at `path` and return its public URL."""
        ...


class SupabaseStorage:
    """Uploads objects to a public bucket with the service role key."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._service_key = service_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    def object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload one object, overwriting any existing object at `path`.

        Raises:
            StorageError: On network or HTTP failure
        """
        headers = {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            response = await self._client.post(self.object_url(path), content=data, headers=headers)
        except httpx.RequestError as exc:
            raise StorageError(f"Network error uploading {path}: {exc}") from exc

        if not response.is_success:
            raise StorageError(
                f"Failed to upload {path}: HTTP {response.status_code} - {response.text}"
            )

        return self.public_url(path)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def storage_from_settings() -> SupabaseStorage:
    """
    Build the storage client from application settings.

    Raises:
        ConfigurationError: If the storage URL or service key is missing
    """
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise ConfigurationError("Supabase URL or service role key is missing")
    return SupabaseStorage(
        settings.supabase_url,
        settings.supabase_service_role_key,
        settings.media_bucket,
    )
