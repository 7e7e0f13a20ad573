"""Tests for the object storage client."""

import httpx
import pytest
import respx

from ankiport.config import settings
from ankiport.models.failure import ConfigurationError, ImportErrorCode
from ankiport.services.storage import StorageError, SupabaseStorage, storage_from_settings

BASE_URL = "https://project.supabase.test"


class TestSupabaseStorage:
    def test_public_url(self) -> None:
        """Public URLs point at the public object path."""
        storage = SupabaseStorage(f"{BASE_URL}/", "key", "card-media")

        assert storage.public_url("u1/anki-media/my image.png") == (
            f"{BASE_URL}/storage/v1/object/public/card-media/u1/anki-media/my%20image.png"
        )

    @respx.mock
    async def test_upload(self) -> None:
        """Uploads with upsert and returns the public URL."""
        route = respx.post(f"{BASE_URL}/storage/v1/object/card-media/u1/anki-media/a.png").mock(
            return_value=httpx.Response(200, json={"Key": "card-media/u1/anki-media/a.png"})
        )
        storage = SupabaseStorage(BASE_URL, "service-key", "card-media")

        url = await storage.upload("u1/anki-media/a.png", b"png", "image/png")
        await storage.aclose()

        assert url == f"{BASE_URL}/storage/v1/object/public/card-media/u1/anki-media/a.png"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["x-upsert"] == "true"
        assert request.headers["Content-Type"] == "image/png"
        assert request.content == b"png"

    @respx.mock
    async def test_upload_http_error(self) -> None:
        """Non-success responses raise StorageError."""
        respx.post(f"{BASE_URL}/storage/v1/object/card-media/a.png").mock(
            return_value=httpx.Response(413, text="Payload too large")
        )
        storage = SupabaseStorage(BASE_URL, "key", "card-media")

        with pytest.raises(StorageError, match="413"):
            await storage.upload("a.png", b"png", "image/png")
        await storage.aclose()

    @respx.mock
    async def test_upload_network_error(self) -> None:
        """Network failures raise StorageError."""
        respx.post(f"{BASE_URL}/storage/v1/object/card-media/a.png").mock(
            side_effect=httpx.ConnectError("refused")
        )
        storage = SupabaseStorage(BASE_URL, "key", "card-media")

        with pytest.raises(StorageError, match="Network error"):
            await storage.upload("a.png", b"png", "image/png")
        await storage.aclose()


class TestStorageFromSettings:
    def test_missing_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Missing URL or key is a configuration error."""
        monkeypatch.setattr(settings, "supabase_url", "")

        with pytest.raises(ConfigurationError) as exc_info:
            storage_from_settings()

        assert exc_info.value.code == ImportErrorCode.CONFIGURATION_ERROR
        assert exc_info.value.status_code == 503

    async def test_builds_client(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Configured settings produce a storage client for the media bucket."""
        monkeypatch.setattr(settings, "supabase_url", BASE_URL)
        monkeypatch.setattr(settings, "supabase_service_role_key", "key")

        storage = storage_from_settings()

        assert storage.bucket == settings.media_bucket
        assert storage.base_url == BASE_URL
        await storage.aclose()
