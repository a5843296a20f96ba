"""Tests for the object storage backends."""

import json

import httpx
import pytest

from memoryreel.config import Settings
from memoryreel.errors import AssetUploadError
from memoryreel.storage import LocalObjectStorage, SupabaseObjectStorage, build_storage

SUPABASE_URL = "https://proj.supabase.co"


class TestLocalStorage:
    async def test_upload_list_remove(self, storage):
        url = await storage.upload("rec-1/poster.png", b"img", "image/png")
        await storage.upload("rec-1/main.mp4", b"vid", "video/mp4")

        assert url == "http://test/files/rec-1/poster.png"
        assert (storage.root / "rec-1" / "poster.png").read_bytes() == b"img"
        assert await storage.list_paths("rec-1/") == ["rec-1/main.mp4", "rec-1/poster.png"]

        await storage.remove(["rec-1/main.mp4", "rec-1/poster.png", "rec-1/missing.png"])
        assert await storage.list_paths("rec-1") == []
        assert not (storage.root / "rec-1").exists()

    async def test_list_unknown_prefix(self, storage):
        assert await storage.list_paths("nothing-here") == []

    async def test_path_traversal_rejected(self, storage):
        with pytest.raises(AssetUploadError):
            await storage.upload("../escape.txt", b"x", "text/plain")


def _supabase(handler) -> SupabaseObjectStorage:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseObjectStorage(client, SUPABASE_URL, "service-key", "media")


class TestSupabaseStorage:
    async def test_upload_overwrites_and_returns_public_url(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "media/rec-1/poster.png"})

        storage = _supabase(handler)
        url = await storage.upload("rec-1/poster.png", b"img", "image/png")
        await storage.close()

        assert url == f"{SUPABASE_URL}/storage/v1/object/public/media/rec-1/poster.png"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/storage/v1/object/media/rec-1/poster.png"
        assert request.headers["x-upsert"] == "true"
        assert request.headers["authorization"] == "Bearer service-key"
        assert request.headers["content-type"] == "image/png"
        assert request.content == b"img"

    async def test_http_error_becomes_upload_error(self):
        storage = _supabase(lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(AssetUploadError) as exc_info:
            await storage.upload("rec-1/main.mp4", b"v", "video/mp4")
        assert exc_info.value.path == "rec-1/main.mp4"

    async def test_list_and_remove(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path.startswith("/storage/v1/object/list/"):
                return httpx.Response(200, json=[{"name": "poster.png"}, {"name": "main.mp4"}])
            return httpx.Response(200, json=[])

        storage = _supabase(handler)
        paths = await storage.list_paths("rec-1/")
        await storage.remove(paths)

        assert paths == ["rec-1/poster.png", "rec-1/main.mp4"]
        assert json.loads(requests[0].content)["prefix"] == "rec-1"
        assert requests[1].method == "DELETE"
        assert json.loads(requests[1].content) == {"prefixes": ["rec-1/poster.png", "rec-1/main.mp4"]}


class TestBuildStorage:
    def test_local_default(self, tmp_path):
        config = Settings()
        config.STORAGE_BACKEND = "local"
        config.MEDIA_DIR = tmp_path
        assert isinstance(build_storage(config), LocalObjectStorage)

    def test_supabase_requires_credentials(self):
        config = Settings()
        config.STORAGE_BACKEND = "supabase"
        config.SUPABASE_URL = ""
        with pytest.raises(ValueError):
            build_storage(config)

    def test_unknown_backend(self):
        config = Settings()
        config.STORAGE_BACKEND = "ftp"
        with pytest.raises(ValueError):
            build_storage(config)
