"""Object storage backends: path + bytes in, public URL out.

Uploads overwrite on conflict. Two backends:
- LocalObjectStorage: files under MEDIA_DIR, served from MEDIA_PUBLIC_URL
- SupabaseObjectStorage: Supabase Storage REST API over a shared httpx client
"""

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx

from memoryreel.config import Settings
from memoryreel.errors import AssetUploadError

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    """Object-storage capability used by the asset publisher."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path`` (overwriting) and return its public URL."""

    @abstractmethod
    async def list_paths(self, prefix: str) -> list[str]:
        """Full paths of every object directly under ``prefix``."""

    @abstractmethod
    async def remove(self, paths: list[str]) -> None:
        """Delete objects; missing paths are ignored."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        ...

    async def close(self) -> None:
        return None


class LocalObjectStorage(ObjectStorage):
    """Filesystem storage for single-host deployments and tests."""

    def __init__(self, root: Path, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return target

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            target = self._resolve(path)
        except ValueError as e:
            raise AssetUploadError(path, str(e)) from e

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _write)
        except OSError as e:
            raise AssetUploadError(path, str(e)) from e

        logger.debug(f"Stored {path} ({len(data)} bytes, {content_type})")
        return self.public_url(path)

    async def list_paths(self, prefix: str) -> list[str]:
        folder = self._resolve(prefix.rstrip("/") + "/.")
        if not folder.is_dir():
            return []
        return sorted(
            f"{prefix.rstrip('/')}/{entry.name}" for entry in folder.iterdir() if entry.is_file()
        )

    async def remove(self, paths: list[str]) -> None:
        for path in paths:
            self._resolve(path).unlink(missing_ok=True)
        # Drop folders left empty by the removal
        for folder in {self._resolve(p).parent for p in paths}:
            if folder.is_dir() and folder != self.root.resolve() and not any(folder.iterdir()):
                shutil.rmtree(folder, ignore_errors=True)


class SupabaseObjectStorage(ObjectStorage):
    """Supabase Storage over its REST API."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, key: str, bucket: str = "media"):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.headers = {"Authorization": f"Bearer {key}", "apikey": key}

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            response = await self.client.post(
                f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}",
                content=data,
                headers={
                    **self.headers,
                    "Content-Type": content_type,
                    "cache-control": "max-age=3600",
                    "x-upsert": "true",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AssetUploadError(path, f"HTTP error: {e}") from e

        return self.public_url(path)

    async def list_paths(self, prefix: str) -> list[str]:
        folder = prefix.rstrip("/")
        response = await self.client.post(
            f"{self.base_url}/storage/v1/object/list/{self.bucket}",
            json={"prefix": folder, "limit": 1000, "offset": 0},
            headers=self.headers,
        )
        response.raise_for_status()
        return [f"{folder}/{item['name']}" for item in response.json() if item.get("name")]

    async def remove(self, paths: list[str]) -> None:
        if not paths:
            return
        response = await self.client.request(
            "DELETE",
            f"{self.base_url}/storage/v1/object/{self.bucket}",
            json={"prefixes": paths},
            headers=self.headers,
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()


def build_storage(config: Settings, client: Optional[httpx.AsyncClient] = None) -> ObjectStorage:
    """Create the configured storage backend."""
    if config.STORAGE_BACKEND == "supabase":
        if not config.SUPABASE_URL or not config.SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for STORAGE_BACKEND=supabase")
        client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10.0, read=120.0, write=120.0, pool=10.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        return SupabaseObjectStorage(client, config.SUPABASE_URL, config.SUPABASE_KEY, config.SUPABASE_BUCKET)

    if config.STORAGE_BACKEND != "local":
        raise ValueError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")
    return LocalObjectStorage(config.MEDIA_DIR, config.MEDIA_PUBLIC_URL)
