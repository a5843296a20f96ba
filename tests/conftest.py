"""
Shared fixtures for the MemoryReel test suite.

- session_factory: temp-file SQLite (aiosqlite) row store with the schema created
- storage / publisher: local filesystem object storage under tmp_path
- vision: scripted stand-in for the OpenAI vision client
- sleeps / fake_sleep: records backoff delays instead of waiting
- make_png / video_bytes: synthetic media built with Pillow and OpenCV
"""

import io
import json
from datetime import datetime, timezone
from typing import Callable, List

import cv2
import numpy as np
import pytest
import pytest_asyncio
from PIL import Image

from memoryreel.db.connection import build_engine, build_session_factory, close_db, init_db
from memoryreel.enrichment import EnrichmentService
from memoryreel.models import MediaFile, MediaRecord
from memoryreel.publisher import AssetPublisher
from memoryreel.sampler import FrameSampler
from memoryreel.storage import LocalObjectStorage


# ============================================================================
# Fakes
# ============================================================================

ANALYSIS_JSON = json.dumps({
    "title": "Beach Day",
    "description": "Two friends race the tide.",
    "searchContext": "beach, sand, waves, kite, sunset",
    "genre": ["Adventure", "Comedy"],
    "mood": "Golden hour",
})


class FakeVisionClient:
    """Scripted analyze / generate-image capability.

    ``analyze_results`` and ``image_results`` are consumed in order; an
    exception instance is raised instead of returned. When a script runs out
    the last entry repeats.
    """

    def __init__(self, analyze_results=None, image_results=None):
        self.analyze_results = list(analyze_results or [ANALYSIS_JSON])
        self.image_results = list(image_results or [b"\x89PNG generated"])
        self.analyze_calls: List[dict] = []
        self.image_calls: List[dict] = []

    @staticmethod
    def _next(script):
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def analyze(self, images, prompt, schema):
        self.analyze_calls.append({"images": list(images), "prompt": prompt, "schema": schema})
        return self._next(self.analyze_results)

    async def generate_image(self, reference, prompt, aspect_ratio="3:4"):
        self.image_calls.append({"reference": reference, "prompt": prompt, "aspect_ratio": aspect_ratio})
        result = self._next(self.image_results)
        if callable(result):
            return result(len(self.image_calls))
        return result

    async def close(self):
        return None


# ============================================================================
# Synthetic media
# ============================================================================

@pytest.fixture
def make_png() -> Callable[..., bytes]:
    def _make(color=(200, 40, 40), size=(64, 48)) -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", size, color).save(buffer, format="PNG")
        return buffer.getvalue()
    return _make


@pytest.fixture
def make_photo(make_png) -> Callable[..., MediaFile]:
    def _make(name="photo.png", color=(200, 40, 40), last_modified=None) -> MediaFile:
        return MediaFile(
            filename=name,
            content_type="image/png",
            data=make_png(color),
            last_modified=last_modified,
        )
    return _make


@pytest.fixture
def video_bytes(tmp_path) -> bytes:
    """10 s, 10 fps, 800x600 MJPG clip whose brightness changes every second."""
    path = tmp_path / "clip.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (800, 600))
    try:
        for i in range(100):
            frame = np.full((600, 800, 3), (i // 10) * 25, dtype=np.uint8)
            writer.write(frame)
    finally:
        writer.release()
    return path.read_bytes()


@pytest.fixture
def video_file(video_bytes) -> MediaFile:
    return MediaFile(filename="holiday.avi", content_type="video/x-msvideo", data=video_bytes)


# ============================================================================
# Services
# ============================================================================

@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'memoryreel.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await close_db(engine)


@pytest.fixture
def storage(tmp_path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / "media", "http://test/files")


@pytest.fixture
def publisher(storage) -> AssetPublisher:
    return AssetPublisher(storage)


@pytest.fixture
def sampler() -> FrameSampler:
    return FrameSampler(max_dimension=512, jpeg_quality=60, timeout=10)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def vision() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def enrichment(vision, fake_sleep) -> EnrichmentService:
    return EnrichmentService(
        vision,
        max_retries=2,
        initial_delay=1.0,
        page_count=4,
        page_delay=0.5,
        sleep=fake_sleep,
    )


@pytest.fixture
def make_record() -> Callable[..., MediaRecord]:
    def _make(id="rec-1", created_at=None, **overrides) -> MediaRecord:
        created = created_at or datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)
        data = {
            "id": id,
            "title": "Beach Day",
            "created_at": created,
            "year": created.year,
            "thumbnail_url": f"http://test/files/{id}/poster.png",
            "main_asset_url": f"http://test/files/{id}/main.mp4",
        }
        data.update(overrides)
        return MediaRecord(**data)
    return _make
