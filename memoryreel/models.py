"""Pydantic models for MemoryReel."""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from memoryreel.config import settings


class MediaType(str, Enum):
    VIDEO = "VIDEO"
    PHOTO = "PHOTO"
    COMIC = "COMIC"


class AIStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class GeneratedMetadata(BaseModel):
    """Structured metadata returned by the analysis model."""

    title: str = Field(..., description="Creative title")
    description: str = Field("", description="Short synopsis")
    search_context: str = Field("", alias="searchContext", description="Dense keywords for search")
    genre: list[str] = Field(default_factory=list, description="Short genre labels")
    mood: str = Field("", description="Cinematic mood, used as image style")

    model_config = {"populate_by_name": True}

    @field_validator("genre", mode="before")
    @classmethod
    def _split_genre(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [g.strip() for g in value.split(",") if g.strip()]
        return value


class MediaRecord(BaseModel):
    """The persisted unit of the library.

    Instances are immutable snapshots; edits produce a new record.
    """

    id: str
    title: str
    description: str = ""
    search_context: str = ""
    media_type: MediaType = MediaType.VIDEO
    thumbnail_url: str = ""
    main_asset_url: str = ""
    pages: list[str] = Field(default_factory=list)
    year: int = 0
    created_at: datetime
    end_date: Optional[datetime] = None
    genre: list[str] = Field(default_factory=list)
    match_score: int = 0
    folder_name: str = ""
    ai_status: AIStatus = AIStatus.PENDING
    is_featured: bool = False

    model_config = {"frozen": True}

    @field_validator("created_at", "end_date")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Stored as UTC; SQLite hands back naive datetimes
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def cover_index(self) -> Optional[int]:
        """Index of the page that doubles as the poster, if any."""
        try:
            return self.pages.index(self.thumbnail_url)
        except ValueError:
            return None


class RecordPatch(BaseModel):
    """A single update intent collected by the UI.

    Unset fields are left untouched. ``folder_name=""`` removes the folder.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    search_context: Optional[str] = None
    folder_name: Optional[str] = None
    created_at: Optional[datetime] = None
    end_date: Optional[datetime] = None
    cover_url: Optional[str] = None
    page_order: Optional[list[str]] = None
    remove_pages: Optional[list[str]] = None
    is_featured: Optional[bool] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_unset=True, exclude_none=True)


@dataclass(frozen=True)
class Sample:
    """A normalized still image used as AI input."""

    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"


@dataclass
class MediaFile:
    """An uploaded file as received from the caller."""

    filename: str
    content_type: str
    data: bytes
    last_modified: Optional[datetime] = None

    @property
    def is_typed(self) -> bool:
        """Whether the caller sent a concrete media content type."""
        return self.content_type.startswith(("video/", "image/"))

    @property
    def is_video(self) -> bool:
        if self.is_typed:
            return self.content_type.startswith("video/")
        return f".{self.extension}" in settings.SUPPORTED_VIDEO_FORMATS

    @property
    def is_image(self) -> bool:
        if self.is_typed:
            return self.content_type.startswith("image/")
        return f".{self.extension}" in settings.SUPPORTED_IMAGE_FORMATS

    @property
    def stem(self) -> str:
        return PurePosixPath(self.filename).stem or self.filename

    @property
    def extension(self) -> str:
        suffix = PurePosixPath(self.filename).suffix.lstrip(".").lower()
        return suffix or "dat"


@dataclass
class IngestRequest:
    """Everything the upload dialog submits for one ingestion run."""

    files: list[MediaFile]
    magic_enabled: bool = True
    comic_mode: bool = False
    folder_name: str = ""

    @property
    def primary(self) -> MediaFile:
        return self.files[0]


@dataclass
class IngestResult:
    """Outcome of one ingestion run."""

    record: MediaRecord
    fallback: bool = False
    warnings: list[str] = field(default_factory=list)
    progress: Optional["ProgressSnapshot"] = None


class ProgressSnapshot(BaseModel):
    """Progress state as seen by the rendering side."""

    stage: str
    progress: int = Field(..., ge=0, le=100)
    error: Optional[str] = None


class HealthStatus(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Overall status")
    database_available: bool = Field(..., description="Whether the row store is reachable")
    ai_configured: bool = Field(..., description="Whether an API key is configured")
    storage_backend: str = Field(..., description="Configured object storage backend")
