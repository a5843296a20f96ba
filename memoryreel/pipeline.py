"""End-to-end ingestion: sample -> enrich -> publish -> encode -> store.

One run is a strictly sequential chain. Analysis and comic failures degrade
to placeholder metadata; extraction, main-asset upload and row-store
failures abort the run and move the tracker to ERROR.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence
from uuid import uuid4

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memoryreel.config import Settings, settings
from memoryreel.db.connection import get_session_context
from memoryreel.db.repositories.media import MediaRepository
from memoryreel.enrichment import EnrichmentService, manual_metadata, placeholder_metadata
from memoryreel.errors import (
    AnalysisDegraded,
    AssetUploadError,
    InvalidTransition,
    StoreError,
    UnsupportedFormat,
)
from memoryreel.models import (
    AIStatus,
    GeneratedMetadata,
    IngestRequest,
    IngestResult,
    MediaFile,
    MediaRecord,
    MediaType,
    Sample,
)
from memoryreel.progress import AnalysisStage, ProgressTracker
from memoryreel.publisher import AssetPublisher
from memoryreel.sampler import FrameSampler

logger = logging.getLogger(__name__)

# Progress percentages per stage: (video, photo)
STAGE_PROGRESS = {
    AnalysisStage.EXTRACTING: (5, 5),
    AnalysisStage.ANALYZING: (30, 20),
    AnalysisStage.GENERATING: (60, 40),
    AnalysisStage.GENERATING_COMIC: (70, 60),
    AnalysisStage.SAVING: (90, 90),
}

MATCH_SCORE_RANGE = (85, 98)


def select_media(files: Sequence[MediaFile]) -> list[MediaFile]:
    """The files one run ingests: the first video alone, else every photo.

    Raises:
        UnsupportedFormat: nothing uploaded, or a file is neither video nor image
    """
    if not files:
        raise UnsupportedFormat("(none)", "no files uploaded")

    video = next((f for f in files if f.is_video), None)
    if video is not None:
        if len(files) > 1:
            logger.info(f"Video {video.filename} wins; ignoring {len(files) - 1} other file(s)")
        return [video]

    for f in files:
        if not f.is_image:
            raise UnsupportedFormat(f.filename, f"unsupported content type {f.content_type!r}")
    return list(files)


def stage_progress(stage: AnalysisStage, is_video: bool) -> int:
    video, photo = STAGE_PROGRESS[stage]
    return video if is_video else photo


class IngestionPipeline:
    """Creates library records from uploads."""

    def __init__(
        self,
        sampler: FrameSampler,
        enrichment: Optional[EnrichmentService],
        publisher: AssetPublisher,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.sampler = sampler
        self.enrichment = enrichment
        self.publisher = publisher
        self.session_factory = session_factory
        self.config = config
        self.rng = rng or random.Random()
        self.clock = clock

    async def ingest(
        self, request: IngestRequest, tracker: Optional[ProgressTracker] = None
    ) -> IngestResult:
        """Run one ingestion and return the saved record.

        A tracker left in ERROR is reset; any other tracker must be IDLE.

        Raises:
            ExtractionError: the upload could not be sampled
            AssetUploadError: the main asset could not be stored
            StoreError: the row could not be written
            InvalidTransition: the tracker belongs to a finished or running ingestion
        """
        tracker = tracker or ProgressTracker()
        if tracker.stage == AnalysisStage.ERROR:
            tracker.reset()
        elif tracker.stage != AnalysisStage.IDLE:
            raise InvalidTransition(tracker.stage.value, AnalysisStage.EXTRACTING.value)

        record_id = str(uuid4())
        try:
            return await self._run(record_id, request, tracker)
        except Exception as e:
            logger.error(f"Ingestion {record_id} failed at {tracker.stage.value}: {e}")
            tracker.fail(str(e))
            raise

    async def _run(
        self, record_id: str, request: IngestRequest, tracker: ProgressTracker
    ) -> IngestResult:
        files = select_media(request.files)
        is_video = files[0].is_video
        tracker.advance(AnalysisStage.EXTRACTING, stage_progress(AnalysisStage.EXTRACTING, is_video))

        video_count = self.config.VIDEO_SAMPLE_COUNT if request.magic_enabled else 1
        samples = await self.sampler.sample(files, video_count)
        reference = samples[0]

        warnings: list[str] = []
        fallback = False
        poster = reference
        comic_pages: list[Sample] = []

        if request.magic_enabled:
            tracker.advance(AnalysisStage.ANALYZING, stage_progress(AnalysisStage.ANALYZING, is_video))
            try:
                metadata, poster, comic_pages = await self._enrich(
                    samples, is_video, request.comic_mode, tracker
                )
                ai_status = AIStatus.COMPLETED
            except AnalysisDegraded as e:
                logger.warning(f"Saving {record_id} with placeholder metadata: {e.reason}")
                warnings.append(str(e))
                fallback = True
                metadata = placeholder_metadata(files)
                poster = reference
                comic_pages = []
                ai_status = AIStatus.PENDING
        else:
            metadata = manual_metadata(files)
            ai_status = AIStatus.PENDING

        if comic_pages:
            media_type = MediaType.COMIC
            pages = comic_pages
        elif is_video:
            media_type = MediaType.VIDEO
            pages = []
        else:
            media_type = MediaType.PHOTO
            pages = samples if len(samples) > 1 else []

        tracker.advance(AnalysisStage.SAVING, stage_progress(AnalysisStage.SAVING, is_video))
        assets = await self.publisher.publish(record_id, files[0], poster, pages)
        warnings.extend(assets.warnings)

        created_at = files[0].last_modified or self.clock()
        record = MediaRecord(
            id=record_id,
            title=metadata.title,
            description=metadata.description,
            search_context=metadata.search_context,
            media_type=media_type,
            thumbnail_url=assets.thumbnail_url,
            main_asset_url=assets.main_asset_url,
            pages=assets.pages,
            year=created_at.year,
            created_at=created_at,
            genre=metadata.genre,
            match_score=self._match_score(ai_status),
            folder_name=request.folder_name.strip(),
            ai_status=ai_status,
        )

        await self._save(record)
        tracker.advance(AnalysisStage.COMPLETE)
        logger.info(
            f"Ingested {record_id} '{record.title}' as {media_type.value} "
            f"(ai={ai_status.value}, pages={len(record.pages)})"
        )
        return IngestResult(
            record=record,
            fallback=fallback,
            warnings=warnings,
            progress=tracker.snapshot(),
        )

    async def _enrich(
        self,
        samples: list[Sample],
        is_video: bool,
        comic_mode: bool,
        tracker: ProgressTracker,
    ) -> tuple[GeneratedMetadata, Sample, list[Sample]]:
        """Analysis, poster and optional comic.

        Raises:
            AnalysisDegraded: analysis or comic generation could not complete
        """
        if self.enrichment is None:
            raise AnalysisDegraded("AI client not configured")

        metadata = await self.enrichment.analyze_or_degrade(samples, is_video)

        tracker.advance(AnalysisStage.GENERATING, stage_progress(AnalysisStage.GENERATING, is_video))
        poster, _ = await self.enrichment.poster_or_reference(metadata, samples[0])

        comic_pages: list[Sample] = []
        if comic_mode:
            tracker.advance(
                AnalysisStage.GENERATING_COMIC,
                stage_progress(AnalysisStage.GENERATING_COMIC, is_video),
            )
            try:
                comic_pages = await self.enrichment.generate_comic_pages(samples[0], metadata)
            except Exception as e:
                logger.warning(f"Comic generation failed, saving without pages: {e}", exc_info=True)
                raise AnalysisDegraded(f"comic generation failed: {e}") from e

        return metadata, poster, comic_pages

    def _match_score(self, ai_status: AIStatus) -> int:
        if ai_status != AIStatus.COMPLETED:
            return 0
        return self.rng.randint(*MATCH_SCORE_RANGE)

    async def _save(self, record: MediaRecord) -> None:
        """Upsert the row; on failure drop the assets already uploaded."""
        try:
            async with get_session_context(self.session_factory) as session:
                await MediaRepository(session).upsert(record)
        except StoreError:
            try:
                await self.publisher.remove_all(record.id)
            except (AssetUploadError, httpx.HTTPError, OSError) as cleanup_error:
                logger.warning(f"Could not clean up assets of unsaved {record.id}: {cleanup_error}")
            raise
