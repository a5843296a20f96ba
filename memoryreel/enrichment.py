"""AI enrichment: frame analysis, poster art and comic pages.

Every external call goes through ``run_with_retry``: rate-limit and
unavailable signals are retried with exponential backoff, auth failures
propagate at once. Analysis failures never fail an ingestion; callers get
``AnalysisDegraded`` and save the record with placeholder metadata.
"""

import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from openai import (
    APIConnectionError,
    APITimeoutError,
    AuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)
from pydantic import ValidationError

from memoryreel.ai_client import VisionClient
from memoryreel.config import settings
from memoryreel.errors import (
    AnalysisDegraded,
    AnalysisParseError,
    ImageGenerationError,
    RetryExhausted,
)
from memoryreel.models import GeneratedMetadata, MediaFile, Sample
from memoryreel.prompts import get_analysis_prompt, get_comic_page_prompt, get_poster_prompt, ANALYSIS_SCHEMA

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
FATAL_STATUS = {401, 403}

PENDING_DESCRIPTION = "Waiting for AI analysis..."
MANUAL_DESCRIPTION = "Manual upload (AI skipped)"


# =============================================================================
# RETRY POLICY
# =============================================================================

def is_retryable(error: BaseException) -> bool:
    """Rate-limit / unavailable signals that are worth another attempt."""
    if isinstance(error, (AuthenticationError, PermissionDeniedError)):
        return False
    if isinstance(error, (RateLimitError, InternalServerError, APIConnectionError, APITimeoutError)):
        return True
    status = getattr(error, "status_code", None)
    if status in FATAL_STATUS:
        return False
    if status in RETRYABLE_STATUS:
        return True
    message = str(error).lower()
    return "429" in message or "quota" in message or "unavailable" in message


async def run_with_retry(
    call: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "AI call",
) -> T:
    """Run ``call`` with up to ``max_retries`` retries on retryable errors.

    Delays start at ``initial_delay`` and double after every failed attempt.
    Non-retryable errors propagate unchanged; a retryable error that outlives
    the budget is raised as RetryExhausted.
    """
    retries = settings.AI_MAX_RETRIES if max_retries is None else max_retries
    delay = settings.AI_RETRY_INITIAL_DELAY if initial_delay is None else initial_delay
    attempts = retries + 1

    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt == attempts:
                logger.error(f"{label}: giving up after {attempts} attempts: {e}")
                raise RetryExhausted(attempts, e) from e
            logger.warning(
                f"{label}: attempt {attempt}/{attempts} failed ({type(e).__name__}), "
                f"retrying in {delay:.1f}s"
            )
            await sleep(delay)
            delay *= 2

    raise RuntimeError("unreachable")


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def clean_json_response(response: str) -> str:
    """Strip markdown fences and trim to the outermost {...} object."""
    text = response.strip()

    fence = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    if fence:
        text = fence.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]

    return text.strip().rstrip(";").strip()


def parse_metadata(response: str) -> GeneratedMetadata:
    """Parse the analysis response, cleaning it up if the raw text is not JSON.

    Raises:
        AnalysisParseError: nothing parseable, or required fields missing
    """
    if not response or not response.strip():
        raise AnalysisParseError("Empty response from AI")

    try:
        data = json.loads(response)
    except json.JSONDecodeError:
        cleaned = clean_json_response(response)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse analysis JSON: {e}")
            logger.debug(f"Raw response: {response[:500]}")
            raise AnalysisParseError("AI returned invalid data format") from e

    if not isinstance(data, dict):
        raise AnalysisParseError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        metadata = GeneratedMetadata.model_validate(data)
    except ValidationError as e:
        raise AnalysisParseError(f"Incomplete metadata: {e.error_count()} error(s)") from e

    if not metadata.title.strip():
        raise AnalysisParseError("AI returned an empty title")
    return metadata


# =============================================================================
# PLACEHOLDER METADATA
# =============================================================================

def placeholder_metadata(files: Sequence[MediaFile]) -> GeneratedMetadata:
    """Metadata for a record whose analysis failed; enrichment stays PENDING."""
    return GeneratedMetadata(
        title=files[0].stem,
        description=PENDING_DESCRIPTION,
        search_context="pending upload",
        genre=["Unsorted"],
        mood="Raw",
    )


def manual_metadata(files: Sequence[MediaFile]) -> GeneratedMetadata:
    """Metadata for an upload with AI switched off."""
    if len(files) > 1:
        description = f"Photo set ({len(files)} images)"
    else:
        description = MANUAL_DESCRIPTION
    return GeneratedMetadata(
        title=files[0].stem,
        description=description,
        search_context=", ".join(f.filename for f in files),
        genre=["Manual"],
        mood="Direct",
    )


# =============================================================================
# SERVICE
# =============================================================================

class EnrichmentService:
    """Drives the analyze / generate-image calls for one upload."""

    def __init__(
        self,
        client: VisionClient,
        max_retries: Optional[int] = None,
        initial_delay: Optional[float] = None,
        page_count: Optional[int] = None,
        page_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.max_retries = settings.AI_MAX_RETRIES if max_retries is None else max_retries
        self.initial_delay = (
            settings.AI_RETRY_INITIAL_DELAY if initial_delay is None else initial_delay
        )
        self.page_count = page_count or settings.COMIC_PAGE_COUNT
        self.page_delay = settings.COMIC_PAGE_DELAY if page_delay is None else page_delay
        self._sleep = sleep

    async def _retry(self, call: Callable[[], Awaitable[T]], label: str) -> T:
        return await run_with_retry(
            call,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            sleep=self._sleep,
            label=label,
        )

    async def analyze(self, samples: Sequence[Sample], is_video: bool = True) -> GeneratedMetadata:
        """Analyze all samples in a single request.

        Raises:
            RetryExhausted, AnalysisParseError, or the SDK's auth errors
        """
        if not samples:
            raise AnalysisParseError("No samples to analyze")

        prompt = get_analysis_prompt(len(samples), is_video)

        async def call() -> GeneratedMetadata:
            raw = await self.client.analyze(samples, prompt, ANALYSIS_SCHEMA)
            return parse_metadata(raw)

        metadata = await self._retry(call, "analysis")
        logger.info(f"Analysis complete: '{metadata.title}' ({', '.join(metadata.genre)})")
        return metadata

    async def analyze_or_degrade(
        self, samples: Sequence[Sample], is_video: bool = True
    ) -> GeneratedMetadata:
        """Like ``analyze`` but every failure surfaces as AnalysisDegraded."""
        try:
            return await self.analyze(samples, is_video)
        except Exception as e:
            logger.warning(f"AI analysis unavailable, falling back to placeholder: {e}", exc_info=True)
            raise AnalysisDegraded(str(e)) from e

    async def generate_poster(self, metadata: GeneratedMetadata, reference: Sample) -> bytes:
        """One poster image conditioned on the metadata and a reference sample."""
        prompt = get_poster_prompt(metadata.title, metadata.mood)
        return await self._retry(
            lambda: self.client.generate_image(reference, prompt, aspect_ratio="3:4"),
            "poster",
        )

    async def poster_or_reference(
        self, metadata: GeneratedMetadata, reference: Sample
    ) -> tuple[Sample, bool]:
        """Generated poster, or the raw reference sample if generation fails.

        Returns:
            Tuple of (poster sample, whether it was generated)
        """
        try:
            data = await self.generate_poster(metadata, reference)
            return Sample(data=data, mime_type="image/png"), True
        except Exception as e:
            logger.warning(f"Poster generation failed, using original frame: {e}", exc_info=True)
            return reference, False

    async def generate_comic_pages(
        self, reference: Sample, metadata: GeneratedMetadata
    ) -> list[Sample]:
        """Generate the fixed four-page arc, sequentially, all-or-nothing.

        Any page failing raises and no pages are returned.
        """
        pages: list[Sample] = []
        for page in range(1, self.page_count + 1):
            prompt = get_comic_page_prompt(page, metadata.title, metadata.description, metadata.mood)
            try:
                data = await self._retry(
                    lambda: self.client.generate_image(reference, prompt, aspect_ratio="3:4"),
                    f"comic page {page}/{self.page_count}",
                )
            except Exception as e:
                logger.error(f"Comic page {page} failed, discarding {len(pages)} finished page(s): {e}")
                raise
            if not data:
                raise ImageGenerationError(f"Comic page {page} returned no image data")
            pages.append(Sample(data=data, mime_type="image/png"))
            logger.info(f"Comic page {page}/{self.page_count} generated")

            if page < self.page_count:
                await self._sleep(self.page_delay)

        return pages
