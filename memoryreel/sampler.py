"""Frame sampling: turn uploaded media into normalized still samples for the AI.

Videos are decoded with OpenCV. Samples are taken from the middle 60% of the
clip (opening and closing 20% skipped to avoid black frames, intros and
credits), downscaled so the longer edge is at most SAMPLE_MAX_DIMENSION and
JPEG-compressed. Photos are passed through unchanged after a decode check.
"""

import asyncio
import io
import logging
import math
import os
import tempfile
import time
from typing import Optional, Sequence

import cv2
from PIL import Image, UnidentifiedImageError

from memoryreel.config import settings
from memoryreel.errors import ExtractionTimeout, InvalidMedia, UnsupportedFormat
from memoryreel.models import MediaFile, Sample

logger = logging.getLogger(__name__)

# Single-sample videos seek here (or to the midpoint of shorter clips)
SINGLE_SAMPLE_SEEK = 2.0
# Fraction of the clip skipped at each end for multi-sample extraction
EDGE_SKIP = 0.2


def seek_timestamps(duration: float, count: int) -> list[float]:
    """Seek positions (seconds) for ``count`` samples of a clip of ``duration``.

    count=1 seeks to min(2s, duration/2). Larger counts are spread evenly
    across [0.2*duration, 0.8*duration], strictly increasing.
    """
    if count < 1:
        raise ValueError("count must be >= 1")
    if not math.isfinite(duration) or duration <= 0:
        return [0.0]
    if count == 1:
        return [min(SINGLE_SAMPLE_SEEK, duration / 2)]

    start = duration * EDGE_SKIP
    end = duration * (1 - EDGE_SKIP)
    step = (end - start) / (count - 1)
    return [start + i * step for i in range(count)]


def fit_within(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale (width, height) down so the longer edge is <= max_dimension."""
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def _extract_frames(
    path: str,
    filename: str,
    count: int,
    max_dimension: int,
    jpeg_quality: int,
    deadline: float,
    timeout: float,
) -> list[Sample]:
    """Blocking frame extraction. Runs in a worker thread.

    The capture and the temporary file are released on every exit path.
    """
    cap = cv2.VideoCapture(path)
    try:
        if not cap.isOpened():
            raise UnsupportedFormat(filename, "container could not be opened")

        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        if width == 0 or height == 0:
            raise InvalidMedia(filename, f"invalid video dimensions ({width}x{height})")

        fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        duration = frame_count / fps if fps > 0 and frame_count > 0 else 0.0

        draw_width, draw_height = fit_within(width, height, max_dimension)
        timestamps = seek_timestamps(duration, count)
        logger.info(
            f"Sampling {filename}: {width}x{height}, {duration:.1f}s, "
            f"seeks={[round(t, 2) for t in timestamps]}"
        )

        samples: list[Sample] = []
        for ts in timestamps:
            if time.monotonic() > deadline:
                raise ExtractionTimeout(filename, timeout)

            cap.set(cv2.CAP_PROP_POS_MSEC, ts * 1000.0)
            ok, frame = cap.read()
            if not ok or frame is None:
                raise UnsupportedFormat(filename, f"could not decode frame at {ts:.2f}s")

            if (draw_width, draw_height) != (width, height):
                frame = cv2.resize(frame, (draw_width, draw_height), interpolation=cv2.INTER_AREA)

            ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
            if not ok:
                raise UnsupportedFormat(filename, "failed to encode captured frame")
            samples.append(Sample(data=buffer.tobytes(), mime_type="image/jpeg"))

        return samples
    finally:
        cap.release()
        try:
            os.unlink(path)
        except OSError:
            logger.debug(f"Temporary file already removed: {path}")


def _check_photo(media: MediaFile) -> Sample:
    """Decode-check a photo and wrap it as a sample (no resizing)."""
    try:
        with Image.open(io.BytesIO(media.data)) as img:
            width, height = img.size
            detected = Image.MIME.get(img.format or "")
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise UnsupportedFormat(media.filename, f"cannot decode image: {e}") from e

    if width == 0 or height == 0:
        raise InvalidMedia(media.filename, f"invalid image dimensions ({width}x{height})")

    if media.content_type.startswith("image/"):
        mime_type = media.content_type
    else:
        mime_type = detected or "image/jpeg"
    return Sample(data=media.data, mime_type=mime_type)


class FrameSampler:
    """Service producing ordered samples from an uploaded video or photo set."""

    def __init__(
        self,
        max_dimension: Optional[int] = None,
        jpeg_quality: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.max_dimension = max_dimension or settings.SAMPLE_MAX_DIMENSION
        self.jpeg_quality = jpeg_quality or settings.SAMPLE_JPEG_QUALITY
        self.timeout = timeout or settings.EXTRACTION_TIMEOUT

    async def sample_video(self, media: MediaFile, count: int = 1) -> list[Sample]:
        """Extract ``count`` samples from a video.

        Raises:
            InvalidMedia: decoded dimensions are 0x0
            ExtractionTimeout: the whole extraction exceeded the timeout
            UnsupportedFormat: the container or a frame could not be decoded
        """
        fd, path = tempfile.mkstemp(suffix=f".{media.extension}")
        with os.fdopen(fd, "wb") as f:
            f.write(media.data)

        deadline = time.monotonic() + self.timeout
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            None,
            lambda: _extract_frames(
                path,
                media.filename,
                count,
                self.max_dimension,
                self.jpeg_quality,
                deadline,
                self.timeout,
            ),
        )
        try:
            samples = await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Frame extraction timed out for {media.filename}")
            raise ExtractionTimeout(media.filename, self.timeout)

        logger.info(f"Extracted {len(samples)} sample(s) from {media.filename}")
        return samples

    async def sample_photos(self, photos: Sequence[MediaFile]) -> list[Sample]:
        """Wrap each photo as a sample, preserving input order."""
        loop = asyncio.get_running_loop()
        tasks = [loop.run_in_executor(None, _check_photo, photo) for photo in photos]
        return list(await asyncio.gather(*tasks))

    async def sample(self, files: Sequence[MediaFile], video_count: int = 1) -> list[Sample]:
        """Sample the first video if any, otherwise every photo."""
        video = next((f for f in files if f.is_video), None)
        if video is not None:
            return await self.sample_video(video, video_count)
        return await self.sample_photos(files)
