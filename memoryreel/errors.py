"""Error types for the ingestion pipeline and media library.

All errors inherit from MemoryReelError for easy catching.
"""

from typing import Optional


class MemoryReelError(Exception):
    """Base exception for all MemoryReel failures."""
    pass


# =============================================================================
# Frame extraction (fatal: aborts ingestion)
# =============================================================================

class ExtractionError(MemoryReelError):
    """Raised when samples cannot be extracted from an uploaded file."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Failed to extract samples from {filename}: {reason}")


class InvalidMedia(ExtractionError):
    """Raised when the decoded media has unusable dimensions."""
    pass


class ExtractionTimeout(ExtractionError):
    """Raised when frame extraction exceeds its wall-clock budget."""

    def __init__(self, filename: str, timeout: float):
        self.timeout = timeout
        super().__init__(filename, f"timed out after {timeout}s")


class UnsupportedFormat(ExtractionError):
    """Raised when the file cannot be decoded at all."""
    pass


# =============================================================================
# External AI calls
# =============================================================================

class AIServiceError(MemoryReelError):
    """Base exception for failures of the external AI capability."""
    pass


class RetryExhausted(AIServiceError):
    """Raised when a retryable failure persists past the retry budget."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"AI call failed after {attempts} attempts: "
            f"{type(last_error).__name__}: {last_error}"
        )


class AnalysisParseError(AIServiceError):
    """Raised when the analysis response is not usable JSON."""
    pass


class ImageGenerationError(AIServiceError):
    """Raised when an image call returns no image data."""
    pass


class AnalysisDegraded(MemoryReelError):
    """Analysis could not complete; the record is saved with placeholder metadata."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Analysis degraded: {reason}")


# =============================================================================
# Assets, codec, row store
# =============================================================================

class AssetUploadError(MemoryReelError):
    """Raised when an asset cannot be written to object storage."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to upload asset {path}: {reason}")


class CodecError(MemoryReelError):
    """Raised inside the codec by a scheme that does not match the stored text.

    Never escapes the codec: decoding falls through to the next scheme.
    """
    pass


class StoreError(MemoryReelError):
    """Raised when the row store rejects a read or write."""

    def __init__(self, operation: str, reason: str, record_id: Optional[str] = None):
        self.operation = operation
        self.reason = reason
        self.record_id = record_id
        target = f" for {record_id}" if record_id else ""
        super().__init__(f"Row store {operation} failed{target}: {reason}")


class RecordNotFound(MemoryReelError):
    """Raised when a record id does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class InvalidEdit(MemoryReelError):
    """Raised when an edit would break a record invariant."""
    pass


class InvalidTransition(MemoryReelError):
    """Raised when attempting an illegal progress stage transition."""

    def __init__(self, current_stage: str, target_stage: str):
        self.current_stage = current_stage
        self.target_stage = target_stage
        super().__init__(
            f"Invalid stage transition: {current_stage} -> {target_stage}"
        )
