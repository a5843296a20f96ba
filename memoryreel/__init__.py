"""MemoryReel: personal media library with AI enrichment."""

__version__ = "1.0.0"
