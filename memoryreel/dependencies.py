"""FastAPI dependencies for the services built at startup."""

from typing import Annotated

from fastapi import Depends, Request

from memoryreel.library import MediaLibrary
from memoryreel.pipeline import IngestionPipeline


# Services live on app.state, set by the lifespan handler in main.py
async def get_pipeline(request: Request) -> IngestionPipeline:
    """Get the ingestion pipeline."""
    return request.app.state.pipeline


async def get_library(request: Request) -> MediaLibrary:
    """Get the media library."""
    return request.app.state.library


# Type aliases for service dependencies
PipelineDep = Annotated[IngestionPipeline, Depends(get_pipeline)]
LibraryDep = Annotated[MediaLibrary, Depends(get_library)]
