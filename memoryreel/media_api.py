"""REST API for the media library."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from memoryreel.dependencies import LibraryDep, PipelineDep
from memoryreel.models import IngestRequest, MediaFile, MediaRecord, MediaType, RecordPatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["Media"])


def _record(record: MediaRecord) -> dict:
    return record.model_dump(mode="json")


async def _read_uploads(
    files: list[UploadFile], last_modified: Optional[int] = None
) -> list[MediaFile]:
    """Read uploads into memory; ``last_modified`` (epoch ms) dates the first file."""
    media = []
    for i, upload in enumerate(files):
        if not upload.filename:
            raise HTTPException(status_code=400, detail="No filename provided")
        modified = None
        if i == 0 and last_modified:
            modified = datetime.fromtimestamp(last_modified / 1000, tz=timezone.utc)
        media.append(
            MediaFile(
                filename=upload.filename,
                content_type=upload.content_type or "application/octet-stream",
                data=await upload.read(),
                last_modified=modified,
            )
        )
    return media


@router.post("")
async def upload_media(
    pipeline: PipelineDep,
    files: list[UploadFile] = File(...),
    magic: bool = Form(True),
    comic: bool = Form(False),
    folder: str = Form(""),
    last_modified: Optional[int] = Form(None),
):
    """Ingest a video or photo set."""
    media = await _read_uploads(files, last_modified)
    logger.info(f"Upload received: {len(media)} file(s), magic={magic}, comic={comic}")

    result = await pipeline.ingest(
        IngestRequest(files=media, magic_enabled=magic, comic_mode=comic, folder_name=folder)
    )
    return {
        "record": _record(result.record),
        "fallback": result.fallback,
        "warnings": result.warnings,
        "progress": result.progress.model_dump() if result.progress else None,
    }


@router.get("")
async def list_media(
    library: LibraryDep,
    search: str = "",
    media_type: Optional[MediaType] = None,
):
    """List records, newest first, with optional search and type filter."""
    records = await library.list_records(search, media_type)
    return {"records": [_record(r) for r in records], "count": len(records)}


@router.get("/clusters")
async def list_clusters(library: LibraryDep):
    """Folders and smart clusters, most recent group first."""
    clusters = await library.clusters()
    return {
        "clusters": [
            {"label": label, "records": [_record(r) for r in records]}
            for label, records in clusters.items()
        ]
    }


@router.get("/folders")
async def list_folders(library: LibraryDep):
    return {"folders": await library.folders()}


@router.get("/featured")
async def get_featured(library: LibraryDep):
    record = await library.featured()
    return {"record": _record(record) if record else None}


@router.get("/{record_id}")
async def get_media(record_id: str, library: LibraryDep):
    return _record(await library.get(record_id))


@router.patch("/{record_id}")
async def update_media(record_id: str, patch: RecordPatch, library: LibraryDep):
    """Apply one edit intent (title, folder, cover, page order, page removal...)."""
    if patch.is_empty():
        raise HTTPException(status_code=400, detail="Nothing to update")
    return _record(await library.update(record_id, patch))


@router.post("/{record_id}/pages")
async def add_pages(
    record_id: str,
    library: LibraryDep,
    files: list[UploadFile] = File(...),
):
    """Append photos to an album."""
    media = await _read_uploads(files)
    return _record(await library.add_pages(record_id, media))


@router.delete("/{record_id}")
async def delete_media(record_id: str, library: LibraryDep):
    """Delete a record and its stored assets."""
    removed = await library.delete(record_id)
    return {"status": "deleted", "id": record_id, "assets_removed": removed}
