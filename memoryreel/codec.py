"""Pack a record's attributes into the row store's free-text description field.

The row store only guarantees ``id``, ``title``, ``description`` and
``created_at``; everything else lives inside ``description``.

Current scheme (v2): ``KEY::value`` tuples joined by RECORD_SEPARATOR, first
tuple is the schema marker. List values are JSON. A tuple is split only at the
FIRST field separator, since values (URLs especially) may contain ``::``.

Legacy scheme (v1): ``description|||SEARCH_CTX|||context|||FOLDER|||folder``.

Anything else is plain visible description with no structured metadata.

Decoding tries schemes newest to oldest; a new scheme goes at the head of
DECODERS. Decoding never raises: bad values fall back to empty defaults.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from memoryreel.errors import CodecError
from memoryreel.models import AIStatus, MediaRecord, MediaType

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "::"
RECORD_SEPARATOR = "\n|~|MR|~|\n"
SCHEMA_KEY = "SCHEMA"
SCHEMA_VERSION = "2"

LEGACY_SEARCH_SEPARATOR = "|||SEARCH_CTX|||"
LEGACY_FOLDER_SEPARATOR = "|||FOLDER|||"

# Record attribute -> tuple key, in encoding order
FIELD_KEYS = {
    "description": "DESC",
    "search_context": "SEARCH",
    "media_type": "TYPE",
    "thumbnail_url": "THUMB",
    "main_asset_url": "MAIN",
    "pages": "PAGES",
    "year": "YEAR",
    "end_date": "END",
    "genre": "GENRE",
    "match_score": "SCORE",
    "folder_name": "FOLDER",
    "ai_status": "AI",
    "is_featured": "FEATURED",
}
LIST_FIELDS = {"pages", "genre"}
INT_FIELDS = {"year", "match_score"}


# =============================================================================
# SCHEMES (pure text <-> flat dict)
# =============================================================================

def encode_v2(values: dict[str, str]) -> str:
    """Join KEY::value tuples behind the schema marker."""
    tuples = [f"{SCHEMA_KEY}{FIELD_SEPARATOR}{SCHEMA_VERSION}"]
    tuples.extend(f"{key}{FIELD_SEPARATOR}{value}" for key, value in values.items())
    return RECORD_SEPARATOR.join(tuples)


def decode_v2(text: str) -> dict[str, str]:
    """Split KEY::value tuples.

    Raises:
        CodecError: text does not start with the v2 schema marker
    """
    tuples = text.split(RECORD_SEPARATOR)
    marker = f"{SCHEMA_KEY}{FIELD_SEPARATOR}{SCHEMA_VERSION}"
    if not tuples or tuples[0] != marker:
        raise CodecError("not a v2 payload")

    values: dict[str, str] = {}
    for item in tuples[1:]:
        key, sep, value = item.partition(FIELD_SEPARATOR)
        if not sep:
            logger.debug(f"Skipping malformed tuple: {item[:50]!r}")
            continue
        values[key] = value
    return values


def decode_v1(text: str) -> dict[str, str]:
    """Legacy ``desc|||SEARCH_CTX|||ctx|||FOLDER|||folder`` packing.

    Raises:
        CodecError: search-context separator absent
    """
    if LEGACY_SEARCH_SEPARATOR not in text:
        raise CodecError("not a v1 payload")

    visible, _, rest = text.partition(LEGACY_SEARCH_SEPARATOR)
    search, _, folder = rest.partition(LEGACY_FOLDER_SEPARATOR)
    return {"DESC": visible, "SEARCH": search, "FOLDER": folder}


def decode_plain(text: str) -> dict[str, str]:
    """Whole field is visible description."""
    return {"DESC": text}


# Newest first. decode_plain must stay last: it accepts anything.
DECODERS: list[tuple[str, Callable[[str], dict[str, str]]]] = [
    ("v2", decode_v2),
    ("v1", decode_v1),
    ("plain", decode_plain),
]


def detect_scheme(text: str) -> str:
    """Name of the first scheme that accepts ``text``."""
    for name, decoder in DECODERS:
        try:
            decoder(text or "")
            return name
        except CodecError:
            continue
    return "plain"


# =============================================================================
# VALUE CONVERSION
# =============================================================================

def _dump(field: str, value) -> str:
    if field in LIST_FIELDS:
        return json.dumps(list(value), ensure_ascii=False)
    if field in {"media_type", "ai_status"}:
        return value.value
    if field == "end_date":
        return value.isoformat() if value else ""
    if field == "is_featured":
        return "1" if value else "0"
    return str(value)


def _parse_list(raw: str) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug(f"Malformed list value, defaulting to []: {raw[:50]!r}")
        return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _parse_int(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def _parse_datetime(raw: str) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def _parse_enum(enum_cls, raw: str, default):
    try:
        return enum_cls(raw)
    except ValueError:
        return default


# =============================================================================
# RECORD <-> ROW
# =============================================================================

def encode_description(record: MediaRecord) -> str:
    """Pack every non-column attribute of ``record`` with the current scheme."""
    values = {
        key: _dump(field, getattr(record, field))
        for field, key in FIELD_KEYS.items()
    }
    return encode_v2(values)


def decode_description(text: Optional[str]) -> tuple[dict, str]:
    """Unpack ``text`` with the newest scheme that accepts it.

    Returns:
        Tuple of (record attributes, scheme name)
    """
    text = text or ""
    raw: dict[str, str] = {}
    scheme = "plain"
    for name, decoder in DECODERS:
        try:
            raw = decoder(text)
            scheme = name
            break
        except CodecError:
            continue

    fields: dict = {}
    for field, key in FIELD_KEYS.items():
        value = raw.get(key, "")
        if field in LIST_FIELDS:
            fields[field] = _parse_list(value)
        elif field in INT_FIELDS:
            fields[field] = _parse_int(value)
        elif field == "end_date":
            fields[field] = _parse_datetime(value)
        elif field == "is_featured":
            fields[field] = value == "1"
        else:
            fields[field] = value

    # Legacy rows carried no type or status: albums read as COMIC, the rest as
    # VIDEO; they were saved after enrichment, so COMPLETED
    default_type = MediaType.COMIC if fields["pages"] else MediaType.VIDEO
    fields["media_type"] = _parse_enum(MediaType, fields["media_type"], default_type)
    fields["ai_status"] = _parse_enum(AIStatus, fields["ai_status"], AIStatus.COMPLETED)
    return fields, scheme


def encode_record(record: MediaRecord) -> dict:
    """Column values for the row store."""
    return {
        "id": record.id,
        "title": record.title,
        "description": encode_description(record),
        "created_at": record.created_at,
    }


def decode_record(
    id: str,
    title: Optional[str],
    description: Optional[str],
    created_at: Optional[datetime],
) -> MediaRecord:
    """Rebuild a record from its row; never raises on bad payloads."""
    fields, scheme = decode_description(description)
    if scheme != "v2":
        logger.debug(f"Decoded {id} with {scheme} scheme")

    created = created_at or datetime.now(timezone.utc)
    if not fields["year"]:
        fields["year"] = created.year
    if not fields["thumbnail_url"]:
        fields["thumbnail_url"] = next(iter(fields["pages"]), "") or fields["main_asset_url"]

    return MediaRecord(id=id, title=title or "", created_at=created, **fields)
