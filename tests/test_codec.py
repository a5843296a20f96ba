"""Tests for the description-field codec."""

from datetime import datetime, timezone

import pytest

from memoryreel.codec import (
    FIELD_SEPARATOR,
    RECORD_SEPARATOR,
    decode_description,
    decode_record,
    decode_v1,
    decode_v2,
    detect_scheme,
    encode_description,
    encode_record,
    encode_v2,
)
from memoryreel.errors import CodecError
from memoryreel.models import AIStatus, MediaRecord, MediaType


def _roundtrip(record: MediaRecord) -> MediaRecord:
    row = encode_record(record)
    return decode_record(row["id"], row["title"], row["description"], row["created_at"])


class TestRoundTrip:
    def test_full_record(self, make_record):
        record = make_record(
            description="Two friends race the tide.",
            search_context="beach, sand, waves",
            media_type=MediaType.COMIC,
            pages=["http://test/files/rec-1/page_1.png", "http://test/files/rec-1/page_2.png"],
            end_date=datetime(2024, 3, 9, 18, 30, tzinfo=timezone.utc),
            genre=["Adventure", "Comedy"],
            match_score=91,
            folder_name="Trip",
            ai_status=AIStatus.COMPLETED,
            is_featured=True,
        )
        assert _roundtrip(record) == record

    def test_minimal_record(self, make_record):
        record = make_record(ai_status=AIStatus.PENDING)
        assert _roundtrip(record) == record

    def test_values_with_field_separator_survive(self, make_record):
        record = make_record(
            main_asset_url="http://[::1]:8000/files/rec-1/main.mp4",
            thumbnail_url="https://cdn.example.com/a::b/poster.png",
            description="Ratio 16::9 and a::b::c",
            pages=["http://[::1]/p::1.png"],
            media_type=MediaType.PHOTO,
        )
        decoded = _roundtrip(record)
        assert decoded.main_asset_url == "http://[::1]:8000/files/rec-1/main.mp4"
        assert decoded.thumbnail_url == "https://cdn.example.com/a::b/poster.png"
        assert decoded.description == "Ratio 16::9 and a::b::c"
        assert decoded == record

    def test_unicode_and_json_punctuation(self, make_record):
        record = make_record(
            title="Zażółć gęślą jaźń",
            description='He said "{hi}" [twice], then left.',
            genre=['Drama "noir"', "Słowo"],
        )
        assert _roundtrip(record) == record


class TestSchemes:
    def test_v2_splits_on_first_field_separator_only(self):
        text = encode_v2({"MAIN": "http://[::1]/x", "DESC": "a::b"})
        assert decode_v2(text) == {"MAIN": "http://[::1]/x", "DESC": "a::b"}

    def test_v2_rejects_text_without_marker(self):
        with pytest.raises(CodecError):
            decode_v2("just a description")

    def test_v2_skips_tuples_without_separator(self):
        text = RECORD_SEPARATOR.join([f"SCHEMA{FIELD_SEPARATOR}2", "garbage", f"DESC{FIELD_SEPARATOR}ok"])
        assert decode_v2(text) == {"DESC": "ok"}

    def test_v1_legacy_packing(self):
        text = "A sunny day|||SEARCH_CTX|||beach, sand|||FOLDER|||Summer"
        assert decode_v1(text) == {"DESC": "A sunny day", "SEARCH": "beach, sand", "FOLDER": "Summer"}

    def test_v1_without_folder(self):
        assert decode_v1("desc|||SEARCH_CTX|||ctx") == {"DESC": "desc", "SEARCH": "ctx", "FOLDER": ""}

    def test_v1_rejects_plain_text(self):
        with pytest.raises(CodecError):
            decode_v1("desc only")

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("", "plain"),
            ("plain words", "plain"),
            ("d|||SEARCH_CTX|||c", "v1"),
            (encode_v2({"DESC": "x"}), "v2"),
        ],
    )
    def test_detect_scheme(self, text, expected):
        assert detect_scheme(text) == expected


class TestDecodingDefaults:
    def test_legacy_row_decodes_with_defaults(self):
        created = datetime(2023, 7, 1, tzinfo=timezone.utc)
        record = decode_record(
            "old-1", "Old Clip", "A sunny day|||SEARCH_CTX|||beach|||FOLDER|||Summer", created
        )
        assert record.description == "A sunny day"
        assert record.search_context == "beach"
        assert record.folder_name == "Summer"
        assert record.pages == []
        assert record.genre == []
        assert record.match_score == 0
        assert record.media_type == MediaType.VIDEO
        assert record.year == 2023

    def test_plain_row_is_visible_description(self):
        record = decode_record("p-1", "T", "Just some words", datetime(2022, 1, 1, tzinfo=timezone.utc))
        assert record.description == "Just some words"
        assert record.search_context == ""
        assert record.folder_name == ""

    def test_malformed_json_list_defaults_to_empty(self):
        text = encode_v2({"PAGES": "[not json", "GENRE": '{"a": 1}', "DESC": "ok"})
        fields, scheme = decode_description(text)
        assert scheme == "v2"
        assert fields["pages"] == []
        assert fields["genre"] == []
        assert fields["description"] == "ok"

    def test_bad_scalars_default(self):
        text = encode_v2({"YEAR": "soon", "SCORE": "", "END": "yesterday", "TYPE": "HOLOGRAM", "AI": "?"})
        fields, _ = decode_description(text)
        assert fields["year"] == 0
        assert fields["match_score"] == 0
        assert fields["end_date"] is None
        assert fields["media_type"] == MediaType.VIDEO
        assert fields["ai_status"] == AIStatus.COMPLETED

    def test_unknown_keys_are_ignored(self):
        fields, _ = decode_description(encode_v2({"DESC": "x", "FUTURE_FIELD": "y"}))
        assert fields["description"] == "x"
        assert "FUTURE_FIELD" not in fields

    def test_pages_without_type_read_as_comic(self):
        fields, _ = decode_description(encode_v2({"PAGES": '["a.png"]'}))
        assert fields["media_type"] == MediaType.COMIC

    @pytest.mark.parametrize("text", [None, "", "|||", "SCHEMA::2", "SCHEMA::9\n|~|MR|~|\nDESC::x"])
    def test_decode_never_raises(self, text):
        record = decode_record("x", None, text, None)
        assert record.id == "x"
        assert record.title == ""

    def test_missing_thumbnail_falls_back_to_first_page(self):
        record = decode_record(
            "c-1", "Comic", encode_v2({"PAGES": '["p1.png", "p2.png"]', "MAIN": "m.png"}), None
        )
        assert record.thumbnail_url == "p1.png"


def test_encoded_description_starts_with_schema_marker(make_record):
    assert encode_description(make_record()).startswith(f"SCHEMA{FIELD_SEPARATOR}2")
