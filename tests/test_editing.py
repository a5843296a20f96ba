"""Tests for the edit path."""

from datetime import datetime, timezone

import pytest

from memoryreel.editing import apply_patch
from memoryreel.errors import InvalidEdit
from memoryreel.models import MediaType, RecordPatch

PAGES = ["http://t/p1.png", "http://t/p2.png", "http://t/p3.png"]


@pytest.fixture
def album(make_record):
    return make_record(media_type=MediaType.COMIC, pages=PAGES, thumbnail_url=PAGES[0])


def test_empty_patch_returns_same_snapshot(album):
    assert apply_patch(album, RecordPatch()) is album


def test_text_fields(album):
    updated = apply_patch(album, RecordPatch(title="  New title ", description="d", search_context="s"))
    assert updated.title == "New title"
    assert updated.description == "d"
    assert updated.search_context == "s"
    # Snapshots are immutable; the original is untouched
    assert album.title == "Beach Day"


def test_blank_title_rejected(album):
    with pytest.raises(InvalidEdit):
        apply_patch(album, RecordPatch(title="   "))


def test_folder_set_and_clear(album):
    foldered = apply_patch(album, RecordPatch(folder_name="Trip"))
    assert foldered.folder_name == "Trip"
    assert apply_patch(foldered, RecordPatch(folder_name="")).folder_name == ""


def test_created_at_moves_year(album):
    updated = apply_patch(album, RecordPatch(created_at=datetime(2019, 6, 1, tzinfo=timezone.utc)))
    assert updated.year == 2019


def test_end_date_before_start_rejected(album):
    with pytest.raises(InvalidEdit):
        apply_patch(album, RecordPatch(end_date=datetime(2000, 1, 1, tzinfo=timezone.utc)))


def test_cover_must_be_a_page(album):
    assert apply_patch(album, RecordPatch(cover_url=PAGES[2])).cover_index == 2
    with pytest.raises(InvalidEdit):
        apply_patch(album, RecordPatch(cover_url="http://t/elsewhere.png"))


def test_reorder(album):
    order = [PAGES[2], PAGES[0], PAGES[1]]
    updated = apply_patch(album, RecordPatch(page_order=order))
    assert updated.pages == order
    assert updated.thumbnail_url == PAGES[0]


@pytest.mark.parametrize(
    "order",
    [PAGES[:2], PAGES + ["http://t/p4.png"], [PAGES[0], PAGES[0], PAGES[1]]],
)
def test_reorder_must_be_permutation(album, order):
    with pytest.raises(InvalidEdit):
        apply_patch(album, RecordPatch(page_order=order))


def test_remove_page(album):
    updated = apply_patch(album, RecordPatch(remove_pages=[PAGES[1]]))
    assert updated.pages == [PAGES[0], PAGES[2]]
    assert updated.thumbnail_url == PAGES[0]


def test_removing_cover_moves_cover_to_first_page(album):
    updated = apply_patch(album, RecordPatch(remove_pages=[PAGES[0]]))
    assert updated.pages == [PAGES[1], PAGES[2]]
    assert updated.thumbnail_url == PAGES[1]


def test_album_keeps_at_least_one_page(album):
    with pytest.raises(InvalidEdit):
        apply_patch(album, RecordPatch(remove_pages=PAGES))


def test_remove_unknown_page_rejected(album):
    with pytest.raises(InvalidEdit):
        apply_patch(album, RecordPatch(remove_pages=["http://t/nope.png"]))


def test_remove_then_reorder_then_cover(album):
    updated = apply_patch(
        album,
        RecordPatch(remove_pages=[PAGES[0]], page_order=[PAGES[2], PAGES[1]], cover_url=PAGES[1]),
    )
    assert updated.pages == [PAGES[2], PAGES[1]]
    assert updated.thumbnail_url == PAGES[1]


def test_featured_flag(album):
    assert apply_patch(album, RecordPatch(is_featured=True)).is_featured is True
