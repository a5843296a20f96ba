"""Tests for smart clusters, folders, search and featured pick."""

from datetime import datetime, timedelta, timezone

from memoryreel.clustering import (
    FOLDER_LABEL_SUFFIX,
    cluster_label,
    cluster_records,
    filter_records,
    list_folders,
    pick_featured,
)
from memoryreel.models import MediaType

BASE = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
THREE_DAYS = timedelta(days=3)


def _ids(records):
    return [r.id for r in records]


def test_label_format():
    assert cluster_label(datetime(2024, 3, 5, tzinfo=timezone.utc)) == "Mar 5, 2024"
    assert cluster_label(datetime(2023, 12, 25, tzinfo=timezone.utc)) == "Dec 25, 2023"


def test_gap_splits_clusters(make_record):
    records = [
        make_record("t0", created_at=BASE),
        make_record("t1", created_at=BASE + timedelta(days=1)),
        make_record("t10", created_at=BASE + timedelta(days=10)),
    ]
    clusters = cluster_records(records, THREE_DAYS)

    assert len(clusters) == 2
    groups = [sorted(_ids(members)) for members in clusters.values()]
    assert groups == [["t10"], ["t0", "t1"]]


def test_cluster_is_labelled_by_its_newest_record(make_record):
    records = [
        make_record("a", created_at=BASE),
        make_record("b", created_at=BASE + timedelta(days=2)),
    ]
    clusters = cluster_records(records, THREE_DAYS)
    assert list(clusters) == [cluster_label(BASE + timedelta(days=2))]


def test_chain_can_span_more_than_threshold(make_record):
    records = [make_record(f"r{i}", created_at=BASE + timedelta(days=2 * i)) for i in range(5)]
    clusters = cluster_records(records, THREE_DAYS)
    assert len(clusters) == 1
    assert len(next(iter(clusters.values()))) == 5


def test_delta_equal_to_threshold_opens_new_cluster(make_record):
    records = [
        make_record("a", created_at=BASE),
        make_record("b", created_at=BASE + THREE_DAYS),
    ]
    assert len(cluster_records(records, THREE_DAYS)) == 2


def test_foldered_record_never_in_smart_cluster(make_record):
    records = [
        make_record("a", created_at=BASE),
        make_record("trip", created_at=BASE + timedelta(hours=1), folder_name="Trip"),
        make_record("b", created_at=BASE + timedelta(hours=2)),
    ]
    clusters = cluster_records(records, THREE_DAYS)

    assert _ids(clusters["Trip"]) == ["trip"]
    for label, members in clusters.items():
        if label != "Trip":
            assert "trip" not in _ids(members)
    # The foldered record does not break the chain around it
    assert len(clusters) == 2


def test_folder_named_like_a_date_stays_separate(make_record):
    day = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)
    records = [
        make_record("a", created_at=day),
        make_record("b", created_at=day + timedelta(hours=1), folder_name="Mar 5, 2024"),
    ]
    clusters = cluster_records(records, THREE_DAYS)

    assert _ids(clusters["Mar 5, 2024"]) == ["a"]
    assert _ids(clusters["Mar 5, 2024" + FOLDER_LABEL_SUFFIX]) == ["b"]


def test_groups_ordered_by_most_recent_member(make_record):
    records = [
        make_record("old-folder", created_at=BASE, folder_name="Archive"),
        make_record("new-folder", created_at=BASE + timedelta(days=30), folder_name="Archive"),
        make_record("mid", created_at=BASE + timedelta(days=20)),
        make_record("oldest", created_at=BASE - timedelta(days=40)),
    ]
    clusters = cluster_records(records, THREE_DAYS)

    assert list(clusters)[0] == "Archive"
    assert _ids(clusters["Archive"]) == ["new-folder", "old-folder"]
    newest = [max(m.created_at for m in members) for members in clusters.values()]
    assert newest == sorted(newest, reverse=True)


def test_input_order_does_not_matter(make_record):
    records = [make_record(f"r{i}", created_at=BASE + timedelta(days=5 * i)) for i in range(4)]
    assert cluster_records(records, THREE_DAYS) == cluster_records(list(reversed(records)), THREE_DAYS)


def test_empty_input(make_record):
    assert cluster_records([], THREE_DAYS) == {}


def test_list_folders(make_record):
    records = [
        make_record("a", folder_name="Trip"),
        make_record("b", folder_name="Birthday"),
        make_record("c", folder_name="Trip"),
        make_record("d"),
    ]
    assert list_folders(records) == ["Birthday", "Trip"]


class TestFilterRecords:
    def test_search_matches_hidden_context_and_genre(self, make_record):
        records = [
            make_record("a", search_context="kite, sunset"),
            make_record("b", genre=["Horror"]),
            make_record("c", title="Birthday"),
        ]
        assert _ids(filter_records(records, "KITE")) == ["a"]
        assert _ids(filter_records(records, "horr")) == ["b"]
        assert _ids(filter_records(records, "birth")) == ["c"]

    def test_search_matches_folder_name(self, make_record):
        records = [make_record("a", folder_name="Lake House"), make_record("b")]
        assert _ids(filter_records(records, "lake")) == ["a"]

    def test_media_type_filter_and_recency(self, make_record):
        records = [
            make_record("old", created_at=BASE, media_type=MediaType.PHOTO),
            make_record("new", created_at=BASE + timedelta(days=1), media_type=MediaType.PHOTO),
            make_record("vid", created_at=BASE, media_type=MediaType.VIDEO),
        ]
        assert _ids(filter_records(records, "", MediaType.PHOTO)) == ["new", "old"]

    def test_empty_query_returns_everything(self, make_record):
        records = [make_record("a"), make_record("b")]
        assert len(filter_records(records, "   ")) == 2


def test_pick_featured(make_record):
    older = make_record("older", created_at=BASE, is_featured=True)
    newer = make_record("newer", created_at=BASE + timedelta(days=1))
    assert pick_featured([newer, older]).id == "older"
    assert pick_featured([newer, make_record("x", created_at=BASE)]).id == "newer"
    assert pick_featured([]) is None
