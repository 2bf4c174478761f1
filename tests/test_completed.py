"""Tests for completed series detection."""

from datetime import date, datetime, timedelta

import pytest

from watchstate.completed import (
    CompletedSeriesDetector,
    are_all_aired_episodes_watched,
    is_series_ended,
)
from watchstate.models import (
    UNWATCHED,
    CompletedSeriesRecord,
    Episode,
    RewatchState,
    Season,
    Series,
    Watched,
)
from watchstate.storage import StorageError, TreeStore

NOW = datetime(2025, 12, 10, 20, 0)
USER = "user1"


def make_series(series_id=10, status="Ended", watched=(True, True), future_episode=False, watchlist=True):
    episodes = [
        Episode(
            id=i,
            air_date=date(2020, 1, i),
            state=Watched(count=1) if is_watched else UNWATCHED,
        )
        for i, is_watched in enumerate(watched, start=1)
    ]
    if future_episode:
        episodes.append(Episode(id=99, air_date=date(2030, 1, 1)))
    return Series(
        id=series_id,
        nmr=series_id,
        title=f"Series {series_id}",
        status=status,
        watchlist=watchlist,
        seasons=[Season(1, episodes)],
    )


@pytest.fixture
def store(tmp_path):
    return TreeStore(data_dir=tmp_path)


@pytest.fixture
def detector(store):
    return CompletedSeriesDetector(store)


class TestHelpers:
    """Tests for aired and ended checks."""

    def test_all_aired_watched_ignores_future(self):
        assert are_all_aired_episodes_watched(make_series(future_episode=True), NOW) is True

    def test_unwatched_aired(self):
        assert are_all_aired_episodes_watched(make_series(watched=(True, False)), NOW) is False

    def test_no_aired_episodes(self):
        series = make_series(watched=())
        series.seasons[0].episodes.append(Episode(id=5, air_date=None, state=Watched()))
        assert are_all_aired_episodes_watched(series, NOW) is False

    def test_aired_today_counts(self):
        series = make_series(watched=())
        series.seasons[0].episodes.append(Episode(id=5, air_date=NOW.date()))
        assert are_all_aired_episodes_watched(series, NOW) is False

    @pytest.mark.parametrize("status", ["Ended", "ended", "Canceled", "CANCELLED"])
    def test_ended_statuses(self, status):
        assert is_series_ended(make_series(status=status)) is True

    @pytest.mark.parametrize("status", ["Returning Series", "In Production", None, ""])
    def test_not_ended(self, status):
        assert is_series_ended(make_series(status=status)) is False


class TestDetection:
    """Tests for detect_completed_series."""

    def test_first_scan_only_records(self, detector, store):
        series = make_series()
        assert detector.detect_completed_series([series], USER, NOW) == []
        record = store.get(f"{USER}/completedSeriesData/10")
        assert record["allEpisodesWatched"] is True
        assert record["notified"] is False

    def test_reported_exactly_once(self, detector):
        series = make_series()
        detector.detect_completed_series([series], USER, NOW)

        found = detector.detect_completed_series([series], USER, NOW + timedelta(minutes=1))
        assert found == [series]

        for hours in (1, 5, 48):
            assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=hours)) == []

    def test_not_reported_after_mark_notified(self, detector):
        series = make_series()
        detector.detect_completed_series([series], USER, NOW)
        detector.detect_completed_series([series], USER, NOW + timedelta(minutes=1))
        assert detector.mark_notified(10, USER, NOW + timedelta(minutes=2)) is True

        later = NOW + timedelta(days=30)
        assert detector.detect_completed_series([series], USER, later) == []

    def test_unacknowledged_reported_again_after_cooldown(self, detector):
        series = make_series()
        detector.detect_completed_series([series], USER, NOW)
        detector.detect_completed_series([series], USER, NOW + timedelta(minutes=1))

        later = NOW + timedelta(days=8)
        assert detector.detect_completed_series([series], USER, later) == [series]

    def test_new_unwatched_episode_resets(self, detector, store):
        series = make_series()
        detector.detect_completed_series([series], USER, NOW)
        detector.detect_completed_series([series], USER, NOW + timedelta(minutes=1))
        detector.mark_notified(10, USER, NOW + timedelta(minutes=2))

        series.seasons[0].episodes.append(Episode(id=3, air_date=date(2021, 1, 1)))
        assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=1)) == []
        record = store.get(f"{USER}/completedSeriesData/10")
        assert record["notified"] is False
        assert record["allEpisodesWatched"] is False

        series.seasons[0].episodes[-1] = Episode(id=3, air_date=date(2021, 1, 1), state=Watched())
        assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=2)) == [series]

    def test_completion_check_ignores_cooldown(self, detector, store):
        """A record checked 3 days ago still reports a fresh completion."""
        store.set(
            f"{USER}/completedSeriesData/10",
            CompletedSeriesRecord(
                series_id=10,
                all_episodes_watched=False,
                series_status="Returning Series",
                last_checked=NOW - timedelta(days=3),
            ).to_dict(),
        )
        series = make_series()
        assert detector.detect_completed_series([series], USER, NOW) == [series]

    def test_cooldown_gates_refresh(self, detector, store):
        checked = NOW - timedelta(days=3)
        store.set(
            f"{USER}/completedSeriesData/10",
            CompletedSeriesRecord(
                series_id=10,
                all_episodes_watched=False,
                series_status="Returning Series",
                last_checked=checked,
            ).to_dict(),
        )
        series = make_series(status="Returning Series", watched=(True, False))
        detector.detect_completed_series([series], USER, NOW)
        record = store.get(f"{USER}/completedSeriesData/10")
        assert record["lastChecked"] == checked.isoformat()

        detector.detect_completed_series([series], USER, NOW + timedelta(days=5))
        record = store.get(f"{USER}/completedSeriesData/10")
        assert record["lastChecked"] == (NOW + timedelta(days=5)).isoformat()

    def test_not_ended_not_reported(self, detector):
        series = make_series(status="Returning Series")
        detector.detect_completed_series([series], USER, NOW)
        assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=1)) == []

    def test_active_rewatch_skipped(self, detector, store):
        series = make_series()
        series.rewatch = RewatchState(active=True, round=1)
        detector.detect_completed_series([series], USER, NOW)
        assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=1)) == []
        assert store.get(f"{USER}/completedSeriesData/10") is None

    def test_recent_dismissal_suppresses(self, detector):
        series = make_series()
        detector.detect_completed_series([series], USER, NOW)
        detector.dismiss(10, USER, NOW - timedelta(days=2))
        assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=1)) == []

    def test_old_dismissal_expires(self, detector):
        series = make_series()
        detector.detect_completed_series([series], USER, NOW)
        detector.dismiss(10, USER, NOW - timedelta(days=8))
        assert detector.detect_completed_series([series], USER, NOW + timedelta(hours=1)) == [series]

    def test_prunes_series_off_watchlist(self, detector, store):
        kept = make_series(series_id=10)
        dropped = make_series(series_id=11)
        detector.detect_completed_series([kept, dropped], USER, NOW)
        assert set(store.get(f"{USER}/completedSeriesData")) == {"10", "11"}

        dropped.watchlist = False
        detector.detect_completed_series([kept, dropped], USER, NOW + timedelta(hours=1))
        assert set(store.get(f"{USER}/completedSeriesData")) == {"10"}

    def test_unreadable_records_treated_as_unseen(self, detector, store):
        store.set(f"{USER}/completedSeriesData", {"10": {"garbage": True}})
        series = make_series()
        assert detector.detect_completed_series([series], USER, NOW) == []
        assert store.get(f"{USER}/completedSeriesData/10")["seriesId"] == 10

    def test_bad_record_does_not_reset_others(self, detector, store):
        """Only the unreadable entry is dropped; acknowledged series stay quiet."""
        notified = make_series(series_id=10)
        other = make_series(series_id=99)
        detector.detect_completed_series([notified], USER, NOW)
        detector.detect_completed_series([notified], USER, NOW + timedelta(minutes=1))
        detector.mark_notified(10, USER, NOW + timedelta(minutes=2))

        store.set(f"{USER}/completedSeriesData/99", {"seriesId": 99, "notified": True})

        records = detector.load_records(USER)
        assert set(records) == {"10"}
        assert records["10"].notified is True

        for minutes in (5, 10):
            found = detector.detect_completed_series([notified, other], USER, NOW + timedelta(minutes=minutes))
            assert notified not in found
        assert store.get(f"{USER}/completedSeriesData/10/notified") is True

    def test_read_failure_treated_as_no_data(self, detector, store, monkeypatch):
        def broken_get(path, default=None):
            raise StorageError("offline")

        monkeypatch.setattr(store, "get", broken_get)
        assert detector.load_records(USER) == {}
        assert detector.load_dismissals(USER) == {}

    def test_write_failure_does_not_raise(self, detector, store, monkeypatch):
        def broken_set(path, value):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "set", broken_set)
        assert detector.detect_completed_series([make_series()], USER, NOW) == []


class TestMarkNotified:
    """Tests for mark_notified."""

    def test_without_record(self, detector):
        assert detector.mark_notified(42, USER, NOW) is False

    def test_sets_flag_and_timestamp(self, detector, store):
        detector.detect_completed_series([make_series()], USER, NOW)
        later = NOW + timedelta(hours=3)
        detector.mark_notified(10, USER, later)
        record = store.get(f"{USER}/completedSeriesData/10")
        assert record["notified"] is True
        assert record["lastChecked"] == later.isoformat()
