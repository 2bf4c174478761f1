"""Tests for data models."""

from datetime import date, datetime

import pytest

from watchstate.models import (
    CompletedSeriesRecord,
    Episode,
    NotificationDismissal,
    RewatchState,
    Season,
    Series,
    Unwatched,
    Watched,
)


def test_episode_unwatched_by_default():
    """New episodes are unwatched."""
    episode = Episode(id=1, name="Pilot")
    assert episode.watched is False
    assert episode.watch_count == 0
    assert isinstance(episode.state, Unwatched)


def test_watched_rejects_zero_count():
    """Watched state needs a count of at least 1."""
    with pytest.raises(ValueError):
        Watched(count=0)


def test_unwatched_episode_to_dict_has_no_watch_fields():
    """Unwatched episodes carry no watchCount or timestamps."""
    data = Episode(id=1, name="Pilot", air_date=date(2020, 1, 5)).to_dict()
    assert data == {"id": 1, "name": "Pilot", "air_date": "2020-01-05", "watched": False}


def test_watched_episode_to_dict():
    """Watched episodes store count and timestamps."""
    episode = Episode(
        id=1,
        name="Pilot",
        state=Watched(
            count=2,
            first_watched_at=datetime(2025, 1, 1, 20, 0),
            last_watched_at=datetime(2025, 3, 1, 21, 0),
        ),
    )
    data = episode.to_dict()
    assert data["watched"] is True
    assert data["watchCount"] == 2
    assert data["firstWatchedAt"] == "2025-01-01T20:00:00"
    assert data["lastWatchedAt"] == "2025-03-01T21:00:00"


def test_episode_from_dict_missing_count_reads_as_one():
    """Watched episodes without watchCount count once."""
    episode = Episode.from_dict({"id": 7, "name": "X", "watched": True})
    assert episode.watch_count == 1


def test_episode_from_dict_normalizes_stray_fields():
    """Unwatched episodes drop leftover watch fields."""
    episode = Episode.from_dict(
        {"id": 7, "watched": False, "watchCount": 3, "firstWatchedAt": "2024-01-01T00:00:00"}
    )
    assert episode.state == Unwatched()
    assert "watchCount" not in episode.to_dict()


def test_episode_from_dict_accepts_air_date_alias():
    """airDate works like air_date."""
    episode = Episode.from_dict({"id": 7, "airDate": "2023-06-01T00:00:00Z", "watched": False})
    assert episode.air_date == date(2023, 6, 1)


def test_episode_from_dict_converts_utc_timestamps_to_naive():
    """Zulu timestamps come back as naive local time."""
    episode = Episode.from_dict(
        {"id": 1, "watched": True, "watchCount": 1, "firstWatchedAt": "2025-01-01T10:00:00.000Z"}
    )
    assert episode.state.first_watched_at.tzinfo is None


def test_season_missing_episodes_reads_empty():
    """Seasons without episodes have an empty list."""
    assert Season.from_dict({"seasonNumber": 2}).episodes == []


def test_series_from_dict():
    """Series reconstructs from the stored representation."""
    series = Series.from_dict(
        {
            "id": 1399,
            "nmr": 4,
            "title": "Game of Thrones",
            "status": "Ended",
            "watchlist": True,
            "seasons": [
                {"seasonNumber": 1, "episodes": [{"id": 1, "watched": True, "watchCount": 2}]},
            ],
            "rewatch": {"active": True, "round": 1},
        }
    )
    assert series.title == "Game of Thrones"
    assert series.find_season(1).episodes[0].watch_count == 2
    assert series.find_season(2) is None
    assert series.rewatch == RewatchState(active=True, round=1)


def test_series_missing_seasons_reads_empty():
    """Series without seasons have none."""
    series = Series.from_dict({"id": 1, "nmr": 1, "title": "Empty"})
    assert series.seasons == []
    assert series.rewatch is None


def test_series_to_dict_and_back():
    """Series survives a dict conversion."""
    series = Series(
        id=1,
        nmr=2,
        title="Dark",
        watchlist=True,
        seasons=[Season(1, [Episode(id=10, state=Watched(count=3))])],
    )
    assert Series.from_dict(series.to_dict()) == series


def test_completed_record_reads_epoch_milliseconds():
    """lastChecked in epoch milliseconds is understood."""
    ts = datetime(2025, 5, 1, 12, 0)
    record = CompletedSeriesRecord.from_dict(
        {"seriesId": 5, "allEpisodesWatched": True, "seriesStatus": "Ended",
         "lastChecked": int(ts.timestamp() * 1000), "notified": False}
    )
    assert record.last_checked == ts
    assert record.surfaced_at is None


def test_notification_dismissal_to_dict():
    """Dismissals store flag and timestamp."""
    dismissal = NotificationDismissal(dismissed=True, timestamp=datetime(2025, 1, 2))
    assert dismissal.to_dict() == {"dismissed": True, "timestamp": "2025-01-02T00:00:00"}
    assert NotificationDismissal.from_dict(dismissal.to_dict()) == dismissal


def test_completed_record_requires_last_checked():
    with pytest.raises(ValueError):
        CompletedSeriesRecord.from_dict({"seriesId": 5, "lastChecked": None})


@pytest.mark.parametrize("bad", ["n/a", "", 10 ** 20])
def test_unreadable_timestamps_are_dropped(bad):
    """Malformed watch timestamps read as missing instead of failing."""
    episode = Episode.from_dict(
        {"id": 1, "watched": True, "watchCount": 2, "firstWatchedAt": bad, "lastWatchedAt": bad}
    )
    assert episode.state == Watched(count=2)
    assert RewatchState.from_dict({"active": True, "round": 1, "startedAt": bad}).started_at is None


def test_dismissal_with_unreadable_timestamp():
    with pytest.raises(ValueError):
        NotificationDismissal.from_dict({"dismissed": True, "timestamp": "n/a"})
