"""Tests for activity logging."""

from datetime import date, datetime

import yaml

from watchstate.activity import ActivityLog
from watchstate.models import Episode, Series, Watched

SERIES = Series(id=1399, nmr=4, title="Game of Thrones")


class TestActivityLog:
    """Test activity recording."""

    def test_record_episode(self, tmp_path):
        """Record an episode to YAML."""
        log = ActivityLog(data_dir=tmp_path)
        episode = Episode(id=5, name="Winter Is Coming", air_date=date(2011, 4, 17), state=Watched())

        log.record_episode("user1", SERIES, episode, now=datetime(2025, 12, 1, 20, 0))
        log.save()

        with open(tmp_path / "activity.yaml") as f:
            data = yaml.safe_load(f)

        assert data["count"] == 1
        item = data["items"][0]
        assert item["title"] == "Game of Thrones"
        assert item["episode_id"] == 5
        assert item["air_date"] == "2011-04-17"
        assert item["is_rewatch"] is False
        assert item["quickwatch"] is False

    def test_quickwatch_on_air_day(self, tmp_path):
        """Watching on the air date is a quickwatch, unless it is a rewatch."""
        log = ActivityLog(data_dir=tmp_path)
        episode = Episode(id=5, air_date=date(2025, 12, 1), state=Watched())
        now = datetime(2025, 12, 1, 23, 0)

        log.record_episode("user1", SERIES, episode, now=now)
        log.record_episode("user1", SERIES, episode, is_rewatch=True, now=now)

        assert log.items[0]["quickwatch"] is True
        assert log.items[1]["quickwatch"] is False

    def test_save_appends(self, tmp_path):
        """Each save adds to earlier activity."""
        log = ActivityLog(data_dir=tmp_path)
        log.record_season("user1", SERIES, 1, 10)
        log.save()
        assert log.count() == 0

        log.record_season("user1", SERIES, 2, 10)
        log.save()

        items = ActivityLog(data_dir=tmp_path).load()
        assert [i["season_number"] for i in items] == [1, 2]

    def test_save_without_items_writes_nothing(self, tmp_path):
        log = ActivityLog(data_dir=tmp_path)
        log.save()
        assert not (tmp_path / "activity.yaml").exists()

    def test_count_since(self, tmp_path):
        """Count saved episodes by date and rewatch flag."""
        log = ActivityLog(data_dir=tmp_path)
        episode = Episode(id=5, state=Watched())
        log.record_episode("user1", SERIES, episode, now=datetime(2025, 11, 1))
        log.record_episode("user1", SERIES, episode, is_rewatch=True, now=datetime(2025, 12, 2))
        log.record_episode("user1", SERIES, episode, now=datetime(2025, 12, 3))
        log.record_season("user1", SERIES, 1, 8, now=datetime(2025, 12, 3))
        log.save()

        assert log.count_since(date(2025, 12, 1)) == 2
        assert log.count_since(date(2025, 12, 1), is_rewatch=True) == 1
        assert log.count_since(date(2025, 1, 1), is_rewatch=False) == 2
