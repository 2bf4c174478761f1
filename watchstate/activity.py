"""Record watch activity for streaks and statistics."""

from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import yaml

from watchstate.models import Episode, Series


class ActivityLog:
    """Append-only log of watch activity kept in YAML."""

    def __init__(self, data_dir: Path):
        """Initialize activity log."""
        self.data_dir = Path(data_dir)
        self.activity_path = self.data_dir / "activity.yaml"
        self.items: List[dict] = []

    def record_episode(
        self,
        user_id: str,
        series: Series,
        episode: Episode,
        is_rewatch: bool = False,
        details: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Record one episode watched or rewatched."""
        now = now or datetime.now()
        entry = {
            "type": "episode",
            "user_id": user_id,
            "series_id": series.id,
            "title": series.title,
            "episode_id": episode.id,
            "episode_name": episode.name,
            "is_rewatch": is_rewatch,
            "air_date": episode.air_date.isoformat() if episode.air_date else None,
            # Watched on the day it aired
            "quickwatch": bool(
                not is_rewatch and episode.air_date and episode.air_date == now.date()
            ),
            "watch_count": episode.watch_count,
            "at": now.isoformat(),
        }
        if details:
            entry.update(details)
        self.items.append(entry)

    def record_season(
        self,
        user_id: str,
        series: Series,
        season_number: int,
        episode_count: int,
        details: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Record a whole season watched in one go."""
        entry = {
            "type": "season",
            "user_id": user_id,
            "series_id": series.id,
            "title": series.title,
            "season_number": season_number,
            "episode_count": episode_count,
            "at": (now or datetime.now()).isoformat(),
        }
        if details:
            entry.update(details)
        self.items.append(entry)

    def load(self) -> List[dict]:
        """Load previously saved activity."""
        if not self.activity_path.exists():
            return []

        with open(self.activity_path) as f:
            data = yaml.safe_load(f)

        if not data or "items" not in data:
            return []
        return data["items"]

    def save(self) -> None:
        """Append pending activity to the YAML file."""
        if not self.items:
            return

        self.data_dir.mkdir(parents=True, exist_ok=True)
        items = self.load() + self.items

        data = {
            "updated_at": datetime.now().isoformat(),
            "count": len(items),
            "items": items,
        }

        with open(self.activity_path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

        self.items = []

    def count(self) -> int:
        """Return count of pending entries."""
        return len(self.items)

    def count_since(self, since: date, is_rewatch: Optional[bool] = None) -> int:
        """Count saved episode entries on or after a date."""
        total = 0
        for item in self.load():
            if item.get("type") != "episode":
                continue
            if datetime.fromisoformat(item["at"]).date() < since:
                continue
            if is_rewatch is not None and bool(item.get("is_rewatch")) != is_rewatch:
                continue
            total += 1
        return total
