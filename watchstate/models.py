"""Data models for series watch state."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import List, Optional, Union


@dataclass(frozen=True)
class Unwatched:
    """Episode that has never been watched (or was fully reset)."""


@dataclass(frozen=True)
class Watched:
    """Episode watched at least once."""

    count: int = 1
    first_watched_at: Optional[datetime] = None
    last_watched_at: Optional[datetime] = None

    def __post_init__(self):
        if self.count < 1:
            raise ValueError(f"Watch count must be at least 1, got {self.count}")


WatchState = Union[Unwatched, Watched]

UNWATCHED = Unwatched()


def _parse_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    try:
        if isinstance(value, (int, float)):
            # Epoch milliseconds
            return datetime.fromtimestamp(value / 1000)
        if not isinstance(value, datetime):
            value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return None
    if value.tzinfo is not None:
        # All comparisons happen on naive local time
        value = value.astimezone().replace(tzinfo=None)
    return value


def _parse_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass
class Episode:
    """One episode and its watch state."""

    id: int
    name: str = ""
    air_date: Optional[date] = None
    state: WatchState = UNWATCHED

    @property
    def watched(self) -> bool:
        return isinstance(self.state, Watched)

    @property
    def watch_count(self) -> int:
        """Times watched, 0 if never watched."""
        return self.state.count if isinstance(self.state, Watched) else 0

    def with_state(self, state: WatchState) -> "Episode":
        return replace(self, state=state)

    def is_aired(self, today: date) -> bool:
        return self.air_date is not None and self.air_date <= today

    def to_dict(self) -> dict:
        """Convert to the stored representation.

        Unwatched episodes carry no watchCount or timestamps at all.
        """
        data = {"id": self.id, "name": self.name}
        if self.air_date:
            data["air_date"] = self.air_date.isoformat()
        data["watched"] = self.watched
        if isinstance(self.state, Watched):
            data["watchCount"] = self.state.count
            if self.state.first_watched_at:
                data["firstWatchedAt"] = self.state.first_watched_at.isoformat()
            if self.state.last_watched_at:
                data["lastWatchedAt"] = self.state.last_watched_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Episode":
        """Reconstruct from the stored representation."""
        if data.get("watched"):
            state = Watched(
                count=max(1, int(data.get("watchCount") or 1)),
                first_watched_at=_parse_datetime(data.get("firstWatchedAt")),
                last_watched_at=_parse_datetime(data.get("lastWatchedAt")),
            )
        else:
            state = UNWATCHED
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            air_date=_parse_date(data.get("air_date") or data.get("airDate")),
            state=state,
        )


@dataclass
class Season:
    """A season, identified by its season number."""

    season_number: int
    episodes: List[Episode] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "seasonNumber": self.season_number,
            "episodes": [episode.to_dict() for episode in self.episodes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Season":
        episodes = data.get("episodes") or []
        # Some stores hand back sparse arrays as index-keyed mappings
        if isinstance(episodes, dict):
            episodes = list(episodes.values())
        return cls(
            season_number=int(data.get("seasonNumber", 0)),
            episodes=[Episode.from_dict(e) for e in episodes if e],
        )


@dataclass
class RewatchState:
    """Explicit rewatch flag stored on a series."""

    active: bool = False
    round: int = 0
    started_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = {"active": self.active, "round": self.round}
        if self.started_at:
            data["startedAt"] = self.started_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RewatchState":
        return cls(
            active=bool(data.get("active", False)),
            round=int(data.get("round") or 0),
            started_at=_parse_datetime(data.get("startedAt")),
        )


@dataclass
class Series:
    """A catalogue entry with its season tree."""

    id: int
    nmr: int
    title: str
    watchlist: bool = False
    status: Optional[str] = None
    seasons: List[Season] = field(default_factory=list)
    rewatch: Optional[RewatchState] = None

    def find_season(self, season_number: int) -> Optional[Season]:
        for season in self.seasons:
            if season.season_number == season_number:
                return season
        return None

    def episodes(self) -> List[Episode]:
        """All episodes, seasons in order."""
        return [episode for season in self.seasons for episode in season.episodes]

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "nmr": self.nmr,
            "title": self.title,
            "status": self.status,
            "watchlist": self.watchlist,
            "seasons": [season.to_dict() for season in self.seasons],
        }
        if self.rewatch:
            data["rewatch"] = self.rewatch.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Series":
        seasons = data.get("seasons") or []
        if isinstance(seasons, dict):
            seasons = list(seasons.values())
        rewatch = data.get("rewatch")
        return cls(
            id=data.get("id"),
            nmr=data.get("nmr"),
            title=data.get("title") or data.get("name") or "",
            watchlist=bool(data.get("watchlist", False)),
            status=data.get("status"),
            seasons=[Season.from_dict(s) for s in seasons if s],
            rewatch=RewatchState.from_dict(rewatch) if rewatch else None,
        )


@dataclass
class CompletedSeriesRecord:
    """Per-series completion tracking used to dedupe notifications."""

    series_id: int
    all_episodes_watched: bool
    series_status: Optional[str]
    last_checked: datetime
    notified: bool = False
    surfaced_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = {
            "seriesId": self.series_id,
            "allEpisodesWatched": self.all_episodes_watched,
            "seriesStatus": self.series_status,
            "lastChecked": self.last_checked.isoformat(),
            "notified": self.notified,
        }
        if self.surfaced_at:
            data["surfacedAt"] = self.surfaced_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CompletedSeriesRecord":
        last_checked = _parse_datetime(data.get("lastChecked"))
        if last_checked is None:
            raise ValueError("Completed series record has no lastChecked")
        return cls(
            series_id=data.get("seriesId"),
            all_episodes_watched=bool(data.get("allEpisodesWatched", False)),
            series_status=data.get("seriesStatus"),
            last_checked=last_checked,
            notified=bool(data.get("notified", False)),
            surfaced_at=_parse_datetime(data.get("surfacedAt")),
        )


@dataclass
class NotificationDismissal:
    """User dismissed the completion notice for a series."""

    dismissed: bool
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"dismissed": self.dismissed, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationDismissal":
        timestamp = _parse_datetime(data.get("timestamp"))
        if timestamp is None:
            raise ValueError("Notification dismissal has no timestamp")
        return cls(
            dismissed=bool(data.get("dismissed", False)),
            timestamp=timestamp,
        )
