"""Detect series that are fully watched and have ended.

Each watchlist series moves through a small state machine kept in its
CompletedSeriesRecord:

    unknown -> tracking (not all watched) -> tracking (all watched)
            -> surfaced -> notified

Data reverting to "not all watched" (a new episode aired) sends the series
back to tracking and clears both the surfaced and notified markers.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from watchstate.models import CompletedSeriesRecord, NotificationDismissal, Series
from watchstate.rewatch import has_active_rewatch
from watchstate.storage import StorageError, TreeStore

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(days=7)
ENDED_STATUSES = ("ended", "canceled", "cancelled")

T = TypeVar("T")


def are_all_aired_episodes_watched(series: Series, now: Optional[datetime] = None) -> bool:
    """Every aired episode is watched, and at least one has aired."""
    today = (now or datetime.now()).date()
    aired = [e for e in series.episodes() if e.is_aired(today)]
    return bool(aired) and all(e.watched for e in aired)


def is_series_ended(series: Series) -> bool:
    return (series.status or "").strip().lower() in ENDED_STATUSES


class CompletedSeriesDetector:
    """Cooldown-gated scan for newly completed series."""

    def __init__(self, store: TreeStore, cooldown: timedelta = DEFAULT_COOLDOWN):
        """Initialize detector."""
        self.store = store
        self.cooldown = cooldown

    def _records_path(self, user_id: str) -> str:
        return f"{user_id}/completedSeriesData"

    def _dismissals_path(self, user_id: str) -> str:
        return f"{user_id}/completedSeriesNotifications"

    def load_records(self, user_id: str) -> Dict[str, CompletedSeriesRecord]:
        """Load stored records; an unreadable entry counts as unseen."""
        return self._load_map(self._records_path(user_id), CompletedSeriesRecord.from_dict, user_id)

    def load_dismissals(self, user_id: str) -> Dict[str, NotificationDismissal]:
        return self._load_map(self._dismissals_path(user_id), NotificationDismissal.from_dict, user_id)

    def _load_map(self, path: str, parse: Callable[[dict], T], user_id: str) -> Dict[str, T]:
        try:
            raw = self.store.get(path) or {}
        except StorageError as e:
            logger.warning("Cannot read %s: %s", path, e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed %s for %s", path, user_id)
            return {}

        loaded = {}
        for key, value in raw.items():
            if not value:
                continue
            try:
                loaded[str(key)] = parse(value)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping unreadable entry %s in %s: %s", key, path, e)
        return loaded

    def store_records(self, user_id: str, records: Dict[str, CompletedSeriesRecord]) -> None:
        self.store.set(
            self._records_path(user_id),
            {key: record.to_dict() for key, record in records.items()},
        )

    def _recently_dismissed(self, dismissal: Optional[NotificationDismissal], now: datetime) -> bool:
        return bool(dismissal and dismissal.dismissed and now - dismissal.timestamp < self.cooldown)

    def _recently_surfaced(self, record: CompletedSeriesRecord, now: datetime) -> bool:
        return record.surfaced_at is not None and now - record.surfaced_at < self.cooldown

    def detect_completed_series(
        self,
        series_list: Iterable[Series],
        user_id: str,
        now: Optional[datetime] = None,
    ) -> List[Series]:
        """Return watchlist series that became fully watched and ended.

        A series is reported once per cooldown window until the user marks
        it notified, dismisses it, or an aired episode goes unwatched.
        """
        now = now or datetime.now()
        series_list = [s for s in series_list if s is not None]
        stored = self.load_records(user_id)
        dismissals = self.load_dismissals(user_id)
        updated = dict(stored)
        completed: List[Series] = []

        for series in series_list:
            if not series.id or not series.watchlist:
                continue
            if has_active_rewatch(series):
                continue

            key = str(series.id)
            record = stored.get(key)
            all_watched = are_all_aired_episodes_watched(series, now)
            ended = is_series_ended(series)

            if record is None:
                # First sight only starts tracking
                updated[key] = CompletedSeriesRecord(
                    series_id=series.id,
                    all_episodes_watched=all_watched,
                    series_status=series.status,
                    last_checked=now,
                )
                continue

            if not all_watched and (record.notified or record.surfaced_at):
                updated[key] = CompletedSeriesRecord(
                    series_id=series.id,
                    all_episodes_watched=False,
                    series_status=series.status,
                    last_checked=now,
                )
                logger.info("Series %s has unwatched aired episodes again", series.id)
                continue

            pending = (
                all_watched
                and ended
                and not record.notified
                and not self._recently_dismissed(dismissals.get(key), now)
            )
            if pending and not self._recently_surfaced(record, now):
                completed.append(series)
                updated[key] = CompletedSeriesRecord(
                    series_id=series.id,
                    all_episodes_watched=True,
                    series_status=series.status,
                    last_checked=now,
                    notified=False,
                    surfaced_at=now,
                )
                logger.info("Series %s (%s) completed", series.id, series.title)
            elif now - record.last_checked >= self.cooldown:
                updated[key] = CompletedSeriesRecord(
                    series_id=series.id,
                    all_episodes_watched=all_watched,
                    series_status=series.status,
                    last_checked=now,
                    notified=record.notified if all_watched == record.all_episodes_watched else False,
                    surfaced_at=record.surfaced_at,
                )

        on_watchlist = {str(s.id) for s in series_list if s.id and s.watchlist}
        for key in list(updated):
            if key not in on_watchlist:
                del updated[key]

        try:
            self.store_records(user_id, updated)
        except StorageError as e:
            logger.error("Error storing completed series data: %s", e)

        return completed

    def mark_notified(self, series_id: int, user_id: str, now: Optional[datetime] = None) -> bool:
        """Mark the series' completion as acknowledged.

        Returns False when there is no record for the series.
        """
        records = self.load_records(user_id)
        key = str(series_id)
        record = records.get(key)
        if record is None:
            return False

        record.notified = True
        record.last_checked = now or datetime.now()
        self.store_records(user_id, records)
        return True

    def dismiss(self, series_id: int, user_id: str, now: Optional[datetime] = None) -> None:
        """Silence the completion notice for one cooldown window."""
        dismissal = NotificationDismissal(dismissed=True, timestamp=now or datetime.now())
        self.store.set(f"{self._dismissals_path(user_id)}/{series_id}", dismissal.to_dict())
