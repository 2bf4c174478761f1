"""Apply watch toggles to stored series."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from watchstate import toggles
from watchstate.activity import ActivityLog
from watchstate.completed import CompletedSeriesDetector
from watchstate.events import (
    EventChannel,
    RewatchCompleted,
    RewatchStarted,
    SeriesCompleted,
    WatchStateChanged,
    WriteFailed,
)
from watchstate.metadata import MetadataClient, MetadataError
from watchstate.models import Series
from watchstate.rewatch import has_active_rewatch, is_rewatch_complete, start_rewatch
from watchstate.storage import StorageError, TreeStore
from watchstate.toggles import ToggleMode, ToggleResult

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    """Unknown series or invalid request."""

    pass


class WatchTracker:
    """Runs toggles for one user and persists the results.

    In-memory series are only replaced after the store accepted the write,
    so a failed write leaves the last persisted state in place.
    """

    def __init__(
        self,
        store: TreeStore,
        user_id: str,
        events: Optional[EventChannel] = None,
        activity: Optional[ActivityLog] = None,
        metadata: Optional[MetadataClient] = None,
    ):
        """Initialize tracker."""
        self.store = store
        self.user_id = user_id
        self.events = events or EventChannel()
        self.activity = activity
        self.metadata = metadata
        self._series: Dict[int, Series] = {}
        self._unsubscribe = store.subscribe(f"{user_id}/series", self._on_series_changed)

    def close(self) -> None:
        self._unsubscribe()

    def _series_path(self, nmr: int) -> str:
        return f"{self.user_id}/series/{nmr}"

    def _on_series_changed(self, path: str, value) -> None:
        # Reload lazily on next access
        self._series.clear()

    def get_series(self, nmr: int) -> Series:
        if nmr not in self._series:
            data = self.store.get(self._series_path(nmr))
            if not data:
                raise TrackerError(f"Series not found: {nmr}")
            data.setdefault("nmr", nmr)
            self._series[nmr] = Series.from_dict(data)
        return self._series[nmr]

    def list_series(self) -> List[Series]:
        raw = self.store.get(f"{self.user_id}/series") or {}
        result = []
        for key in raw:
            try:
                result.append(self.get_series(int(key)))
            except (TrackerError, ValueError, TypeError) as e:
                logger.warning("Skipping unreadable series %s: %s", key, e)
        return result

    def add_series(self, series: Series) -> None:
        """Store a catalogue entry, replacing any existing one."""
        path = self._series_path(series.nmr)
        try:
            self.store.set(path, series.to_dict())
        except StorageError as e:
            self.events.publish(WriteFailed(user_id=self.user_id, path=path, error=str(e), nmr=series.nmr))
            raise
        self._series[series.nmr] = series

    # Toggles

    def toggle_episode(
        self,
        nmr: int,
        season_number: int,
        episode_id: int,
        mode: ToggleMode = ToggleMode.NORMAL,
        now: Optional[datetime] = None,
    ) -> ToggleResult:
        """Toggle one episode, or a whole season for toggles.ALL_EPISODES."""
        now = now or datetime.now()
        series = self.get_series(nmr)
        result = toggles.toggle_episode(series, season_number, episode_id, mode, now)
        whole_season = episode_id == toggles.ALL_EPISODES
        return self._commit(series, result, mode, [season_number], now, whole_season=whole_season)

    def toggle_season(
        self,
        nmr: int,
        season_number: int,
        mode: ToggleMode = ToggleMode.NORMAL,
        now: Optional[datetime] = None,
    ) -> ToggleResult:
        return self.toggle_episode(nmr, season_number, toggles.ALL_EPISODES, mode, now)

    def toggle_episodes(
        self,
        nmr: int,
        episode_ids: Iterable[int],
        watched: bool,
        now: Optional[datetime] = None,
    ) -> ToggleResult:
        now = now or datetime.now()
        series = self.get_series(nmr)
        result = toggles.toggle_episodes(series, episode_ids, watched, now)
        seasons = [s.season_number for s in series.seasons]
        return self._commit(series, result, ToggleMode.NORMAL, seasons, now)

    def mark_up_to_season(
        self,
        nmr: int,
        season_number: int,
        now: Optional[datetime] = None,
    ) -> ToggleResult:
        now = now or datetime.now()
        series = self.get_series(nmr)
        result = toggles.mark_up_to_season(series, season_number, now)
        seasons = [s.season_number for s in series.seasons if s.season_number <= season_number]
        return self._commit(series, result, ToggleMode.FORCE_WATCH, seasons, now)

    def _commit(
        self,
        series: Series,
        result: ToggleResult,
        mode: ToggleMode,
        season_numbers: List[int],
        now: datetime,
        whole_season: bool = False,
    ) -> ToggleResult:
        if not result.changed:
            return result

        path = f"{self._series_path(series.nmr)}/seasons"
        try:
            self.store.set(path, [season.to_dict() for season in result.updated_seasons])
        except StorageError as e:
            logger.error("Write failed for series %s: %s", series.nmr, e)
            self.events.publish(WriteFailed(user_id=self.user_id, path=path, error=str(e), nmr=series.nmr))
            raise

        updated = replace(series, seasons=result.updated_seasons)
        self._series[series.nmr] = updated

        self.events.publish(
            WatchStateChanged(
                user_id=self.user_id,
                nmr=series.nmr,
                season_numbers=tuple(season_numbers),
                mode=mode.value,
                newly_watched=len(result.newly_watched),
                rewatched=len(result.rewatched),
                unwatched=len(result.unwatched),
            )
        )

        if result.rewatched and has_active_rewatch(updated) and is_rewatch_complete(updated):
            self._finish_rewatch(updated)

        self._record_activity(updated, result, season_numbers, now, whole_season)
        return result

    # Rewatch lifecycle

    def start_rewatch(self, nmr: int, continue_existing: bool = False, now: Optional[datetime] = None):
        series = self.get_series(nmr)
        state = start_rewatch(series, continue_existing=continue_existing, now=now)
        self._write_rewatch(series, state.to_dict())
        self._series[nmr] = replace(series, rewatch=state)
        self.events.publish(RewatchStarted(user_id=self.user_id, nmr=nmr, round=state.round))
        return state

    def stop_rewatch(self, nmr: int) -> None:
        series = self.get_series(nmr)
        self._write_rewatch(series, None)
        self._series[nmr] = replace(series, rewatch=None)

    def _finish_rewatch(self, series: Series) -> None:
        try:
            self._write_rewatch(series, None)
        except StorageError:
            # Flag stays set; next rewatch toggle retries
            return
        self._series[series.nmr] = replace(series, rewatch=None)
        logger.info("Rewatch #%s of %s complete", series.rewatch.round, series.title)
        self.events.publish(RewatchCompleted(user_id=self.user_id, nmr=series.nmr, round=series.rewatch.round))

    def _write_rewatch(self, series: Series, value) -> None:
        path = f"{self._series_path(series.nmr)}/rewatch"
        try:
            self.store.set(path, value)
        except StorageError as e:
            self.events.publish(WriteFailed(user_id=self.user_id, path=path, error=str(e), nmr=series.nmr))
            raise

    # Completion

    def check_completed(self, detector: CompletedSeriesDetector, now: Optional[datetime] = None) -> List[Series]:
        completed = detector.detect_completed_series(self.list_series(), self.user_id, now)
        for series in completed:
            self.events.publish(SeriesCompleted(user_id=self.user_id, series_id=series.id, title=series.title))
        return completed

    # Side effects

    def _details(self, series: Series) -> Optional[dict]:
        if self.metadata is None:
            return None
        try:
            info = self.metadata.get_series(series.id)
        except MetadataError as e:
            logger.warning("Metadata lookup failed for %s: %s", series.id, e)
            return None
        return {"genres": info.get("genres", []), "poster": info.get("poster")}

    def _record_activity(
        self,
        series: Series,
        result: ToggleResult,
        season_numbers: List[int],
        now: datetime,
        whole_season: bool,
    ) -> None:
        """Best effort: failures are logged and never undo the write."""
        if self.activity is None or not (result.newly_watched or result.rewatched):
            return

        try:
            details = self._details(series)
            season = series.find_season(season_numbers[0]) if whole_season else None
            watched_now = len(result.newly_watched) + len(result.rewatched)
            if season is not None and season.episodes and watched_now == len(season.episodes):
                self.activity.record_season(
                    self.user_id, series, season.season_number, len(season.episodes), details, now
                )
            else:
                for episode in result.newly_watched:
                    self.activity.record_episode(self.user_id, series, episode, False, details, now)
                for episode in result.rewatched:
                    self.activity.record_episode(self.user_id, series, episode, True, details, now)
            self.activity.save()
        except Exception as e:
            logger.warning("Could not record activity for %s: %s", series.nmr, e)
