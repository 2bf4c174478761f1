"""Watch toggle transforms.

Every function takes the current series and returns a new season list; the
input is never mutated. Persisting the result is the caller's job.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from watchstate.models import UNWATCHED, Episode, Season, Series, Watched

# Episode id meaning "every episode of the season"
ALL_EPISODES = -1


class ToggleMode(Enum):
    """Direction of a toggle call."""

    NORMAL = "normal"
    FORCE_WATCH = "watch"
    FORCE_UNWATCH = "unwatch"
    REWATCH = "rewatch"


@dataclass
class ToggleResult:
    """Outcome of a transform."""

    updated_seasons: List[Season]
    # Unwatched before, watched now
    newly_watched: List[Episode] = field(default_factory=list)
    # Watched before, higher count now
    rewatched: List[Episode] = field(default_factory=list)
    # Lost a viewing or reset entirely
    unwatched: List[Episode] = field(default_factory=list)
    # Same count, timestamps filled in
    stamped: List[Episode] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.newly_watched or self.rewatched or self.unwatched or self.stamped)


def watch(episode: Episode, now: datetime) -> Episode:
    """Mark watched once. Any earlier count is discarded."""
    first = episode.state.first_watched_at if episode.watched else None
    return episode.with_state(Watched(count=1, first_watched_at=first or now))


def reset(episode: Episode) -> Episode:
    return episode.with_state(UNWATCHED)


def decrement(episode: Episode) -> Episode:
    """Undo one viewing; the last one resets the episode entirely."""
    if not episode.watched or episode.watch_count <= 1:
        return reset(episode)
    return episode.with_state(replace(episode.state, count=episode.watch_count - 1))


def increment(episode: Episode, now: datetime) -> Episode:
    first = episode.state.first_watched_at if episode.watched else None
    return episode.with_state(
        Watched(
            count=max(1, episode.watch_count) + 1,
            first_watched_at=first or now,
            last_watched_at=now,
        )
    )


def flip(episode: Episode, now: datetime) -> Episode:
    if episode.watched:
        return reset(episode)
    return watch(episode, now)


def ensure_watched(episode: Episode, now: datetime) -> Episode:
    """Watch if unwatched; already watched episodes keep their count."""
    if episode.watched:
        return episode
    return episode.with_state(Watched(count=1, first_watched_at=now))


def _force_watch(episode: Episode, now: datetime) -> Episode:
    if episode.watched and not episode.state.first_watched_at:
        return episode.with_state(replace(episode.state, first_watched_at=now))
    return ensure_watched(episode, now)


def _apply(episode: Episode, mode: ToggleMode, now: datetime) -> Episode:
    if mode is ToggleMode.FORCE_UNWATCH:
        return decrement(episode)
    if mode is ToggleMode.REWATCH:
        return increment(episode, now)
    if mode is ToggleMode.FORCE_WATCH:
        return ensure_watched(episode, now)
    return flip(episode, now)


def _replace_season(series: Series, season_number: int, episodes: List[Episode]) -> List[Season]:
    return [
        replace(season, episodes=episodes) if season.season_number == season_number else season
        for season in series.seasons
    ]


def _collect(result: ToggleResult, before: List[Episode], after: List[Episode]) -> ToggleResult:
    for old, new in zip(before, after):
        if not old.watched and new.watched:
            result.newly_watched.append(new)
        elif new.watch_count > old.watch_count:
            result.rewatched.append(new)
        elif new.watch_count < old.watch_count:
            result.unwatched.append(new)
        elif new.state != old.state:
            result.stamped.append(new)
    return result


def toggle_episode(
    series: Series,
    season_number: int,
    episode_id: int,
    mode: ToggleMode = ToggleMode.NORMAL,
    now: Optional[datetime] = None,
) -> ToggleResult:
    """Toggle a single episode, or the whole season for ALL_EPISODES."""
    if episode_id == ALL_EPISODES:
        return toggle_season(series, season_number, mode, now)

    now = now or datetime.now()
    season = series.find_season(season_number)
    if season is None or not any(e.id == episode_id for e in season.episodes):
        return ToggleResult(updated_seasons=list(series.seasons))

    episodes = [_apply(e, mode, now) if e.id == episode_id else e for e in season.episodes]
    result = ToggleResult(updated_seasons=_replace_season(series, season_number, episodes))
    return _collect(result, season.episodes, episodes)


def _season_rewatch_target(episodes: List[Episode]) -> int:
    # Unwatched episodes count as one viewing
    counts = [max(1, e.watch_count) for e in episodes]
    if not counts:
        return 2
    highest = max(counts)
    # Same count everywhere: one more pass. Diverging: catch up to the furthest.
    return highest + 1 if min(counts) == highest else highest


def toggle_season(
    series: Series,
    season_number: int,
    mode: ToggleMode = ToggleMode.NORMAL,
    now: Optional[datetime] = None,
) -> ToggleResult:
    now = now or datetime.now()
    season = series.find_season(season_number)
    if season is None:
        return ToggleResult(updated_seasons=list(series.seasons))

    before = season.episodes
    if mode is ToggleMode.FORCE_UNWATCH:
        episodes = [decrement(e) if e.watched else e for e in before]
    elif mode is ToggleMode.REWATCH:
        target = _season_rewatch_target(before)
        episodes = []
        for e in before:
            first = e.state.first_watched_at if e.watched else None
            episodes.append(
                e.with_state(Watched(count=target, first_watched_at=first or now, last_watched_at=now))
            )
    elif mode is ToggleMode.FORCE_WATCH:
        episodes = [_force_watch(e, now) for e in before]
    elif all(e.watched for e in before):
        # Tri-state checkbox: fully checked clears everything
        episodes = [reset(e) for e in before]
    else:
        episodes = [ensure_watched(e, now) for e in before]

    result = ToggleResult(updated_seasons=_replace_season(series, season_number, episodes))
    return _collect(result, before, episodes)


def toggle_episodes(
    series: Series,
    episode_ids: Iterable[int],
    watched: bool,
    now: Optional[datetime] = None,
) -> ToggleResult:
    """Mark the given episodes watched or unwatched, across seasons."""
    now = now or datetime.now()
    ids = set(episode_ids)
    result = ToggleResult(updated_seasons=[])
    for season in series.seasons:
        episodes = [
            (watch(e, now) if watched else reset(e)) if e.id in ids else e
            for e in season.episodes
        ]
        result.updated_seasons.append(replace(season, episodes=episodes))
        _collect(result, season.episodes, episodes)
    return result


def mark_up_to_season(
    series: Series,
    season_number: int,
    now: Optional[datetime] = None,
) -> ToggleResult:
    """Mark every episode of season N and all earlier seasons watched."""
    now = now or datetime.now()
    result = ToggleResult(updated_seasons=[])
    for season in series.seasons:
        if season.season_number > season_number:
            result.updated_seasons.append(season)
            continue
        episodes = [ensure_watched(e, now) for e in season.episodes]
        result.updated_seasons.append(replace(season, episodes=episodes))
        _collect(result, season.episodes, episodes)
    return result
