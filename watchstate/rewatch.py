"""Rewatch calculations derived from a series' season tree.

Everything here is read-only: the explicit ``rewatch`` flag on a series is
authoritative and the raw episode watch counts are the only other input.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from watchstate.models import Episode, RewatchState, Series

MIN_TARGET_WATCH_COUNT = 2


@dataclass(frozen=True)
class NextRewatchEpisode:
    """Next episode to watch in the current rewatch pass."""

    episode: Episode
    season_number: int
    episode_index: int
    current_watch_count: int
    target_watch_count: int


@dataclass(frozen=True)
class RewatchProgress:
    """Episodes caught up with the rewatch target out of all watched ones."""

    current: int
    total: int

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.current / self.total * 100)


@dataclass(frozen=True)
class NoRewatch:
    """No rewatch in progress."""

    round: int = 0


@dataclass(frozen=True)
class ExplicitRewatch:
    """Rewatch the user started."""

    round: int


@dataclass(frozen=True)
class InferredRewatch:
    """Rewatch inferred from diverging watch counts."""

    round: int


RewatchStatus = Union[NoRewatch, ExplicitRewatch, InferredRewatch]


def _watched_counts(series: Series) -> list:
    return [e.watch_count for e in series.episodes() if e.watched]


def has_active_rewatch(series: Series) -> bool:
    return bool(series.rewatch and series.rewatch.active)


def target_watch_count(series: Series) -> int:
    """Watch count every episode needs to be caught up.

    Never below 2: an active rewatch always means watching again.
    """
    rewatch_round = series.rewatch.round if series.rewatch else 0
    return max(MIN_TARGET_WATCH_COUNT, (rewatch_round or 0) + 1)


def next_rewatch_episode(series: Series) -> Optional[NextRewatchEpisode]:
    """Find the first watched episode still below the rewatch target.

    Returns None without an active rewatch, or when the pass is done.
    """
    if not has_active_rewatch(series):
        return None

    target = target_watch_count(series)
    for season in series.seasons:
        for index, episode in enumerate(season.episodes):
            if episode.watched and episode.watch_count < target:
                return NextRewatchEpisode(
                    episode=episode,
                    season_number=season.season_number,
                    episode_index=index,
                    current_watch_count=episode.watch_count,
                    target_watch_count=target,
                )
    return None


def rewatch_progress(series: Series) -> RewatchProgress:
    target = target_watch_count(series)
    counts = _watched_counts(series)
    return RewatchProgress(
        current=sum(1 for count in counts if count >= target),
        total=len(counts),
    )


def is_rewatch_complete(series: Series) -> bool:
    if not has_active_rewatch(series):
        return False
    target = target_watch_count(series)
    return all(count >= target for count in _watched_counts(series))


def is_series_fully_watched(series: Series) -> bool:
    """Every episode watched, all with the same watch count."""
    episodes = series.episodes()
    if not episodes:
        return False
    if not all(e.watched for e in episodes):
        return False
    return len({e.watch_count for e in episodes}) == 1


def max_watch_count(series: Series) -> int:
    return max(_watched_counts(series), default=0)


def implicit_rewatch_round(series: Series) -> int:
    """Infer the round of a rewatch the user never started explicitly.

    Diverging watch counts without a rewatch flag only happen when episodes
    were rewatched ad hoc; the round follows the highest count seen.
    """
    if has_active_rewatch(series) or is_series_fully_watched(series):
        return 0

    counts = _watched_counts(series)
    if not counts:
        return 0
    lowest, highest = min(counts), max(counts)
    if lowest != highest and highest > 1:
        return highest - 1
    return 0


def rewatch_status(series: Series) -> RewatchStatus:
    if has_active_rewatch(series):
        return ExplicitRewatch(round=series.rewatch.round)
    inferred = implicit_rewatch_round(series)
    if inferred:
        return InferredRewatch(round=inferred)
    return NoRewatch()


def start_rewatch(
    series: Series,
    continue_existing: bool = False,
    now: Optional[datetime] = None,
) -> RewatchState:
    """Build the rewatch flag for a new or continued pass.

    Continuing brings lagging episodes up to the current highest count; a new
    pass targets one above it. The round is at least 1 either way.
    """
    highest = max_watch_count(series)
    if continue_existing:
        new_round = max(1, highest - 1)
    else:
        new_round = max(1, highest)
    return RewatchState(active=True, round=new_round, started_at=now or datetime.now())
