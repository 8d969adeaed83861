"""Star delta and velocity computation for metrics snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Protocol

from .models import UTC, GitHubRepository, NewMetrics, ProjectMetrics, StarWindow

LOGGER = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
DELTA_WINDOW_DAYS = 7


class MetricsStore(Protocol):
    async def insert(self, metrics: NewMetrics) -> ProjectMetrics: ...

    async def latest(self, project_id: int) -> ProjectMetrics | None: ...

    async def window(self, project_id: int, since: datetime) -> StarWindow: ...

    async def history(
        self,
        project_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ProjectMetrics]: ...


def stars_gained(previous: ProjectMetrics | None, current_stars: int) -> int:
    """Stars gained since the most recent stored snapshot, 0 without one."""

    if previous is None:
        return 0
    return current_stars - previous.stars_count


def window_delta(window: StarWindow, current_stars: int) -> int:
    """``max - min`` over the stored rows of the window plus the incoming snapshot.

    A window with no stored rows yields 0.
    """

    if not window.samples or window.min_stars is None or window.max_stars is None:
        return 0
    return max(window.max_stars, current_stars) - min(window.min_stars, current_stars)


def window_velocity(window: StarWindow, current_stars: int, recorded_at: datetime) -> float:
    """Average daily star growth across the window.

    The spread is divided by the number of days between the oldest row in the
    window and ``recorded_at``, never by less than one day.
    """

    if not window.samples or window.first_recorded_at is None:
        return 0.0
    span_days = (recorded_at - window.first_recorded_at).total_seconds() / SECONDS_PER_DAY
    return window_delta(window, current_stars) / max(span_days, 1.0)


def build_metrics(
    project_id: int,
    repo: GitHubRepository,
    recorded_at: datetime,
    previous: ProjectMetrics | None,
    delta_window: StarWindow,
    velocity_window: StarWindow,
) -> NewMetrics:
    stars = repo.stargazers_count
    return NewMetrics(
        project_id=project_id,
        recorded_at=recorded_at,
        stars_count=stars,
        forks_count=repo.forks_count,
        watchers_count=repo.watchers_count,
        open_issues_count=repo.open_issues_count,
        stars_gained_24h=stars_gained(previous, stars),
        stars_gained_7d=window_delta(delta_window, stars),
        stars_velocity=window_velocity(velocity_window, stars, recorded_at),
    )


class MetricsService:
    """Records snapshots and serves metric lookups."""

    def __init__(self, store: MetricsStore, velocity_window_days: int = 7) -> None:
        self._store = store
        self._velocity_window_days = velocity_window_days

    async def record(
        self, project_id: int, repo: GitHubRepository, recorded_at: datetime | None = None
    ) -> ProjectMetrics:
        recorded_at = recorded_at or datetime.now(tz=UTC)
        previous = await self._store.latest(project_id)
        if previous is not None and previous.recorded_at > recorded_at:
            # Keep the series ordered even if the clock went backwards.
            recorded_at = previous.recorded_at

        delta_window = await self._store.window(project_id, recorded_at - timedelta(days=DELTA_WINDOW_DAYS))
        if self._velocity_window_days == DELTA_WINDOW_DAYS:
            velocity_window = delta_window
        else:
            velocity_window = await self._store.window(
                project_id, recorded_at - timedelta(days=self._velocity_window_days)
            )

        metrics = await self._store.insert(
            build_metrics(project_id, repo, recorded_at, previous, delta_window, velocity_window)
        )
        LOGGER.info(
            "Metrics recorded for project %s: %s stars, velocity %.2f",
            project_id,
            metrics.stars_count,
            metrics.stars_velocity,
        )
        return metrics

    async def latest(self, project_id: int) -> ProjectMetrics | None:
        return await self._store.latest(project_id)

    async def history(
        self,
        project_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ProjectMetrics]:
        return await self._store.history(project_id, start, end, limit)


__all__ = [
    "MetricsService",
    "MetricsStore",
    "stars_gained",
    "window_delta",
    "window_velocity",
    "build_metrics",
]
