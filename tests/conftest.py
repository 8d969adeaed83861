from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from trending_tracker.models import (
    GitHubRepository,
    NewMetrics,
    Project,
    ProjectFilters,
    ProjectMetrics,
    ProjectWithMetrics,
    StarWindow,
    UpsertResult,
)

UTC = timezone.utc
BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class InMemoryMetricsStore:
    def __init__(self) -> None:
        self.rows: list[ProjectMetrics] = []

    async def insert(self, metrics: NewMetrics) -> ProjectMetrics:
        row = ProjectMetrics(
            id=len(self.rows) + 1,
            project_id=metrics.project_id,
            recorded_at=metrics.recorded_at,
            stars_count=metrics.stars_count,
            forks_count=metrics.forks_count,
            watchers_count=metrics.watchers_count,
            open_issues_count=metrics.open_issues_count,
            stars_gained_24h=metrics.stars_gained_24h,
            stars_gained_7d=metrics.stars_gained_7d,
            stars_velocity=metrics.stars_velocity,
        )
        self.rows.append(row)
        return row

    def add(self, project_id: int, stars: int, recorded_at: datetime, **fields: int) -> ProjectMetrics:
        return asyncio.run(
            self.insert(
                NewMetrics(
                    project_id=project_id,
                    recorded_at=recorded_at,
                    stars_count=stars,
                    forks_count=fields.get("forks", 0),
                    watchers_count=fields.get("watchers", 0),
                    open_issues_count=fields.get("open_issues", 0),
                )
            )
        )

    def _for(self, project_id: int) -> list[ProjectMetrics]:
        return sorted(
            (row for row in self.rows if row.project_id == project_id),
            key=lambda row: (row.recorded_at, row.id),
        )

    async def latest(self, project_id: int) -> ProjectMetrics | None:
        rows = self._for(project_id)
        return rows[-1] if rows else None

    async def window(self, project_id: int, since: datetime) -> StarWindow:
        rows = [row for row in self._for(project_id) if row.recorded_at > since]
        if not rows:
            return StarWindow()
        return StarWindow(
            samples=len(rows),
            min_stars=min(row.stars_count for row in rows),
            max_stars=max(row.stars_count for row in rows),
            first_recorded_at=rows[0].recorded_at,
            last_recorded_at=rows[-1].recorded_at,
        )

    async def history(self, project_id, start=None, end=None, limit=None) -> list[ProjectMetrics]:
        rows = [
            row
            for row in self._for(project_id)
            if (start is None or row.recorded_at >= start) and (end is None or row.recorded_at <= end)
        ]
        return rows[:limit] if limit is not None else rows


class InMemoryProjectStore:
    def __init__(self, metrics: InMemoryMetricsStore) -> None:
        self._metrics = metrics
        self.rows: dict[int, Project] = {}

    async def upsert(self, repo: GitHubRepository, synced_at: datetime) -> UpsertResult:
        for project_id, existing in self.rows.items():
            if existing.github_id == repo.github_id:
                updated = replace(
                    existing,
                    description=repo.description,
                    topics=list(repo.topics),
                    language=repo.language,
                    is_archived=repo.is_archived,
                    updated_at=repo.updated_at,
                    last_synced_at=synced_at,
                )
                self.rows[project_id] = updated
                return UpsertResult(project=updated, created=False)

        project = Project(
            id=len(self.rows) + 1,
            github_id=repo.github_id,
            full_name=repo.full_name,
            name=repo.name,
            description=repo.description,
            html_url=repo.html_url,
            homepage=repo.homepage,
            language=repo.language,
            topics=list(repo.topics),
            created_at=repo.created_at,
            updated_at=repo.updated_at,
            pushed_at=repo.pushed_at,
            is_fork=repo.is_fork,
            is_archived=repo.is_archived,
            license=repo.license,
            first_tracked_at=synced_at,
            last_synced_at=synced_at,
        )
        self.rows[project.id] = project
        return UpsertResult(project=project, created=True)

    async def get(self, project_id: int) -> Project | None:
        return self.rows.get(project_id)

    async def _matching(self, filters: ProjectFilters) -> list[ProjectWithMetrics]:
        items = []
        for project in self.rows.values():
            metrics = await self._metrics.latest(project.id)
            if filters.language and project.language != filters.language:
                continue
            if filters.topics and not set(filters.topics) <= set(project.topics):
                continue
            if filters.min_stars is not None and (metrics.stars_count if metrics else 0) < filters.min_stars:
                continue
            items.append(ProjectWithMetrics(project=project, metrics=metrics))
        return items

    async def find_all(self, filters: ProjectFilters, limit: int, offset: int) -> list[ProjectWithMetrics]:
        keys = {
            "id": lambda item: item.project.id,
            "created": lambda item: item.project.created_at,
            "stars": lambda item: item.metrics.stars_count if item.metrics else 0,
            "velocity": lambda item: item.metrics.stars_velocity if item.metrics else 0.0,
        }
        key = keys[filters.sort_by]
        items = sorted(
            await self._matching(filters),
            key=lambda item: (key(item), item.project.id),
            reverse=filters.order == "desc",
        )
        return items[offset : offset + limit]

    async def count(self, filters: ProjectFilters | None = None) -> int:
        return len(await self._matching(filters or ProjectFilters()))

    async def list_full_names(self) -> list[str]:
        return [project.full_name for project in self.rows.values()]


def make_repo(github_id: int, full_name: str | None = None, stars: int = 0, **overrides) -> GitHubRepository:
    full_name = full_name or f"owner{github_id}/repo{github_id}"
    fields = dict(
        github_id=github_id,
        full_name=full_name,
        name=full_name.split("/", 1)[1],
        description=f"Description of {full_name}",
        html_url=f"https://github.com/{full_name}",
        homepage=None,
        language="Python",
        topics=[],
        created_at=BASE_TIME - timedelta(days=github_id),
        updated_at=BASE_TIME,
        pushed_at=BASE_TIME,
        is_fork=False,
        is_archived=False,
        license="MIT",
        stargazers_count=stars,
        forks_count=stars // 10,
        watchers_count=stars,
        open_issues_count=3,
    )
    fields.update(overrides)
    return GitHubRepository(**fields)


@pytest.fixture
def metrics_store() -> InMemoryMetricsStore:
    return InMemoryMetricsStore()


@pytest.fixture
def project_store(metrics_store: InMemoryMetricsStore) -> InMemoryProjectStore:
    return InMemoryProjectStore(metrics_store)


@pytest.fixture
def repo_factory() -> Callable[..., GitHubRepository]:
    return make_repo
