"""SQL access for the ``projects`` and ``project_metrics`` tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .db import Database
from .models import (
    GitHubRepository,
    NewMetrics,
    Project,
    ProjectFilters,
    ProjectMetrics,
    ProjectWithMetrics,
    StarWindow,
    UpsertResult,
)

PROJECT_COLUMNS = """
    p.id, p.github_id, p.full_name, p.name, p.description, p.html_url, p.homepage,
    p.language, p.topics, p.created_at, p.updated_at, p.pushed_at, p.is_fork,
    p.is_archived, p.license, p.first_tracked_at, p.last_synced_at
"""

METRICS_COLUMNS = """
    id, project_id, recorded_at, stars_count, forks_count, watchers_count,
    open_issues_count, stars_gained_24h, stars_gained_7d, stars_velocity
"""

LATEST_METRICS_JOIN = """
    LEFT JOIN LATERAL (
        SELECT * FROM project_metrics pm
        WHERE pm.project_id = p.id
        ORDER BY pm.recorded_at DESC, pm.id DESC
        LIMIT 1
    ) m ON TRUE
"""

JOINED_METRICS_COLUMNS = """
    m.id AS m_id, m.project_id AS m_project_id, m.recorded_at AS m_recorded_at,
    m.stars_count AS m_stars_count, m.forks_count AS m_forks_count,
    m.watchers_count AS m_watchers_count, m.open_issues_count AS m_open_issues_count,
    m.stars_gained_24h AS m_stars_gained_24h, m.stars_gained_7d AS m_stars_gained_7d,
    m.stars_velocity AS m_stars_velocity
"""

SORT_EXPRESSIONS = {
    "id": "p.id",
    "created": "p.created_at",
    "stars": "COALESCE(m.stars_count, 0)",
    "velocity": "COALESCE(m.stars_velocity, 0)",
}


class ProjectRepository:
    """Queries against ``projects``; no business rules live here."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def upsert(self, repo: GitHubRepository, synced_at: datetime) -> UpsertResult:
        # xmax is zero only for a row version created by an INSERT.
        query = f"""
            INSERT INTO projects AS p (
                github_id, full_name, name, description, html_url, homepage,
                language, topics, created_at, updated_at, pushed_at, is_fork,
                is_archived, license, first_tracked_at, last_synced_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $15
            )
            ON CONFLICT (github_id) DO UPDATE SET
                description = EXCLUDED.description,
                topics = EXCLUDED.topics,
                language = EXCLUDED.language,
                is_archived = EXCLUDED.is_archived,
                updated_at = EXCLUDED.updated_at,
                last_synced_at = EXCLUDED.last_synced_at
            RETURNING {PROJECT_COLUMNS}, (p.xmax = 0) AS inserted
        """
        row = await self._database.fetchrow(
            query,
            repo.github_id,
            repo.full_name,
            repo.name,
            repo.description,
            repo.html_url,
            repo.homepage,
            repo.language,
            repo.topics,
            repo.created_at,
            repo.updated_at,
            repo.pushed_at,
            repo.is_fork,
            repo.is_archived,
            repo.license,
            synced_at,
        )
        return UpsertResult(project=Project.from_row(row), created=bool(row["inserted"]))

    async def get(self, project_id: int) -> Project | None:
        row = await self._database.fetchrow(f"SELECT {PROJECT_COLUMNS} FROM projects p WHERE p.id = $1", project_id)
        return Project.from_row(row) if row else None

    async def find_all(self, filters: ProjectFilters, limit: int, offset: int) -> list[ProjectWithMetrics]:
        where, params = _filter_clause(filters)
        sort = SORT_EXPRESSIONS.get(filters.sort_by, SORT_EXPRESSIONS["id"])
        direction = "ASC" if filters.order.lower() == "asc" else "DESC"
        params.extend([limit, offset])
        query = f"""
            SELECT {PROJECT_COLUMNS}, {JOINED_METRICS_COLUMNS}
            FROM projects p
            {LATEST_METRICS_JOIN}
            {where}
            ORDER BY {sort} {direction}, p.id {direction}
            LIMIT ${len(params) - 1} OFFSET ${len(params)}
        """
        rows = await self._database.fetch(query, *params)
        return [
            ProjectWithMetrics(
                project=Project.from_row(row),
                metrics=ProjectMetrics.from_row(row, prefix="m_") if row["m_id"] is not None else None,
            )
            for row in rows
        ]

    async def count(self, filters: ProjectFilters | None = None) -> int:
        where, params = _filter_clause(filters or ProjectFilters())
        query = f"""
            SELECT COUNT(*) FROM projects p
            {LATEST_METRICS_JOIN}
            {where}
        """
        return int(await self._database.fetchval(query, *params))

    async def list_full_names(self) -> list[str]:
        rows = await self._database.fetch("SELECT full_name FROM projects ORDER BY id")
        return [row["full_name"] for row in rows]


class MetricsRepository:
    """Append-only access to ``project_metrics``."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def insert(self, metrics: NewMetrics) -> ProjectMetrics:
        query = f"""
            INSERT INTO project_metrics (
                project_id, recorded_at, stars_count, forks_count, watchers_count,
                open_issues_count, stars_gained_24h, stars_gained_7d, stars_velocity
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING {METRICS_COLUMNS}
        """
        row = await self._database.fetchrow(
            query,
            metrics.project_id,
            metrics.recorded_at,
            metrics.stars_count,
            metrics.forks_count,
            metrics.watchers_count,
            metrics.open_issues_count,
            metrics.stars_gained_24h,
            metrics.stars_gained_7d,
            metrics.stars_velocity,
        )
        return ProjectMetrics.from_row(row)

    async def latest(self, project_id: int) -> ProjectMetrics | None:
        query = f"""
            SELECT {METRICS_COLUMNS} FROM project_metrics
            WHERE project_id = $1
            ORDER BY recorded_at DESC, id DESC
            LIMIT 1
        """
        row = await self._database.fetchrow(query, project_id)
        return ProjectMetrics.from_row(row) if row else None

    async def window(self, project_id: int, since: datetime) -> StarWindow:
        query = """
            SELECT
                COUNT(*) AS samples,
                MIN(stars_count) AS min_stars,
                MAX(stars_count) AS max_stars,
                MIN(recorded_at) AS first_recorded_at,
                MAX(recorded_at) AS last_recorded_at
            FROM project_metrics
            WHERE project_id = $1 AND recorded_at > $2
        """
        return StarWindow.from_row(await self._database.fetchrow(query, project_id, since))

    async def history(
        self,
        project_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ProjectMetrics]:
        clauses = ["project_id = $1"]
        params: list[Any] = [project_id]
        if start is not None:
            params.append(start)
            clauses.append(f"recorded_at >= ${len(params)}")
        if end is not None:
            params.append(end)
            clauses.append(f"recorded_at <= ${len(params)}")
        query = f"SELECT {METRICS_COLUMNS} FROM project_metrics WHERE {' AND '.join(clauses)} ORDER BY recorded_at ASC, id ASC"
        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        rows = await self._database.fetch(query, *params)
        return [ProjectMetrics.from_row(row) for row in rows]


def _filter_clause(filters: ProjectFilters) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if filters.language:
        params.append(filters.language)
        clauses.append(f"p.language = ${len(params)}")
    if filters.topics:
        params.append(list(filters.topics))
        clauses.append(f"p.topics @> ${len(params)}::text[]")
    if filters.min_stars is not None:
        params.append(filters.min_stars)
        clauses.append(f"COALESCE(m.stars_count, 0) >= ${len(params)}")
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


__all__ = ["ProjectRepository", "MetricsRepository", "SORT_EXPRESSIONS"]
