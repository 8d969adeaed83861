"""Project upsert, listing and lookup."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from .errors import NotFoundError, ValidationError
from .metrics import MetricsStore
from .models import (
    UTC,
    GitHubRepository,
    PageRequest,
    Project,
    ProjectFilters,
    ProjectMetrics,
    ProjectWithMetrics,
    SORT_FIELDS,
    UpsertResult,
)

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ProjectStore(Protocol):
    async def upsert(self, repo: GitHubRepository, synced_at: datetime) -> UpsertResult: ...

    async def get(self, project_id: int) -> Project | None: ...

    async def find_all(self, filters: ProjectFilters, limit: int, offset: int) -> list[ProjectWithMetrics]: ...

    async def count(self, filters: ProjectFilters | None = None) -> int: ...

    async def list_full_names(self) -> list[str]: ...


class ProjectService:
    def __init__(self, projects: ProjectStore, metrics: MetricsStore) -> None:
        self._projects = projects
        self._metrics = metrics

    async def upsert_from_github(self, repo: GitHubRepository, synced_at: datetime | None = None) -> UpsertResult:
        """Insert a new project or refresh the mutable fields of a known one."""

        result = await self._projects.upsert(repo, synced_at or datetime.now(tz=UTC))
        LOGGER.debug(
            "Project %s %s (id %s)",
            repo.full_name,
            "created" if result.created else "updated",
            result.project.id,
        )
        return result

    async def get_project(self, project_id: int) -> ProjectWithMetrics:
        project = await self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found", {"projectId": project_id})
        return ProjectWithMetrics(project=project, metrics=await self._metrics.latest(project_id))

    async def list_projects(
        self, filters: ProjectFilters, page: PageRequest
    ) -> tuple[list[ProjectWithMetrics], int]:
        if page.page < 1:
            raise ValidationError("Page must be >= 1", {"page": page.page})
        if page.limit < 1:
            raise ValidationError("Limit must be >= 1", {"limit": page.limit})
        if page.limit > MAX_PAGE_SIZE:
            page = PageRequest(page=page.page, limit=MAX_PAGE_SIZE)
        if filters.sort_by not in SORT_FIELDS:
            raise ValidationError(
                "Unsupported sort field", {"sortBy": filters.sort_by, "allowed": list(SORT_FIELDS)}
            )
        if filters.order.lower() not in {"asc", "desc"}:
            raise ValidationError("Order must be 'asc' or 'desc'", {"order": filters.order})

        items = await self._projects.find_all(filters, page.limit, page.offset)
        total = await self._projects.count(filters)
        LOGGER.debug("Retrieved %s of %s projects", len(items), total)
        return items, total

    async def history(
        self,
        project_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> tuple[Project, list[ProjectMetrics]]:
        if start is not None and end is not None and start > end:
            raise ValidationError("'from' must not be after 'to'", {"from": start.isoformat(), "to": end.isoformat()})
        project = await self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found", {"projectId": project_id})
        return project, await self._metrics.history(project_id, start, end, limit)

    async def count(self) -> int:
        return await self._projects.count()

    async def tracked_full_names(self) -> list[str]:
        return await self._projects.list_full_names()


__all__ = ["ProjectService", "ProjectStore", "MAX_PAGE_SIZE"]
