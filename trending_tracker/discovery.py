"""High level orchestration for the discovery scans."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Protocol

from .config import DiscoverySettings
from .metrics import MetricsService
from .models import UTC, GitHubRepository
from .projects import ProjectService
from .rate_limiter import RateLimiter
from .search_queries import SearchQuery, popular_query, trending_query

LOGGER = logging.getLogger(__name__)


class RepositorySource(Protocol):
    async def search_repositories(self, query: SearchQuery, per_page: int = 100, page: int = 1) -> list[GitHubRepository]: ...

    async def get_repository(self, owner: str, name: str) -> GitHubRepository: ...


@dataclass(slots=True)
class ScanResult:
    kind: str
    found: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    finished_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class DiscoveryService:
    """Searches GitHub for candidates and persists a snapshot of each.

    Candidates are handled one at a time with a fixed pause between them. A
    failing candidate is logged and skipped; a failing search aborts the scan.
    """

    def __init__(
        self,
        source: RepositorySource,
        projects: ProjectService,
        metrics: MetricsService,
        settings: DiscoverySettings,
        pacer: RateLimiter | None = None,
    ) -> None:
        self._source = source
        self._projects = projects
        self._metrics = metrics
        self._settings = settings
        self._pacer = pacer or RateLimiter(min_interval=settings.item_delay)

    async def scan_trending(self) -> ScanResult:
        query = trending_query(
            self._settings.keywords, self._settings.trending_days, self._settings.trending_min_stars
        )
        return await self._scan("trending", query)

    async def scan_popular(self) -> ScanResult:
        query = popular_query(self._settings.keywords, self._settings.popular_min_stars)
        return await self._scan("popular", query)

    async def refresh_tracked(self) -> ScanResult:
        """Re-fetch every tracked project by owner/name and record a new snapshot."""

        result = ScanResult(kind="refresh")
        full_names = await self._projects.tracked_full_names()
        result.found = len(full_names)
        LOGGER.info("Refreshing %s tracked projects", result.found)
        for full_name in full_names:
            await self._pacer.acquire()
            try:
                owner, _, name = full_name.partition("/")
                repo = await self._source.get_repository(owner, name)
                await self._persist(repo, result)
            except Exception:
                result.failed += 1
                LOGGER.exception("Failed to refresh %s", full_name)
        return self._finish(result)

    async def _scan(self, kind: str, query: SearchQuery) -> ScanResult:
        LOGGER.info("Starting %s projects scan", kind)
        try:
            repos = await self._source.search_repositories(query, per_page=self._settings.per_page)
        except Exception:
            LOGGER.exception("%s scan failed", kind.capitalize())
            raise
        LOGGER.info("Found %s %s repositories", len(repos), kind)

        result = ScanResult(kind=kind, found=len(repos))
        await self._process(repos, result)
        return self._finish(result)

    async def _process(self, repos: Iterable[GitHubRepository], result: ScanResult) -> None:
        for repo in repos:
            await self._pacer.acquire()
            try:
                await self._persist(repo, result)
            except Exception:
                result.failed += 1
                LOGGER.exception("Failed to process %s", repo.full_name)

    async def _persist(self, repo: GitHubRepository, result: ScanResult) -> None:
        upserted = await self._projects.upsert_from_github(repo)
        await self._metrics.record(upserted.project.id, repo)
        if upserted.created:
            result.created += 1
            LOGGER.info("New project discovered: %s (%s stars)", repo.full_name, repo.stargazers_count)
        else:
            result.updated += 1

    def _finish(self, result: ScanResult) -> ScanResult:
        result.finished_at = datetime.now(tz=UTC)
        LOGGER.info(
            "%s scan completed: found=%s created=%s updated=%s failed=%s",
            result.kind.capitalize(),
            result.found,
            result.created,
            result.updated,
            result.failed,
        )
        return result


__all__ = ["DiscoveryService", "ScanResult", "RepositorySource"]
