"""Response bodies served by the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import ProjectMetrics, ProjectWithMetrics, RateLimitInfo


class ApiModel(BaseModel):
    """Serializes snake_case attributes as camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ProjectListItem(ApiModel):
    id: int
    full_name: str
    name: str
    description: str | None = None
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    url: str
    stars: int = 0
    forks: int = 0
    stars_velocity: float | None = None
    stars_gained_7d: int | None = Field(default=None, alias="starsGained7d")
    last_updated: datetime

    @classmethod
    def from_domain(cls, item: ProjectWithMetrics) -> "ProjectListItem":
        project, metrics = item.project, item.metrics
        return cls(
            id=project.id,
            full_name=project.full_name,
            name=project.name,
            description=project.description,
            language=project.language,
            topics=project.topics,
            url=project.html_url,
            stars=metrics.stars_count if metrics else 0,
            forks=metrics.forks_count if metrics else 0,
            stars_velocity=metrics.stars_velocity if metrics else None,
            stars_gained_7d=metrics.stars_gained_7d if metrics else None,
            last_updated=project.last_synced_at or project.updated_at,
        )


class ProjectListResponse(ApiModel):
    data: list[ProjectListItem]
    pagination: Pagination


class CurrentMetrics(ApiModel):
    """Latest snapshot of a project; zero counters and null deltas when none exists."""

    stars: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    stars_velocity: float | None = None
    stars_gained_24h: int | None = Field(default=None, alias="starsGained24h")
    stars_gained_7d: int | None = Field(default=None, alias="starsGained7d")
    recorded_at: datetime | None = None

    @classmethod
    def from_domain(cls, metrics: ProjectMetrics | None) -> "CurrentMetrics":
        if metrics is None:
            return cls()
        return cls(
            stars=metrics.stars_count,
            forks=metrics.forks_count,
            watchers=metrics.watchers_count,
            open_issues=metrics.open_issues_count,
            stars_velocity=metrics.stars_velocity,
            stars_gained_24h=metrics.stars_gained_24h,
            stars_gained_7d=metrics.stars_gained_7d,
            recorded_at=metrics.recorded_at,
        )


class ProjectDetail(ApiModel):
    id: int
    full_name: str
    name: str
    description: str | None = None
    language: str | None = None
    homepage: str | None = None
    license: str | None = None
    topics: list[str] = Field(default_factory=list)
    is_archived: bool = False
    is_fork: bool = False
    created_at: datetime
    first_tracked_at: datetime
    last_synced_at: datetime
    url: str
    current_metrics: CurrentMetrics

    @classmethod
    def from_domain(cls, item: ProjectWithMetrics) -> "ProjectDetail":
        project = item.project
        return cls(
            id=project.id,
            full_name=project.full_name,
            name=project.name,
            description=project.description,
            language=project.language,
            homepage=project.homepage,
            license=project.license,
            topics=project.topics,
            is_archived=project.is_archived,
            is_fork=project.is_fork,
            created_at=project.created_at,
            first_tracked_at=project.first_tracked_at,
            last_synced_at=project.last_synced_at,
            url=project.html_url,
            current_metrics=CurrentMetrics.from_domain(item.metrics),
        )


class HistoryPoint(ApiModel):
    recorded_at: datetime
    stars: int
    forks: int
    watchers: int
    open_issues: int
    stars_gained: int
    stars_velocity: float

    @classmethod
    def from_domain(cls, metrics: ProjectMetrics) -> "HistoryPoint":
        return cls(
            recorded_at=metrics.recorded_at,
            stars=metrics.stars_count,
            forks=metrics.forks_count,
            watchers=metrics.watchers_count,
            open_issues=metrics.open_issues_count,
            stars_gained=metrics.stars_gained_24h,
            stars_velocity=metrics.stars_velocity,
        )


class HistoryResponse(ApiModel):
    project_id: int
    full_name: str
    history: list[HistoryPoint]


class ApiQuota(ApiModel):
    remaining: int
    limit: int
    reset_at: datetime

    @classmethod
    def from_domain(cls, info: RateLimitInfo) -> "ApiQuota":
        return cls(remaining=info.remaining, limit=info.limit, reset_at=info.reset_at)


class ServiceHealth(ApiModel):
    database: str
    github: str


class HealthResponse(ApiModel):
    status: str
    timestamp: datetime
    services: ServiceHealth
    rate_limit: ApiQuota | None = None


class StatsResponse(ApiModel):
    total_projects: int
    api_quota: ApiQuota
    health: ServiceHealth


class ErrorResponse(BaseModel):
    error: dict[str, Any]


__all__ = [
    "Pagination",
    "ProjectListItem",
    "ProjectListResponse",
    "CurrentMetrics",
    "ProjectDetail",
    "HistoryPoint",
    "HistoryResponse",
    "ApiQuota",
    "ServiceHealth",
    "HealthResponse",
    "StatsResponse",
    "ErrorResponse",
]
