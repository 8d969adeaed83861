"""Domain models used by the tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


UTC = timezone.utc


@dataclass(slots=True)
class RateLimitInfo:
    """Snapshot of GitHub's core rate limit state."""

    limit: int
    remaining: int
    reset_at: datetime

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitInfo | None":
        """Read the ``X-RateLimit-*`` headers GitHub attaches to REST responses."""

        try:
            return cls(
                limit=int(headers["X-RateLimit-Limit"]),
                remaining=int(headers["X-RateLimit-Remaining"]),
                reset_at=datetime.fromtimestamp(int(headers["X-RateLimit-Reset"]), tz=UTC),
            )
        except (KeyError, TypeError, ValueError):
            return None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "RateLimitInfo":
        """Convert the ``/rate_limit`` response body."""

        rate = payload.get("rate") or payload.get("resources", {}).get("core") or {}
        return cls(
            limit=int(rate.get("limit", 0)),
            remaining=int(rate.get("remaining", 0)),
            reset_at=datetime.fromtimestamp(int(rate.get("reset", 0)), tz=UTC),
        )


@dataclass(slots=True)
class GitHubRepository:
    """Normalized representation of a repository returned by the REST API."""

    github_id: int
    full_name: str
    name: str
    description: str | None
    html_url: str
    homepage: str | None
    language: str | None
    topics: list[str]
    created_at: datetime
    updated_at: datetime
    pushed_at: datetime | None
    is_fork: bool
    is_archived: bool
    license: str | None
    stargazers_count: int
    forks_count: int
    watchers_count: int
    open_issues_count: int

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "GitHubRepository":
        """Convert a search item or ``/repos/{owner}/{repo}`` body into a :class:`GitHubRepository`."""

        now = datetime.now(tz=UTC)
        license_info = payload.get("license") or {}

        return cls(
            github_id=int(payload["id"]),
            full_name=payload.get("full_name", ""),
            name=payload.get("name", ""),
            description=payload.get("description"),
            html_url=payload.get("html_url", ""),
            homepage=payload.get("homepage") or None,
            language=payload.get("language"),
            topics=list(payload.get("topics") or []),
            created_at=parse_timestamp(payload.get("created_at")) or now,
            updated_at=parse_timestamp(payload.get("updated_at")) or now,
            pushed_at=parse_timestamp(payload.get("pushed_at")),
            is_fork=bool(payload.get("fork", False)),
            is_archived=bool(payload.get("archived", False)),
            license=license_info.get("spdx_id"),
            stargazers_count=int(payload.get("stargazers_count") or 0),
            forks_count=int(payload.get("forks_count") or 0),
            watchers_count=int(payload.get("watchers_count") or 0),
            open_issues_count=int(payload.get("open_issues_count") or 0),
        )


@dataclass(slots=True)
class Project:
    """A tracked repository as stored in the ``projects`` table."""

    id: int
    github_id: int
    full_name: str
    name: str
    description: str | None
    html_url: str
    homepage: str | None
    language: str | None
    topics: list[str]
    created_at: datetime
    updated_at: datetime
    pushed_at: datetime | None
    is_fork: bool
    is_archived: bool
    license: str | None
    first_tracked_at: datetime
    last_synced_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Project":
        return cls(
            id=row["id"],
            github_id=row["github_id"],
            full_name=row["full_name"],
            name=row["name"],
            description=row["description"],
            html_url=row["html_url"],
            homepage=row["homepage"],
            language=row["language"],
            topics=list(row["topics"] or []),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            pushed_at=row["pushed_at"],
            is_fork=row["is_fork"],
            is_archived=row["is_archived"],
            license=row["license"],
            first_tracked_at=row["first_tracked_at"],
            last_synced_at=row["last_synced_at"],
        )


@dataclass(slots=True)
class NewMetrics:
    """A metrics row that has been computed but not yet written."""

    project_id: int
    recorded_at: datetime
    stars_count: int
    forks_count: int
    watchers_count: int
    open_issues_count: int
    stars_gained_24h: int = 0
    stars_gained_7d: int = 0
    stars_velocity: float = 0.0


@dataclass(slots=True, frozen=True)
class ProjectMetrics:
    """An immutable point-in-time snapshot from ``project_metrics``."""

    id: int
    project_id: int
    recorded_at: datetime
    stars_count: int
    forks_count: int
    watchers_count: int
    open_issues_count: int
    stars_gained_24h: int
    stars_gained_7d: int
    stars_velocity: float

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str = "") -> "ProjectMetrics":
        return cls(
            id=row[f"{prefix}id"],
            project_id=row[f"{prefix}project_id"],
            recorded_at=row[f"{prefix}recorded_at"],
            stars_count=row[f"{prefix}stars_count"],
            forks_count=row[f"{prefix}forks_count"],
            watchers_count=row[f"{prefix}watchers_count"],
            open_issues_count=row[f"{prefix}open_issues_count"],
            stars_gained_24h=row[f"{prefix}stars_gained_24h"],
            stars_gained_7d=row[f"{prefix}stars_gained_7d"],
            stars_velocity=float(row[f"{prefix}stars_velocity"]),
        )


@dataclass(slots=True)
class ProjectWithMetrics:
    project: Project
    metrics: ProjectMetrics | None = None


@dataclass(slots=True)
class UpsertResult:
    """Outcome of an insert-or-update keyed on ``github_id``."""

    project: Project
    created: bool


@dataclass(slots=True, frozen=True)
class StarWindow:
    """Aggregate over the metrics rows recorded inside a trailing window."""

    samples: int = 0
    min_stars: int | None = None
    max_stars: int | None = None
    first_recorded_at: datetime | None = None
    last_recorded_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any] | None) -> "StarWindow":
        if row is None or not row["samples"]:
            return cls()
        return cls(
            samples=row["samples"],
            min_stars=row["min_stars"],
            max_stars=row["max_stars"],
            first_recorded_at=row["first_recorded_at"],
            last_recorded_at=row["last_recorded_at"],
        )


SORT_FIELDS = ("id", "created", "stars", "velocity")


@dataclass(slots=True)
class ProjectFilters:
    language: str | None = None
    topics: list[str] = field(default_factory=list)
    min_stars: int | None = None
    sort_by: str = "id"
    order: str = "desc"


@dataclass(slots=True, frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 50

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse GitHub's ISO-8601 timestamps into aware UTC datetimes."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


__all__ = [
    "UTC",
    "RateLimitInfo",
    "GitHubRepository",
    "Project",
    "NewMetrics",
    "ProjectMetrics",
    "ProjectWithMetrics",
    "UpsertResult",
    "StarWindow",
    "ProjectFilters",
    "PageRequest",
    "SORT_FIELDS",
    "parse_timestamp",
]
