"""GitHub search queries used by the discovery scans."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import UTC


@dataclass(slots=True, frozen=True)
class SearchQuery:
    q: str
    sort: str = "stars"
    order: str = "desc"

    def to_params(self, per_page: int, page: int = 1) -> dict[str, str | int]:
        return {"q": self.q, "sort": self.sort, "order": self.order, "per_page": per_page, "page": page}


def trending_query(keywords: str, days: int, min_stars: int, now: datetime | None = None) -> SearchQuery:
    """Repositories created in the last ``days`` days with at least ``min_stars`` stars."""

    now = now or datetime.now(tz=UTC)
    since = (now.astimezone(UTC) - timedelta(days=days)).strftime("%Y-%m-%d")
    return SearchQuery(q=f"{keywords} created:>{since} stars:>={min_stars} archived:false")


def popular_query(keywords: str, min_stars: int) -> SearchQuery:
    return SearchQuery(q=f"{keywords} stars:>{min_stars} archived:false")


__all__ = ["SearchQuery", "trending_query", "popular_query"]
