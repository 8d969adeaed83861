"""HTTP client for interacting with GitHub's REST API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from .config import GitHubSettings
from .errors import GitHubApiError, RateLimitError
from .models import GitHubRepository, RateLimitInfo
from .rate_limiter import RateLimiter
from .search_queries import SearchQuery

LOGGER = logging.getLogger(__name__)


class GitHubRestClient:
    """Light-weight REST client that maps HTTP failures to typed errors.

    Requests are not retried; a failed call surfaces as :class:`GitHubApiError`
    or :class:`RateLimitError` and the caller decides what to do.
    """

    def __init__(
        self,
        settings: GitHubSettings,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.api_url.rstrip("/")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "trending-tracker-bot",
        }
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        self._client = client or httpx.AsyncClient(
            headers=headers,
            timeout=settings.request_timeout,
        )
        self._owns_client = client is None
        self._rate_limiter = rate_limiter or RateLimiter(min_interval=settings.min_request_interval)
        self._latest_rate_limit: RateLimitInfo | None = None

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def latest_rate_limit(self) -> RateLimitInfo | None:
        return self._latest_rate_limit

    async def search_repositories(self, query: SearchQuery, per_page: int = 100, page: int = 1) -> list[GitHubRepository]:
        """Run a repository search and return the items of one result page."""

        LOGGER.info("Searching GitHub repositories: %s (page %s, per_page %s)", query.q, page, per_page)
        payload = await self._get("/search/repositories", params=query.to_params(per_page, page))
        items = payload.get("items") or []
        LOGGER.info(
            "GitHub search completed: %s total, %s returned", payload.get("total_count", 0), len(items)
        )
        return [GitHubRepository.from_api(item) for item in items if isinstance(item, dict)]

    async def get_repository(self, owner: str, name: str) -> GitHubRepository:
        LOGGER.debug("Fetching repository %s/%s", owner, name)
        payload = await self._get(f"/repos/{owner}/{name}")
        return GitHubRepository.from_api(payload)

    async def get_rate_limit(self) -> RateLimitInfo:
        payload = await self._get("/rate_limit")
        info = RateLimitInfo.from_api(payload)
        if info.remaining < self._settings.low_quota_threshold:
            LOGGER.warning("GitHub API rate limit is low: %s of %s remaining", info.remaining, info.limit)
        return info

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        await self._rate_limiter.acquire()
        try:
            response = await self._client.get(f"{self._base_url}{path}", params=params)
        except httpx.RequestError as exc:
            await self._rate_limiter.reset()
            LOGGER.warning("GitHub request error for %s: %s", path, exc)
            raise GitHubApiError("GitHub API request failed", {"path": path, "error": str(exc)}) from exc

        if info := RateLimitInfo.from_headers(response.headers):
            self._latest_rate_limit = info
            await self._rate_limiter.record(info)

        if response.is_success:
            try:
                return response.json()
            except ValueError as exc:
                raise GitHubApiError("GitHub returned a malformed response", {"path": path}) from exc

        raise _error_for(response, path)


def _error_for(response: httpx.Response, path: str) -> GitHubApiError:
    try:
        body = response.json()
    except ValueError:
        body = None
    message = str(body.get("message") or "") if isinstance(body, dict) else ""
    details: dict[str, Any] = {"status": response.status_code, "path": path}

    if response.status_code in {403, 429}:
        exhausted = response.headers.get("X-RateLimit-Remaining") == "0"
        if exhausted or response.status_code == 429 or "rate limit" in message.lower():
            if (retry_after := _retry_after_seconds(response)) is not None:
                details["retry_after"] = retry_after
            LOGGER.warning("GitHub rate limit exceeded: %s", message or response.status_code)
            return RateLimitError("GitHub API rate limit exceeded", details)

    if response.status_code == 404:
        return GitHubApiError("GitHub resource not found", details)

    LOGGER.error("GitHub request to %s failed with HTTP %s: %s", path, response.status_code, message)
    return GitHubApiError(message or "GitHub API request failed", details)


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            return max(int(reset) - datetime.now(timezone.utc).timestamp(), 0.0)
        return None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    delta = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return max(delta, 0.0)


__all__ = ["GitHubRestClient"]
