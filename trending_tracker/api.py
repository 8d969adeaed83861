"""FastAPI application exposing the tracked projects."""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Protocol

from fastapi import APIRouter, FastAPI, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AppConfig
from .db import Database
from .discovery import DiscoveryService
from .errors import AppError, GitHubApiError
from .github_client import GitHubRestClient
from .metrics import MetricsService
from .middleware import install_middleware
from .models import UTC, PageRequest, ProjectFilters, RateLimitInfo
from .projects import MAX_PAGE_SIZE, ProjectService
from .repositories import MetricsRepository, ProjectRepository
from .scheduler import Scheduler, build_scheduler
from .schemas import (
    ApiQuota,
    ErrorResponse,
    HealthResponse,
    HistoryPoint,
    HistoryResponse,
    Pagination,
    ProjectDetail,
    ProjectListItem,
    ProjectListResponse,
    ServiceHealth,
    StatsResponse,
)

LOGGER = logging.getLogger(__name__)

VERSION = "0.1.0"


class HealthProbe(Protocol):
    async def ping(self) -> bool: ...


class RateLimitSource(Protocol):
    async def get_rate_limit(self) -> RateLimitInfo: ...


@dataclass(slots=True)
class AppServices:
    projects: ProjectService
    database: HealthProbe
    github: RateLimitSource


def _services(request: Request) -> AppServices:
    return request.app.state.services


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _split_topics(values: list[str] | None) -> list[str]:
    topics: list[str] = []
    for value in values or []:
        topics.extend(item.strip() for item in value.split(",") if item.strip())
    return topics


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}

projects_router = APIRouter(prefix="/projects", tags=["Projects"], responses=ERROR_RESPONSES)
admin_router = APIRouter(prefix="/admin", tags=["Admin"], responses=ERROR_RESPONSES)


@projects_router.get("", response_model=ProjectListResponse)
async def list_projects(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    language: str | None = Query(None),
    topics: list[str] | None = Query(None),
    min_stars: int | None = Query(None, alias="minStars", ge=0),
    sort_by: str = Query("id", alias="sortBy"),
    order: str = Query("desc"),
) -> ProjectListResponse:
    limit = min(limit, MAX_PAGE_SIZE)
    filters = ProjectFilters(
        language=language or None,
        topics=_split_topics(topics),
        min_stars=min_stars,
        sort_by=sort_by,
        order=order.lower(),
    )
    items, total = await _services(request).projects.list_projects(filters, PageRequest(page=page, limit=limit))
    return ProjectListResponse(
        data=[ProjectListItem.from_domain(item) for item in items],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


@projects_router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(request: Request, project_id: int = Path(..., ge=1)) -> ProjectDetail:
    item = await _services(request).projects.get_project(project_id)
    return ProjectDetail.from_domain(item)


@projects_router.get("/{project_id}/history", response_model=HistoryResponse)
async def get_project_history(
    request: Request,
    project_id: int = Path(..., ge=1),
    start: datetime | None = Query(None, alias="from"),
    end: datetime | None = Query(None, alias="to"),
    limit: int | None = Query(None, ge=1),
) -> HistoryResponse:
    project, history = await _services(request).projects.history(project_id, _as_utc(start), _as_utc(end), limit)
    return HistoryResponse(
        project_id=project.id,
        full_name=project.full_name,
        history=[HistoryPoint.from_domain(metrics) for metrics in history],
    )


@admin_router.get("/health", response_model=HealthResponse)
async def admin_health(request: Request) -> HealthResponse:
    services = _services(request)
    database_ok = await services.database.ping()
    rate_limit: RateLimitInfo | None = None
    try:
        rate_limit = await services.github.get_rate_limit()
    except GitHubApiError as exc:
        LOGGER.warning("GitHub health probe failed: %s", exc)

    github_ok = rate_limit is not None
    return HealthResponse(
        status="healthy" if database_ok and github_ok else "unhealthy",
        timestamp=datetime.now(tz=UTC),
        services=ServiceHealth(
            database="healthy" if database_ok else "unhealthy",
            github="healthy" if github_ok else "unhealthy",
        ),
        rate_limit=ApiQuota.from_domain(rate_limit) if rate_limit else None,
    )


@admin_router.get("/stats", response_model=StatsResponse)
async def admin_stats(request: Request) -> StatsResponse:
    services = _services(request)
    total = await services.projects.count()
    rate_limit = await services.github.get_rate_limit()
    database_ok = await services.database.ping()
    return StatsResponse(
        total_projects=total,
        api_quota=ApiQuota.from_domain(rate_limit),
        health=ServiceHealth(database="healthy" if database_ok else "unhealthy", github="healthy"),
    )


def _error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log = LOGGER.error if exc.status_code >= 500 else LOGGER.info
        log("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
            for error in exc.errors()
        ]
        return _error_response(400, "VALIDATION_ERROR", "Invalid request parameters", {"errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error_response(404, "NOT_FOUND", "Endpoint not found")
        return _error_response(exc.status_code, "HTTP_ERROR", str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def create_app(config: AppConfig | None = None, services: AppServices | None = None) -> FastAPI:
    """Build the API.

    Without ``services`` the lifespan opens the database pool and GitHub
    client, and starts the scheduler when it is enabled.
    """

    config = config or AppConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            app.state.services = services
            yield
            return

        scheduler: Scheduler | None = None
        async with Database(config.database) as database, GitHubRestClient(config.github) as github:
            project_repository = ProjectRepository(database)
            metrics_repository = MetricsRepository(database)
            projects = ProjectService(project_repository, metrics_repository)
            app.state.services = AppServices(projects=projects, database=database, github=github)
            if config.scheduler.enabled:
                discovery = DiscoveryService(
                    github,
                    projects,
                    MetricsService(metrics_repository, config.discovery.velocity_window_days),
                    config.discovery,
                )
                scheduler = build_scheduler(config.scheduler, discovery)
                scheduler.start()
            try:
                yield
            finally:
                if scheduler is not None:
                    await scheduler.stop()

    app = FastAPI(
        title="Trending Tracker API",
        description="Star and fork history of trending GitHub repositories.",
        version=VERSION,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_middleware(app, config.server)
    _install_error_handlers(app)
    app.include_router(projects_router, prefix=config.server.api_prefix)
    app.include_router(admin_router, prefix=config.server.api_prefix)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(tz=UTC).isoformat(), "version": VERSION}

    @app.get("/", tags=["System"])
    async def index() -> dict[str, Any]:
        prefix = config.server.api_prefix
        return {
            "name": "Trending Tracker API",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "api": prefix,
                "projects": f"{prefix}/projects",
                "admin": f"{prefix}/admin",
            },
        }

    return app


__all__ = ["AppServices", "create_app"]
