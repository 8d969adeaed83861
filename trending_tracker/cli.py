"""Command line interface for the trending tracker."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

import typer
import uvicorn
from dotenv import load_dotenv

from .api import create_app
from .config import AppConfig
from .db import Database
from .discovery import DiscoveryService, ScanResult
from .github_client import GitHubRestClient
from .metrics import MetricsService
from .projects import ProjectService
from .repositories import MetricsRepository, ProjectRepository
from .scheduler import build_scheduler

app = typer.Typer(add_completion=False)


class ScanKind(str, Enum):
    trending = "trending"
    popular = "popular"
    refresh = "refresh"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _load_config(**overrides: object) -> AppConfig:
    load_dotenv()
    config = AppConfig.from_env(overrides={key: value for key, value in overrides.items() if value is not None})
    configure_logging(config.log_level)
    return config


def _build_discovery(config: AppConfig, client: GitHubRestClient, database: Database) -> DiscoveryService:
    metrics_repository = MetricsRepository(database)
    return DiscoveryService(
        client,
        ProjectService(ProjectRepository(database), metrics_repository),
        MetricsService(metrics_repository, config.discovery.velocity_window_days),
        config.discovery,
    )


@app.command("init-db")
def init_db(
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN to use"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Create database schema."""

    config = _load_config(database_dsn=dsn, log_level=log_level)

    async def runner() -> None:
        async with Database(config.database) as database:
            await database.create_schema()

    asyncio.run(runner())


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind"),
    port: Optional[int] = typer.Option(None, help="Port to listen on"),
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN"),
    with_scheduler: Optional[bool] = typer.Option(
        None, "--with-scheduler/--without-scheduler", help="Run the scan scheduler inside the server"
    ),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Serve the HTTP API."""

    config = _load_config(
        host=host, port=port, database_dsn=dsn, scheduler_enabled=with_scheduler, log_level=log_level
    )
    logging.getLogger(__name__).info(
        "API available at http://%s:%s%s", config.server.host, config.server.port, config.server.api_prefix
    )
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port, log_level=config.log_level.lower())


@app.command("scan")
def scan(
    kind: ScanKind = typer.Argument(ScanKind.trending, help="Which scan to run"),
    per_page: Optional[int] = typer.Option(None, help="Search results to process (max 100)"),
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Run one discovery scan now and persist the results."""

    config = _load_config(
        discovery_per_page=per_page, database_dsn=dsn, github_token=github_token, log_level=log_level
    )

    async def runner() -> ScanResult:
        async with GitHubRestClient(config.github) as client:
            async with Database(config.database) as database:
                discovery = _build_discovery(config, client, database)
                if kind is ScanKind.popular:
                    return await discovery.scan_popular()
                if kind is ScanKind.refresh:
                    return await discovery.refresh_tracked()
                return await discovery.scan_trending()

    result = asyncio.run(runner())
    typer.echo(
        f"{result.kind}: found {result.found}, created {result.created}, "
        f"updated {result.updated}, failed {result.failed}"
    )


@app.command("schedule")
def schedule(
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Run the scan scheduler in the foreground without the HTTP API."""

    config = _load_config(database_dsn=dsn, github_token=github_token, log_level=log_level)

    async def runner() -> None:
        async with GitHubRestClient(config.github) as client:
            async with Database(config.database) as database:
                scheduler = build_scheduler(config.scheduler, _build_discovery(config, client, database))
                if not scheduler.jobs:
                    raise typer.BadParameter("No schedules configured")
                scheduler.start()
                try:
                    await scheduler.wait()
                finally:
                    await scheduler.stop()

    asyncio.run(runner())


__all__ = ["app"]
