"""Tests for the HTTP surface over in-memory stores."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from trending_tracker.api import AppServices, create_app
from trending_tracker.config import AppConfig, ServerSettings
from trending_tracker.errors import GitHubApiError
from trending_tracker.models import RateLimitInfo
from trending_tracker.projects import ProjectService

from conftest import BASE_TIME, make_repo


class FakeProbe:
    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy

    async def ping(self) -> bool:
        return self.healthy


class FakeGitHub:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    async def get_rate_limit(self) -> RateLimitInfo:
        if self.fail:
            raise GitHubApiError("GitHub API request failed")
        return RateLimitInfo(limit=5000, remaining=4321, reset_at=BASE_TIME)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def client(project_store, metrics_store, github) -> TestClient:
    services = AppServices(
        projects=ProjectService(project_store, metrics_store),
        database=FakeProbe(),
        github=github,
    )
    return TestClient(create_app(AppConfig(), services=services))


def seed(project_store, *repos):
    return [asyncio.run(project_store.upsert(repo, BASE_TIME)).project for repo in repos]


def test_list_projects_default_pagination(client, project_store):
    seed(project_store, make_repo(1), make_repo(2), make_repo(3))

    response = client.get("/api/v1/projects")

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["data"]] == [3, 2, 1]
    assert body["pagination"] == {"page": 1, "limit": 50, "total": 3, "totalPages": 1}


def test_pages_are_disjoint(client, project_store):
    seed(project_store, *(make_repo(github_id) for github_id in range(1, 5)))

    first = client.get("/api/v1/projects", params={"page": 1, "limit": 2}).json()
    second = client.get("/api/v1/projects", params={"page": 2, "limit": 2}).json()

    first_ids = {item["id"] for item in first["data"]}
    second_ids = {item["id"] for item in second["data"]}
    assert len(first_ids) == 2
    assert len(second_ids) == 2
    assert first_ids.isdisjoint(second_ids)
    assert first["pagination"]["totalPages"] == 2


def test_limit_is_clamped_to_100(client):
    response = client.get("/api/v1/projects", params={"limit": 1000})

    assert response.status_code == 200
    assert response.json()["pagination"]["limit"] == 100


def test_filter_by_topic(client, project_store):
    seed(
        project_store,
        make_repo(1, topics=["machine-learning"]),
        make_repo(2, "langchain-ai/langchain", topics=["llm", "agents"]),
        make_repo(3, topics=[]),
    )

    body = client.get("/api/v1/projects", params={"topics": "llm"}).json()

    assert [item["fullName"] for item in body["data"]] == ["langchain-ai/langchain"]
    assert body["pagination"]["total"] == 1


def test_filter_by_language_and_min_stars(client, project_store, metrics_store):
    tensorflow, pytorch, ui = seed(
        project_store,
        make_repo(1, "tensorflow/tensorflow"),
        make_repo(2, "pytorch/pytorch"),
        make_repo(3, "vercel/ai", language="TypeScript"),
    )
    metrics_store.add(tensorflow.id, 180_000, BASE_TIME)
    metrics_store.add(pytorch.id, 40_000, BASE_TIME)
    metrics_store.add(ui.id, 90_000, BASE_TIME)

    body = client.get("/api/v1/projects", params={"language": "Python", "minStars": 50_000}).json()

    assert [item["fullName"] for item in body["data"]] == ["tensorflow/tensorflow"]
    assert body["data"][0]["stars"] == 180_000


def test_sort_by_stars_ascending(client, project_store, metrics_store):
    projects = seed(project_store, make_repo(1), make_repo(2), make_repo(3))
    for project, stars in zip(projects, (300, 100, 200)):
        metrics_store.add(project.id, stars, BASE_TIME)

    body = client.get("/api/v1/projects", params={"sortBy": "stars", "order": "ASC"}).json()

    assert [item["stars"] for item in body["data"]] == [100, 200, 300]


@pytest.mark.parametrize(
    "path",
    [
        "/api/v1/projects?page=0",
        "/api/v1/projects?limit=0",
        "/api/v1/projects?sortBy=name",
        "/api/v1/projects/abc",
        "/api/v1/projects/abc/history",
    ],
)
def test_invalid_input_returns_400(client, path):
    response = client.get(path)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_unknown_project_returns_404(client):
    response = client.get("/api/v1/projects/999999")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
    assert response.json()["error"]["details"] == {"projectId": 999999}


def test_detail_without_metrics_has_zeroed_block(client, project_store):
    (project,) = seed(project_store, make_repo(1, "acme/agent"))

    body = client.get(f"/api/v1/projects/{project.id}").json()

    assert body["fullName"] == "acme/agent"
    assert body["currentMetrics"] == {
        "stars": 0,
        "forks": 0,
        "watchers": 0,
        "openIssues": 0,
        "starsVelocity": None,
        "starsGained24h": None,
        "starsGained7d": None,
        "recordedAt": None,
    }


def test_detail_embeds_latest_metrics(client, project_store, metrics_store):
    (project,) = seed(project_store, make_repo(1))
    metrics_store.add(project.id, 10, BASE_TIME - timedelta(days=1))
    metrics_store.add(project.id, 25, BASE_TIME, forks=4, watchers=25, open_issues=2)

    body = client.get(f"/api/v1/projects/{project.id}").json()

    assert body["currentMetrics"]["stars"] == 25
    assert body["currentMetrics"]["forks"] == 4
    assert body["currentMetrics"]["openIssues"] == 2


def test_history_bounds_are_inclusive_and_ascending(client, project_store, metrics_store):
    (project,) = seed(project_store, make_repo(1))
    for day in (5, 3, 4, 1, 2):
        metrics_store.add(project.id, 100 * day, BASE_TIME + timedelta(days=day))

    response = client.get(
        f"/api/v1/projects/{project.id}/history",
        params={
            "from": (BASE_TIME + timedelta(days=2)).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "to": (BASE_TIME + timedelta(days=4)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["projectId"] == project.id
    assert [point["stars"] for point in body["history"]] == [200, 300, 400]


def test_history_is_empty_without_metrics(client, project_store):
    (project,) = seed(project_store, make_repo(1))

    body = client.get(f"/api/v1/projects/{project.id}/history").json()

    assert body["history"] == []


def test_history_of_unknown_project_returns_404(client):
    response = client.get("/api/v1/projects/42/history")

    assert response.status_code == 404


def test_admin_health_and_stats(client, project_store):
    seed(project_store, make_repo(1), make_repo(2))

    health = client.get("/api/v1/admin/health").json()
    stats = client.get("/api/v1/admin/stats").json()

    assert health["status"] == "healthy"
    assert health["rateLimit"]["remaining"] == 4321
    assert stats["totalProjects"] == 2
    assert stats["apiQuota"] == {"remaining": 4321, "limit": 5000, "resetAt": "2024-06-01T12:00:00Z"}


def test_admin_health_reports_github_outage(client, github):
    github.fail = True

    body = client.get("/api/v1/admin/health").json()

    assert body["status"] == "unhealthy"
    assert body["services"] == {"database": "healthy", "github": "unhealthy"}
    assert body["rateLimit"] is None


def test_admin_stats_surfaces_upstream_failure(client, github):
    github.fail = True

    response = client.get("/api/v1/admin/stats")

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "GITHUB_API_ERROR"


def test_unknown_route_uses_error_body(client):
    response = client.get("/api/v1/nope")

    assert response.status_code == 404
    assert response.json() == {"error": {"code": "NOT_FOUND", "message": "Endpoint not found"}}


def test_api_requests_are_rate_limited_per_client(project_store, metrics_store, github):
    services = AppServices(
        projects=ProjectService(project_store, metrics_store),
        database=FakeProbe(),
        github=github,
    )
    limited = TestClient(create_app(AppConfig(server=ServerSettings(api_rate_limit=2)), services=services))

    statuses = [limited.get("/api/v1/projects").status_code for _ in range(3)]
    rejected = limited.get("/api/v1/admin/health")

    assert statuses == [200, 200, 429]
    assert rejected.status_code == 429
    assert rejected.json() == {
        "error": {"code": "RATE_LIMIT_EXCEEDED", "message": "Too many requests, please try again later"}
    }
    assert "retry-after" in rejected.headers
    assert limited.get("/health").status_code == 200


def test_large_responses_are_compressed(client, project_store):
    seed(project_store, *(make_repo(github_id) for github_id in range(1, 21)))

    response = client.get("/api/v1/projects", headers={"Accept-Encoding": "gzip"})

    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert len(response.json()["data"]) == 20


def test_requests_are_logged(client, caplog):
    with caplog.at_level("INFO", logger="trending_tracker.middleware"):
        client.get("/api/v1/projects")

    assert "GET /api/v1/projects 200" in caplog.text
