from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from actor_dashboard.api.dependencies import get_service
from actor_dashboard.core.errors import UpstreamFailure
from actor_dashboard.main import app
from actor_dashboard.persistence.session_store import SessionStore
from actor_dashboard.services.dashboard import DashboardService
from actor_dashboard.services.gateway import RemoteActor, RemoteRun, RemoteUser

STARTED = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
FINISHED = datetime(2024, 5, 1, 12, 1, 5, tzinfo=timezone.utc)

SCRAPER_SCHEMA = {
    "title": "Scraper input",
    "type": "object",
    "properties": {
        "startUrls": {"type": "array", "title": "Start URLs"},
        "maxPages": {"type": "integer", "title": "Max pages", "minimum": 1, "maximum": 5},
        "proxy": {"type": "boolean", "title": "Use proxy"},
    },
    "required": ["startUrls"],
}


@dataclass
class FakeApify:
    """
    In-memory stand-in for the remote platform.
    Each run walks through its scripted statuses, one per get_run call.
    """

    users: Dict[str, str] = field(default_factory=lambda: {"good-key": "alice", "bob-key": "bob"})
    actors: List[RemoteActor] = field(
        default_factory=lambda: [
            RemoteActor(id="act1", name="scraper", title="Web Scraper", description="Scrapes", total_runs=3),
            RemoteActor(id="act2", name="crawler", title="Crawler", total_runs=0),
        ]
    )
    schemas: Dict[str, Dict[str, Any]] = field(default_factory=lambda: {"act1": SCRAPER_SCHEMA, "act2": {}})
    script: List[str] = field(default_factory=lambda: ["RUNNING", "SUCCEEDED"])
    results: List[Any] = field(default_factory=lambda: [{"url": "https://example.com", "title": "Example"}])
    fail_start: bool = False
    fail_list: bool = False
    # number of upcoming results fetches that fail
    fail_results: int = 0

    started: List[Dict[str, Any]] = field(default_factory=list)
    status_calls: int = 0
    results_calls: int = 0
    schema_calls: int = 0
    _run_ids: Any = field(default_factory=lambda: itertools.count(1))
    _progress: Dict[str, int] = field(default_factory=dict)

    def factory(self, api_key: str) -> "FakeGateway":
        return FakeGateway(self, api_key)


class FakeGateway:
    def __init__(self, remote: FakeApify, api_key: str) -> None:
        self.remote = remote
        self.api_key = api_key
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def validate(self) -> Optional[RemoteUser]:
        username = self.remote.users.get(self.api_key)
        if username is None:
            return None
        return RemoteUser(id=f"u-{username}", username=username)

    def list_actors(self) -> List[RemoteActor]:
        if self.remote.fail_list:
            raise UpstreamFailure("Failed to fetch actors from Apify")
        return list(self.remote.actors)

    def get_input_schema(self, actor_id: str) -> Dict[str, Any]:
        self.remote.schema_calls += 1
        if actor_id not in self.remote.schemas:
            raise UpstreamFailure("Failed to fetch actor input schema from Apify")
        return self.remote.schemas[actor_id]

    def start_run(self, actor_id: str, inputs: Dict[str, Any]) -> RemoteRun:
        if self.remote.fail_start:
            raise UpstreamFailure("Failed to execute actor")
        run_id = f"run{next(self.remote._run_ids)}"
        self.remote.started.append({"actorId": actor_id, "runId": run_id, "inputs": inputs})
        self.remote._progress[run_id] = 0
        return RemoteRun(id=run_id, actor_id=actor_id, status="READY", started_at=STARTED)

    def get_run(self, run_id: str) -> RemoteRun:
        self.remote.status_calls += 1
        step = self.remote._progress[run_id]
        status = self.remote.script[min(step, len(self.remote.script) - 1)]
        self.remote._progress[run_id] = step + 1
        done = status in ("SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT")
        return RemoteRun(
            id=run_id,
            actor_id=None,
            status=status,
            started_at=STARTED,
            finished_at=FINISHED if done else None,
            stats={"requestsFinished": step + 1},
        )

    def get_run_results(self, run_id: str) -> List[Any]:
        self.remote.results_calls += 1
        if self.remote.fail_results > 0:
            self.remote.fail_results -= 1
            raise UpstreamFailure("Failed to fetch run results from Apify")
        return self.remote.results


@pytest.fixture
def remote() -> FakeApify:
    return FakeApify()


@pytest.fixture
def service(remote: FakeApify) -> DashboardService:
    tokens = (f"session_{i}" for i in itertools.count(1))
    return DashboardService(
        remote.factory,
        sessions=SessionStore(token_factory=lambda: next(tokens)),
        clock=lambda: FINISHED,
    )


@pytest.fixture
def client(service: DashboardService):
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(client: TestClient, api_key: str = "good-key") -> Dict[str, str]:
    res = client.post("/api/auth/validate", json={"apiKey": api_key})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['sessionId']}"}


@pytest.fixture
def headers(client: TestClient) -> Dict[str, str]:
    return auth_headers(client)
