"""Shared fixtures: temporary stores, settings, sample events, fake collectors."""
import asyncio
from pathlib import Path

import httpx
import orjson
import pytest
import pytest_asyncio

from tracker.config import Settings
from tracker.event_models import CoverageEvent, Payload
from tracker.store import ActionStore


def make_event(**overrides) -> CoverageEvent:
    """Build a webhook-style coverage event."""
    fields = {
        "event": "TrackTestCoverageEvent",
        "venture_config_id": "cfg-1",
        "venture_reference": "ref-1",
        "created_at": "2026-10-19T10:00:00Z",
        "culture": "en_GB",
        "action_type": "github",
        "action_reference": "refs/heads/main",
        "version": "1.2.3",
        "route": "/build",
        "payload": Payload(service_name="checkout", coverage=81.5),
    }
    fields.update(overrides)
    return CoverageEvent(**fields)


class FakeHarvester:
    """Harvester stand-in returning a fixed result."""

    def __init__(self, result: CoverageEvent | None):
        self.result = result
        self.calls = 0

    def harvest(self) -> CoverageEvent | None:
        self.calls += 1
        return self.result


class RecordingCollector:
    """Remote collector recording every POSTed body, in arrival order."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.bodies: list[dict] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(orjson.loads(request.content))
        return httpx.Response(self.status_code)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def sample_event() -> CoverageEvent:
    return make_event()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "stats.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    return Settings(
        DB_NAME=str(db_path),
        DEST_ENDPOINT="http://collector.test/action",
        HARVEST_ENABLED=False,
        LOG_JSON=False,
    )


@pytest_asyncio.fixture
async def store(db_path: Path):
    action_store = ActionStore(db_path)
    await action_store.initialize()
    yield action_store
    await action_store.close()


async def wait_for(predicate, timeout: float = 2.0):
    """Poll until predicate() is truthy or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
