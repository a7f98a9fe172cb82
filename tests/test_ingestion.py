"""Tests for the ingestion coordinator."""
import asyncio

import orjson
import pytest

from tracker.errors import DeserializationError, PersistenceError
from tracker.metrics import Metrics
from tracker.services.forwarder import EventForwarder
from tracker.services.ingestion import IngestionCoordinator
from conftest import FakeHarvester, RecordingCollector, make_event

ENDPOINT = "http://collector.test/action"


class TestDecode:
    """Test inbound body decoding"""

    def test_valid_body(self, sample_event):
        assert IngestionCoordinator.decode(sample_event.to_json()) == sample_event

    def test_minimal_body(self):
        body = orjson.dumps({"event": "Push", "payload": {"service_name": "svc", "coverage": 12}})
        event = IngestionCoordinator.decode(body)
        assert event.event == "Push"
        assert event.venture_config_id == ""
        assert event.payload.coverage == 12.0

    def test_unknown_fields_ignored(self, sample_event):
        data = orjson.loads(sample_event.to_json())
        data["extra"] = "ignored"
        assert IngestionCoordinator.decode(orjson.dumps(data)) == sample_event

    @pytest.mark.parametrize(
        "body",
        [
            b"{not json",
            b"[]",
            b'"just a string"',
            b'{"payload": {"service_name": "svc", "coverage": 1}}',
            b'{"event": "Push"}',
            b'{"event": "Push", "payload": {"service_name": "svc", "coverage": "high"}}',
            b'{"event": "Push", "payload": {"service_name": "", "coverage": 1}}',
            b'{"event": 5, "payload": {"service_name": "svc", "coverage": 1}}',
        ],
    )
    def test_malformed_body(self, body):
        with pytest.raises(DeserializationError):
            IngestionCoordinator.decode(body)


@pytest.mark.asyncio
async def test_receive_persists_event(store, sample_event):
    """Test that an inbound event lands in the store."""
    coordinator = IngestionCoordinator(store)

    returned = await coordinator.receive(sample_event.to_json())

    assert returned == sample_event
    assert await coordinator.list_events() == [sample_event]


@pytest.mark.asyncio
async def test_malformed_event_not_persisted(store):
    """Test that a rejected body leaves the store untouched."""
    metrics = Metrics()
    coordinator = IngestionCoordinator(store, metrics=metrics)

    with pytest.raises(DeserializationError):
        await coordinator.receive(b"{broken")

    assert await store.scan_all() == []
    assert metrics.registry.get_sample_value("tracker_events_rejected_total") == 1


@pytest.mark.asyncio
async def test_persistence_failure_propagates(store, sample_event):
    """Test that an append failure reaches the caller and skips harvesting."""
    harvester = FakeHarvester(make_event())
    coordinator = IngestionCoordinator(store, forwarder=object(), harvester=harvester)
    await store.close()

    with pytest.raises(PersistenceError):
        await coordinator.receive(sample_event.to_json())
    assert coordinator.pending_tasks == 0
    assert harvester.calls == 0


@pytest.mark.asyncio
async def test_harvest_result_is_forwarded(store, sample_event):
    """Test that a harvested event is submitted to the forwarder."""
    local_event = make_event(event="TrackTestCoverageEvent", action_reference="pkg/x")
    collector = RecordingCollector()
    forwarder = EventForwarder(ENDPOINT, client=collector.client()).start()
    metrics = Metrics()
    coordinator = IngestionCoordinator(
        store, forwarder=forwarder, harvester=FakeHarvester(local_event), metrics=metrics
    )

    await coordinator.receive(sample_event.to_json())
    await coordinator.drain()
    await forwarder.shutdown()

    assert collector.bodies == [orjson.loads(local_event.to_json())]
    # only the inbound event is persisted; the harvested one is forwarded
    assert await store.scan_all() == [sample_event]
    assert metrics.registry.get_sample_value(
        "tracker_harvest_runs_total", {"outcome": "found"}
    ) == 1
    assert metrics.registry.get_sample_value(
        "tracker_events_ingested_total", {"event": sample_event.event}
    ) == 1


@pytest.mark.asyncio
async def test_no_harvest_result_forwards_nothing(store, sample_event):
    collector = RecordingCollector()
    forwarder = EventForwarder(ENDPOINT, client=collector.client()).start()
    harvester = FakeHarvester(None)
    coordinator = IngestionCoordinator(store, forwarder=forwarder, harvester=harvester)

    await coordinator.receive(sample_event.to_json())
    await coordinator.drain()
    await forwarder.shutdown()

    assert harvester.calls == 1
    assert collector.bodies == []


@pytest.mark.asyncio
async def test_each_request_spawns_a_harvest(store, sample_event):
    """Test one harvest run per inbound event, without deduplication."""
    collector = RecordingCollector()
    forwarder = EventForwarder(ENDPOINT, client=collector.client()).start()
    harvester = FakeHarvester(make_event())
    coordinator = IngestionCoordinator(store, forwarder=forwarder, harvester=harvester)

    await asyncio.gather(*(coordinator.receive(sample_event.to_json()) for _ in range(3)))
    await coordinator.drain()
    await forwarder.shutdown()

    assert harvester.calls == 3
    assert len(collector.bodies) == 3
    assert len(await store.scan_all()) == 3


@pytest.mark.asyncio
async def test_receive_does_not_wait_for_harvest(store, sample_event):
    """Test that the caller returns while the harvester is still running."""
    started = asyncio.Event()
    release = asyncio.Event()
    loop = asyncio.get_running_loop()

    class SlowHarvester:
        def harvest(self):
            loop.call_soon_threadsafe(started.set)
            asyncio.run_coroutine_threadsafe(release.wait(), loop).result(timeout=5)
            return None

    forwarder = EventForwarder(ENDPOINT, client=RecordingCollector().client()).start()
    coordinator = IngestionCoordinator(store, forwarder=forwarder, harvester=SlowHarvester())

    await coordinator.receive(sample_event.to_json())
    await asyncio.wait_for(started.wait(), timeout=2)
    assert coordinator.pending_tasks == 1

    release.set()
    await coordinator.drain()
    await forwarder.shutdown()
    assert coordinator.pending_tasks == 0


@pytest.mark.asyncio
async def test_harvester_crash_is_contained(store, sample_event):
    """Test that an exception inside the harvester is logged, not raised."""

    class BrokenHarvester:
        def harvest(self):
            raise RuntimeError("boom")

    collector = RecordingCollector()
    forwarder = EventForwarder(ENDPOINT, client=collector.client()).start()
    coordinator = IngestionCoordinator(store, forwarder=forwarder, harvester=BrokenHarvester())

    await coordinator.receive(sample_event.to_json())
    await coordinator.drain()
    await forwarder.shutdown()

    assert collector.bodies == []
    assert await store.scan_all() == [sample_event]


@pytest.mark.asyncio
async def test_harvest_after_forwarder_closed(store, sample_event):
    """Test that a late harvest result is dropped once the forwarder is closed."""
    collector = RecordingCollector()
    forwarder = EventForwarder(ENDPOINT, client=collector.client()).start()
    await forwarder.shutdown()
    coordinator = IngestionCoordinator(store, forwarder=forwarder, harvester=FakeHarvester(make_event()))

    await coordinator.receive(sample_event.to_json())
    await coordinator.drain()

    assert collector.bodies == []
