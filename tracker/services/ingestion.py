"""Ingestion coordinator: inbound events, persistence, harvest and forward."""
import asyncio

import orjson
import structlog
from pydantic import ValidationError

from ..errors import DeserializationError, ForwarderClosed
from ..event_models import CoverageEvent
from ..harvest.harvester import CoverageHarvester
from ..metrics import Metrics
from ..store import ActionStore
from .forwarder import EventForwarder

log = structlog.get_logger()


class IngestionCoordinator:
    """
    Glue between inbound events, the action store, the harvester and the
    forwarder.

    Each accepted event spawns its own background task that runs the local
    harvester and forwards whatever it finds. The caller never waits for
    it and never sees its outcome.
    """

    def __init__(
        self,
        store: ActionStore,
        forwarder: EventForwarder | None = None,
        harvester: CoverageHarvester | None = None,
        metrics: Metrics | None = None,
    ):
        """
        Args:
            store: Action store receiving every inbound event
            forwarder: Forwarder for harvested events (harvesting is skipped without one)
            harvester: Local coverage harvester; None disables harvesting
            metrics: Optional Prometheus metrics
        """
        self.store = store
        self.forwarder = forwarder
        self.harvester = harvester
        self._metrics = metrics
        self._tasks: set[asyncio.Task] = set()

    @staticmethod
    def decode(body: bytes) -> CoverageEvent:
        """
        Decode a wire-format event.

        Raises:
            DeserializationError: If the body is not valid JSON, does not
                match the event schema, or has no payload
        """
        try:
            data = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise DeserializationError("request body is not valid JSON", cause=e) from e

        try:
            event = CoverageEvent.model_validate(data)
        except ValidationError as e:
            raise DeserializationError(
                f"invalid event: {e.error_count()} validation error(s)", cause=e
            ) from e

        if event.payload is None:
            raise DeserializationError("event payload is required")
        return event

    async def receive(self, body: bytes) -> CoverageEvent:
        """
        Decode, persist and kick off background harvesting for one event.

        Raises:
            DeserializationError: Malformed body; nothing is persisted
            PersistenceError: The append failed
        """
        try:
            event = self.decode(body)
        except DeserializationError as e:
            log.info("ingest.rejected", error=e.message)
            if self._metrics is not None:
                self._metrics.events_rejected_total.inc()
            raise

        log.info(
            "ingest.incoming",
            event_kind=event.event,
            service_name=event.payload.service_name,
            coverage=event.payload.coverage,
        )
        await self.store.append(event)
        if self._metrics is not None:
            self._metrics.record_event_ingested(event.event)

        self._spawn_harvest()
        return event

    async def list_events(self) -> list[CoverageEvent]:
        """All persisted events in insertion order."""
        return await self.store.scan_all()

    async def drain(self) -> None:
        """Wait for every outstanding harvest-and-forward task."""
        if not self._tasks:
            return
        log.info("ingest.draining", pending=len(self._tasks))
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def _spawn_harvest(self) -> None:
        if self.harvester is None or self.forwarder is None:
            return
        task = asyncio.create_task(self._harvest_and_forward())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _harvest_and_forward(self) -> None:
        try:
            local_event = await asyncio.to_thread(self.harvester.harvest)
        except Exception as e:
            log.warning("harvest.failed", error=str(e), error_type=type(e).__name__)
            self._count_harvest("error")
            return

        if local_event is None:
            self._count_harvest("no_result")
            return
        self._count_harvest("found")

        try:
            await self.forwarder.submit(local_event)
        except ForwarderClosed:
            log.warning("forwarder.submit_rejected", event_kind=local_event.event)

    def _count_harvest(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.harvest_runs_total.labels(outcome=outcome).inc()
