"""Best-effort relay of coverage events to a remote collector."""
import asyncio

import httpx
import structlog

from ..errors import ForwarderClosed
from ..event_models import CoverageEvent
from ..metrics import Metrics

log = structlog.get_logger()

DEFAULT_QUEUE_SIZE = 16

# Stop marker queued behind pending payloads on shutdown
_STOP = object()


class EventForwarder:
    """
    Single-consumer queue that POSTs serialized events to DEST_ENDPOINT.

    Producers only pay for serialization and a queue slot; the network
    round trip happens on one worker task, so deliveries are attempted in
    enqueue order with at most one request in flight. A full queue makes
    submit() wait. Failed deliveries are logged and dropped.
    """

    def __init__(
        self,
        endpoint: str,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        client: httpx.AsyncClient | None = None,
        metrics: Metrics | None = None,
    ):
        """
        Args:
            endpoint: URL the events are POSTed to
            queue_size: Capacity of the submission queue
            client: HTTP client to use; one is created and owned otherwise
            metrics: Optional Prometheus metrics
        """
        self.endpoint = endpoint
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._client = client
        self._owns_client = client is None
        self._metrics = metrics
        self._worker: asyncio.Task | None = None
        self._closed = False
        # submit() calls past the closed check that have not enqueued yet
        self._submitting = 0
        self._submitters_done = asyncio.Event()
        self._submitters_done.set()

    def start(self) -> "EventForwarder":
        """Spawn the worker task and return the submission handle."""
        if self._worker is not None:
            raise RuntimeError("forwarder already started")
        if self._client is None:
            self._client = httpx.AsyncClient()
        self._worker = asyncio.create_task(self._run(), name="event-forwarder")
        log.info("forwarder.started", endpoint=self.endpoint, queue_size=self._queue.maxsize)
        return self

    async def submit(self, event: CoverageEvent) -> None:
        """
        Serialize an event and queue it for delivery.

        Waits while the queue is full. A call that got past the closed check
        is always delivered, even if shutdown starts while it waits.

        Raises:
            ForwarderClosed: If shutdown has begun
        """
        if self._closed:
            raise ForwarderClosed("forwarder is shut down")
        body = event.to_json()
        self._submitting += 1
        self._submitters_done.clear()
        try:
            await self._queue.put(body)
        finally:
            self._submitting -= 1
            if self._submitting == 0:
                self._submitters_done.set()
        self._update_depth()
        log.debug("forwarder.queued", event_kind=event.event, depth=self._queue.qsize())

    async def shutdown(self) -> None:
        """Stop accepting events, let the worker flush the queue, release the client."""
        if self._closed:
            return
        self._closed = True
        log.info("forwarder.stopping", pending=self._queue.qsize())

        if self._worker is not None:
            # the worker keeps draining, so blocked submitters get their slot
            await self._submitters_done.wait()
            await self._queue.put(_STOP)
            await self._worker

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        log.info("forwarder.stopped")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of payloads waiting in the queue."""
        return self._queue.qsize()

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    break
                await self._deliver(item)
            finally:
                self._queue.task_done()
                self._update_depth()
        log.info("forwarder.worker_done")

    async def _deliver(self, body: bytes) -> None:
        try:
            response = await self._client.post(
                self.endpoint,
                content=body,
                headers={"Content-Type": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("forwarder.delivery_failed", endpoint=self.endpoint, error=str(e))
            self._count("failed")
            return
        except Exception as e:
            # anything else would kill the only consumer and wedge submit()
            log.exception("forwarder.delivery_error", endpoint=self.endpoint, error_type=type(e).__name__)
            self._count("failed")
            return

        log.info("forwarder.delivered", endpoint=self.endpoint, status=response.status_code)
        self._count("delivered" if response.is_success else "rejected")

    def _count(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.events_forwarded_total.labels(outcome=outcome).inc()

    def _update_depth(self) -> None:
        if self._metrics is not None:
            self._metrics.forward_queue_depth.set(self._queue.qsize())
