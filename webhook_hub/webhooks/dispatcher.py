"""WebHook delivery pipeline with retry logic.

Work items are put on a bounded queue and consumed by a fixed pool of
delivery workers so that fan-out to many WebHooks does not serialize on
network latency.

Per work item::

    PENDING -> SENDING -> DELIVERED | GONE | FAILED

A failed attempt with retries left is followed, after a backoff delay, by a
fresh work item with ``offset + 1``. The retry is only scheduled once the
previous attempt's outcome is known, and a per-lineage lock keeps duplicate
submissions of the same lineage from being sent concurrently. Every work
item handed to ``submit`` ends in exactly one terminal outcome; delivery
failures are logged and reported to ``on_outcome`` but never raised to the
submitter.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

import httpx
import structlog

from webhook_hub.config import Settings
from webhook_hub.config import settings as default_settings
from webhook_hub.errors import DeliveryError
from webhook_hub.webhooks.models import WebHookWorkItem
from webhook_hub.webhooks.sender import WebHookSender

logger = structlog.get_logger(__name__)


class DeliveryStatus(str, Enum):
    """State of a single delivery attempt."""

    PENDING = "pending"
    SENDING = "sending"
    DELIVERED = "delivered"
    GONE = "gone"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Terminal result of a work item lineage.

    Attributes:
        work_item: The last attempt made.
        status: DELIVERED, GONE or FAILED.
        status_code: HTTP status of the last response, if any.
        error: Description of the last failure, if any.
    """

    work_item: WebHookWorkItem
    status: DeliveryStatus
    status_code: int | None = None
    error: str | None = None

    @property
    def attempts(self) -> int:
        return self.work_item.attempt


@dataclass
class DispatcherStats:
    """Counters describing dispatcher activity."""

    submitted: int = 0
    attempts: int = 0
    retries: int = 0
    delivered: int = 0
    gone: int = 0
    failed: int = 0

    @property
    def completed(self) -> int:
        return self.delivered + self.gone + self.failed


OutcomeListener = Callable[[DeliveryOutcome], Awaitable[None] | None]


@dataclass
class _Lineage:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class WebHookDispatcher:
    """Delivers work items through a bounded queue and worker pool.

    Features:
    - Fixed number of concurrent deliveries
    - Fixed backoff schedule between attempts
    - Sequential attempts per lineage
    - One shared HTTP client, closed once on shutdown
    """

    def __init__(
        self,
        sender: WebHookSender | None = None,
        *,
        settings: Settings | None = None,
        on_outcome: OutcomeListener | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sender: Sender used for every attempt (created if not provided).
            settings: Concurrency, queue size and retry schedule.
            on_outcome: Called with each terminal outcome.
        """
        self._settings = settings or default_settings
        self._sender = sender or WebHookSender(settings=self._settings)
        self._on_outcome = on_outcome
        self._retry_delays = tuple(self._settings.RETRY_DELAYS)
        self._max_concurrent = max(1, self._settings.MAX_CONCURRENT_DELIVERIES)

        self._queue: asyncio.Queue[WebHookWorkItem] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._retry_tasks: dict[asyncio.Task[None], WebHookWorkItem] = {}
        self._lineages: dict[tuple[str, str], _Lineage] = {}
        self._statuses: dict[tuple[str, str], DeliveryStatus] = {}
        self._stopping = False
        self.stats = DispatcherStats()
        self._logger = logger.bind(component="webhook_dispatcher")

    @property
    def sender(self) -> WebHookSender:
        return self._sender

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    def status_of(self, work_item: WebHookWorkItem) -> DeliveryStatus | None:
        """State of an in-flight lineage; None once terminal or if unknown."""
        return self._statuses.get(work_item.lineage)

    async def start(self) -> None:
        """Start the delivery workers. Safe to call more than once."""
        if self._workers:
            return

        self._stopping = False
        self._queue = asyncio.Queue(maxsize=max(0, self._settings.QUEUE_SIZE))
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"webhook-worker-{index}")
            for index in range(self._max_concurrent)
        ]

        self._logger.info("dispatcher_started", workers=self._max_concurrent)

    async def submit(self, work_items: Iterable[WebHookWorkItem]) -> int:
        """Queue work items for delivery.

        Starts the workers if needed. Waits only for queue space, never for
        delivery.

        Returns:
            Number of work items queued.
        """
        if self._stopping:
            raise RuntimeError("WebHookDispatcher is shutting down")
        if not self._workers:
            await self.start()
        assert self._queue is not None

        count = 0
        for work_item in work_items:
            self._statuses[work_item.lineage] = DeliveryStatus.PENDING
            await self._queue.put(work_item)
            count += 1

        self.stats.submitted += count
        if count:
            self._logger.debug("work_items_submitted", count=count)
        return count

    async def join(self) -> None:
        """Wait until every queued work item, retries included, is terminal."""
        if self._queue is not None:
            await self._queue.join()

    async def shutdown(self) -> None:
        """Stop the workers, abandon pending retries and close the HTTP client.

        Work items still waiting are reported as FAILED.
        """
        self._stopping = True

        tasks = [*self._workers, *self._retry_tasks]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []

        # Retry tasks cancelled before their first step never reach their finally block
        abandoned = list(self._retry_tasks.values())
        self._retry_tasks.clear()
        for work_item in abandoned:
            if self._queue is not None:
                self._queue.task_done()
            await self._finish(
                DeliveryOutcome(work_item, DeliveryStatus.FAILED, error="Retry abandoned"),
            )

        if self._queue is not None:
            while not self._queue.empty():
                work_item = self._queue.get_nowait()
                self._queue.task_done()
                await self._finish(
                    DeliveryOutcome(work_item, DeliveryStatus.FAILED, error="Dispatcher shut down"),
                )

        await self._sender.aclose()
        self._logger.info("dispatcher_stopped", **self._stats_dict())

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        while True:
            work_item = await self._queue.get()
            try:
                outcome = await self._process(work_item)
            except asyncio.CancelledError:
                try:
                    await self._finish(
                        DeliveryOutcome(work_item, DeliveryStatus.FAILED, error="Delivery abandoned"),
                    )
                finally:
                    self._queue.task_done()
                raise
            except Exception as e:
                self._logger.error(
                    "worker_unexpected_error",
                    worker=index,
                    work_item_id=work_item.id,
                    error=str(e),
                    exc_info=True,
                )
                outcome = DeliveryOutcome(work_item, DeliveryStatus.FAILED, error=str(e))

            if outcome is None:
                continue

            # A cancel while reporting must not report the item a second time
            try:
                await self._finish(outcome)
            finally:
                self._queue.task_done()

    async def _process(self, work_item: WebHookWorkItem) -> DeliveryOutcome | None:
        """Run one attempt under the lineage lock.

        Returns:
            The terminal outcome, or None if a retry was scheduled, in which
            case the queue slot of this item is released by the retry task.
        """
        key = work_item.lineage
        lineage = self._lineages.setdefault(key, _Lineage())
        lineage.users += 1
        try:
            async with lineage.lock:
                self._statuses[key] = DeliveryStatus.SENDING
                outcome = await self._attempt(work_item)
        finally:
            lineage.users -= 1
            if lineage.users == 0:
                self._lineages.pop(key, None)

        if outcome.status is DeliveryStatus.FAILED and self._can_retry(outcome):
            self._schedule_retry(work_item)
            return None

        return outcome

    def _can_retry(self, outcome: DeliveryOutcome) -> bool:
        return not self._stopping and outcome.work_item.offset < len(self._retry_delays)

    async def _attempt(self, work_item: WebHookWorkItem) -> DeliveryOutcome:
        """Make a single delivery attempt."""
        self.stats.attempts += 1
        try:
            response = await self._sender.send(work_item)
        except httpx.TimeoutException:
            error = DeliveryError("Request timeout")
            self._log_failure(work_item, error)
            return DeliveryOutcome(work_item, DeliveryStatus.FAILED, error=error.message)
        except httpx.HTTPError as e:
            error = DeliveryError(f"Connection error: {e}")
            self._log_failure(work_item, error)
            return DeliveryOutcome(work_item, DeliveryStatus.FAILED, error=error.message)

        if response.is_success:
            return DeliveryOutcome(work_item, DeliveryStatus.DELIVERED, status_code=response.status_code)

        if response.status_code == httpx.codes.GONE:
            return DeliveryOutcome(
                work_item,
                DeliveryStatus.GONE,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
            )

        error = DeliveryError(f"HTTP {response.status_code}", status_code=response.status_code)
        self._log_failure(work_item, error)
        return DeliveryOutcome(
            work_item,
            DeliveryStatus.FAILED,
            status_code=response.status_code,
            error=error.message,
        )

    def _log_failure(self, work_item: WebHookWorkItem, error: DeliveryError) -> None:
        self._logger.warning(
            "delivery_attempt_failed",
            work_item_id=work_item.id,
            webhook_id=work_item.webhook.id,
            attempt=work_item.attempt,
            **error.to_dict(),
        )

    def _schedule_retry(self, work_item: WebHookWorkItem) -> None:
        delay = self._retry_delays[work_item.offset]
        next_item = work_item.next_attempt()
        self._statuses[work_item.lineage] = DeliveryStatus.PENDING
        self.stats.retries += 1

        self._logger.debug(
            "scheduling_retry",
            work_item_id=work_item.id,
            delay_seconds=delay,
            next_attempt=next_item.attempt,
        )

        task = asyncio.create_task(self._retry_later(work_item, next_item, delay))
        self._retry_tasks[task] = work_item

    async def _retry_later(
        self,
        work_item: WebHookWorkItem,
        next_item: WebHookWorkItem,
        delay: float,
    ) -> None:
        assert self._queue is not None
        try:
            await asyncio.sleep(delay)
            await self._queue.put(next_item)
        except asyncio.CancelledError:
            await self._finish(
                DeliveryOutcome(work_item, DeliveryStatus.FAILED, error="Retry abandoned"),
            )
            raise
        finally:
            # Releases the slot held by the previous attempt
            self._retry_tasks.pop(asyncio.current_task(), None)
            self._queue.task_done()

    async def _finish(self, outcome: DeliveryOutcome) -> None:
        work_item = outcome.work_item
        self._statuses.pop(work_item.lineage, None)

        if outcome.status is DeliveryStatus.DELIVERED:
            self.stats.delivered += 1
            self._logger.info(
                "delivery_success",
                work_item_id=work_item.id,
                webhook_id=work_item.webhook.id,
                attempt=work_item.attempt,
                status_code=outcome.status_code,
            )
        elif outcome.status is DeliveryStatus.GONE:
            self.stats.gone += 1
            self._logger.warning(
                "delivery_gone",
                work_item_id=work_item.id,
                webhook_id=work_item.webhook.id,
                attempt=work_item.attempt,
            )
        else:
            self.stats.failed += 1
            self._logger.error(
                "delivery_failed_permanently",
                work_item_id=work_item.id,
                webhook_id=work_item.webhook.id,
                attempts=work_item.attempt,
                error=outcome.error,
            )

        await self._notify(outcome)

    async def _notify(self, outcome: DeliveryOutcome) -> None:
        if self._on_outcome is None:
            return
        try:
            result = self._on_outcome(outcome)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            self._logger.warning(
                "outcome_listener_error",
                work_item_id=outcome.work_item.id,
                error=str(e),
            )

    def _stats_dict(self) -> dict[str, int]:
        return {
            "submitted": self.stats.submitted,
            "attempts": self.stats.attempts,
            "retries": self.stats.retries,
            "delivered": self.stats.delivered,
            "gone": self.stats.gone,
            "failed": self.stats.failed,
        }
