"""Tests for the WebHook dispatcher."""

import asyncio
import json
from collections import Counter
from unittest.mock import MagicMock

import httpx
import pytest

from webhook_hub.config import Settings
from webhook_hub.webhooks.dispatcher import (
    DeliveryOutcome,
    DeliveryStatus,
    WebHookDispatcher,
)
from webhook_hub.webhooks.models import NotificationDictionary, WebHook, WebHookWorkItem
from webhook_hub.webhooks.sender import WebHookSender

# ============================================================================
# Fixtures
# ============================================================================


class Receiver:
    """Mock receiver answering with a scripted list of status codes."""

    def __init__(self, statuses=(200,), delay: float = 0.0):
        self.statuses = list(statuses)
        self.delay = delay
        self.bodies: list[dict] = []
        self.in_flight: Counter = Counter()
        self.max_in_flight: Counter = Counter()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.bodies.append(body)
        key = body["Id"]
        self.in_flight[key] += 1
        self.max_in_flight[key] = max(self.max_in_flight[key], self.in_flight[key])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight[key] -= 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status)


@pytest.fixture
def settings():
    """Settings with immediate retries."""
    return Settings(MAX_CONCURRENT_DELIVERIES=4, QUEUE_SIZE=100, RETRY_DELAYS=(0.0, 0.0))


@pytest.fixture
def outcomes():
    """Terminal outcomes reported by the dispatcher."""
    return []


def make_dispatcher(handler, settings, outcomes) -> WebHookDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sender = WebHookSender(client, settings=settings)
    return WebHookDispatcher(sender, settings=settings, on_outcome=outcomes.append)


def make_work_item(webhook_id: str = "w1") -> WebHookWorkItem:
    webhook = WebHook(
        id=webhook_id,
        webhook_uri=f"http://localhost/{webhook_id}",
        secret="0123456789abcdef",
        filters=["*"],
    )
    return WebHookWorkItem.create(webhook, [NotificationDictionary("a1", {"k": "v"})])


# ============================================================================
# Delivery Tests
# ============================================================================


class TestDelivery:
    """Tests for delivery outcomes."""

    @pytest.mark.asyncio
    async def test_success(self, settings, outcomes):
        """Test a 2xx response is delivered on the first attempt."""
        receiver = Receiver([200])
        dispatcher = make_dispatcher(receiver, settings, outcomes)

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert len(outcomes) == 1
        assert outcomes[0].status is DeliveryStatus.DELIVERED
        assert outcomes[0].status_code == 200
        assert outcomes[0].attempts == 1
        assert dispatcher.stats.delivered == 1

    @pytest.mark.asyncio
    async def test_failure_exhausts_retries(self, settings, outcomes):
        """Test a failing receiver gets one attempt per retry plus the first."""
        receiver = Receiver([500])
        dispatcher = make_dispatcher(receiver, settings, outcomes)
        work_item = make_work_item()

        await dispatcher.submit([work_item])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert [b["Attempt"] for b in receiver.bodies] == [1, 2, 3]
        assert {b["Id"] for b in receiver.bodies} == {work_item.id}
        assert len(outcomes) == 1
        assert outcomes[0].status is DeliveryStatus.FAILED
        assert outcomes[0].status_code == 500
        assert outcomes[0].attempts == 3
        assert dispatcher.stats.retries == 2

    @pytest.mark.asyncio
    async def test_retry_then_success(self, settings, outcomes):
        """Test a retry that succeeds ends the lineage as delivered."""
        receiver = Receiver([503, 200])
        dispatcher = make_dispatcher(receiver, settings, outcomes)

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert len(receiver.bodies) == 2
        assert len(outcomes) == 1
        assert outcomes[0].status is DeliveryStatus.DELIVERED
        assert outcomes[0].attempts == 2

    @pytest.mark.asyncio
    async def test_gone_is_terminal(self, settings, outcomes):
        """Test 410 Gone is never retried."""
        receiver = Receiver([410])
        dispatcher = make_dispatcher(receiver, settings, outcomes)

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert len(receiver.bodies) == 1
        assert [o.status for o in outcomes] == [DeliveryStatus.GONE]
        assert dispatcher.stats.gone == 1

    @pytest.mark.asyncio
    async def test_no_retries_configured(self, outcomes):
        """Test an empty retry schedule means a single attempt."""
        settings = Settings(RETRY_DELAYS=())
        receiver = Receiver([500])
        dispatcher = make_dispatcher(receiver, settings, outcomes)

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert len(receiver.bodies) == 1
        assert outcomes[0].status is DeliveryStatus.FAILED

    @pytest.mark.asyncio
    async def test_connection_error(self, settings, outcomes):
        """Test transport errors are retried and reported, not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        dispatcher = make_dispatcher(handler, settings, outcomes)

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert len(outcomes) == 1
        assert outcomes[0].status is DeliveryStatus.FAILED
        assert outcomes[0].status_code is None
        assert outcomes[0].error.startswith("Connection error")
        assert dispatcher.stats.attempts == 3

    @pytest.mark.asyncio
    async def test_timeout(self, settings, outcomes):
        """Test timeouts are reported as such."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        dispatcher = make_dispatcher(handler, settings, outcomes)

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert outcomes[0].error == "Request timeout"

    @pytest.mark.asyncio
    async def test_unsendable_header_does_not_block_delivery(self, outcomes):
        """Test a header value that cannot be encoded is dropped, not fatal."""
        settings = Settings(RETRY_DELAYS=())
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        dispatcher = make_dispatcher(handler, settings, outcomes)
        work_item = make_work_item()
        work_item.webhook.headers = {"X-Name": "café", "X-Null": "a\x00b", "X-Tenant": "t1"}

        await dispatcher.submit([work_item])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert outcomes[0].status is DeliveryStatus.DELIVERED
        assert len(requests) == 1
        assert requests[0].headers["x-tenant"] == "t1"
        assert "x-name" not in requests[0].headers
        assert "x-null" not in requests[0].headers


# ============================================================================
# Concurrency Tests
# ============================================================================


class TestConcurrency:
    """Tests for exactly-once outcomes and lineage serialization."""

    @pytest.mark.asyncio
    async def test_one_outcome_per_work_item(self, settings, outcomes):
        """Test every submitted work item ends in exactly one outcome."""
        receiver = Receiver([500, 200, 410, 200, 500], delay=0.001)
        dispatcher = make_dispatcher(receiver, settings, outcomes)
        work_items = [make_work_item(f"w{i}") for i in range(20)]

        count = await dispatcher.submit(work_items)
        await dispatcher.join()
        await dispatcher.shutdown()

        assert count == 20
        assert len(outcomes) == 20
        assert {o.work_item.id for o in outcomes} == {w.id for w in work_items}
        assert dispatcher.stats.completed == 20

    @pytest.mark.asyncio
    async def test_same_lineage_never_concurrent(self, settings, outcomes):
        """Test duplicate submissions of one lineage are sent one at a time."""
        receiver = Receiver([200], delay=0.01)
        dispatcher = make_dispatcher(receiver, settings, outcomes)
        work_item = make_work_item()

        await dispatcher.submit([work_item, work_item, work_item])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert len(receiver.bodies) == 3
        assert receiver.max_in_flight[work_item.id] == 1

    @pytest.mark.asyncio
    async def test_different_lineages_run_in_parallel(self, settings, outcomes):
        """Test distinct work items are delivered concurrently."""
        receiver = Receiver([200], delay=0.05)
        dispatcher = make_dispatcher(receiver, settings, outcomes)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await dispatcher.submit([make_work_item(f"w{i}") for i in range(4)])
        await dispatcher.join()
        elapsed = loop.time() - started
        await dispatcher.shutdown()

        assert len(outcomes) == 4
        assert elapsed < 0.18


# ============================================================================
# Lifecycle Tests
# ============================================================================


class TestLifecycle:
    """Tests for start, shutdown and listeners."""

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, settings, outcomes):
        """Test starting twice keeps one worker pool."""
        dispatcher = make_dispatcher(Receiver(), settings, outcomes)

        await dispatcher.start()
        workers = list(dispatcher._workers)
        await dispatcher.start()

        assert dispatcher.is_running
        assert dispatcher._workers == workers
        assert len(workers) == settings.MAX_CONCURRENT_DELIVERIES
        await dispatcher.shutdown()
        assert not dispatcher.is_running

    @pytest.mark.asyncio
    async def test_submit_after_shutdown_rejected(self, settings, outcomes):
        """Test submitting to a stopped dispatcher raises."""
        dispatcher = make_dispatcher(Receiver(), settings, outcomes)
        await dispatcher.start()
        await dispatcher.shutdown()

        with pytest.raises(RuntimeError):
            await dispatcher.submit([make_work_item()])

    @pytest.mark.asyncio
    async def test_shutdown_closes_client(self, settings, outcomes):
        """Test the shared HTTP client is closed on shutdown."""
        dispatcher = make_dispatcher(Receiver(), settings, outcomes)
        client = dispatcher.sender.client

        await dispatcher.start()
        await dispatcher.shutdown()
        await dispatcher.shutdown()

        assert client.is_closed

    @pytest.mark.asyncio
    async def test_shutdown_abandons_pending_retry(self, outcomes):
        """Test a retry waiting on its delay is reported as failed on shutdown."""
        settings = Settings(RETRY_DELAYS=(60.0,))
        dispatcher = make_dispatcher(Receiver([500]), settings, outcomes)

        await dispatcher.submit([make_work_item()])
        for _ in range(100):
            if dispatcher.stats.retries:
                break
            await asyncio.sleep(0.01)

        await dispatcher.shutdown()

        assert dispatcher.stats.retries == 1
        assert len(outcomes) == 1
        assert outcomes[0].status is DeliveryStatus.FAILED
        assert outcomes[0].attempts == 1

    @pytest.mark.asyncio
    async def test_status_cleared_when_terminal(self, settings, outcomes):
        """Test in-flight status is dropped after the outcome."""
        dispatcher = make_dispatcher(Receiver(), settings, outcomes)
        work_item = make_work_item()

        await dispatcher.submit([work_item])
        await dispatcher.join()

        assert dispatcher.status_of(work_item) is None
        await dispatcher.shutdown()

    @pytest.mark.asyncio
    async def test_async_listener_awaited(self, settings):
        """Test coroutine listeners are awaited."""
        received: list[DeliveryOutcome] = []

        async def listener(outcome: DeliveryOutcome) -> None:
            received.append(outcome)

        client = httpx.AsyncClient(transport=httpx.MockTransport(Receiver()))
        dispatcher = WebHookDispatcher(
            WebHookSender(client, settings=settings),
            settings=settings,
            on_outcome=listener,
        )

        await dispatcher.submit([make_work_item()])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert [o.status for o in received] == [DeliveryStatus.DELIVERED]

    @pytest.mark.asyncio
    async def test_shutdown_during_slow_listener(self, settings):
        """Test shutdown while a listener runs keeps one outcome per item."""
        received: list[DeliveryOutcome] = []
        listening = asyncio.Event()

        async def listener(outcome: DeliveryOutcome) -> None:
            received.append(outcome)
            listening.set()
            await asyncio.sleep(10)

        client = httpx.AsyncClient(transport=httpx.MockTransport(Receiver()))
        dispatcher = WebHookDispatcher(
            WebHookSender(client, settings=settings),
            settings=settings,
            on_outcome=listener,
        )

        await dispatcher.submit([make_work_item()])
        await asyncio.wait_for(listening.wait(), timeout=5)
        await asyncio.wait_for(dispatcher.shutdown(), timeout=5)

        assert [o.status for o in received] == [DeliveryStatus.DELIVERED]
        assert dispatcher.stats.delivered == 1
        assert dispatcher.stats.failed == 0

    @pytest.mark.asyncio
    async def test_listener_error_does_not_stop_dispatch(self, settings):
        """Test a failing listener does not affect other deliveries."""
        listener = MagicMock(side_effect=Exception("Listener error"))
        client = httpx.AsyncClient(transport=httpx.MockTransport(Receiver()))
        dispatcher = WebHookDispatcher(
            WebHookSender(client, settings=settings),
            settings=settings,
            on_outcome=listener,
        )

        await dispatcher.submit([make_work_item("w1"), make_work_item("w2")])
        await dispatcher.join()
        await dispatcher.shutdown()

        assert listener.call_count == 2
        assert dispatcher.stats.delivered == 2
