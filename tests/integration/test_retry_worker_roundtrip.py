import datetime as dt

from carrier_routing.api.discount import DiscountCarrierAdapter, DiscountCarrierConfig
from carrier_routing.models import Address, OrderData, OrderItem, Weight
from carrier_routing.pipelines.executor import ResilientExecutor, register_executor_handlers
from carrier_routing.pipelines.retry_queue import RetryQueue, RetryScheduler
from carrier_routing.pipelines.retry_store import SqlRetryStore
from carrier_routing.utils.clock import ManualClock


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.text = ""

    def json(self):
        return self._body


class FakeTransport:
    timeout = 5

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, *, headers=None, data=None, json=None, params=None):
        self.calls.append((url, json))
        return self.responses.pop(0)

    def get(self, url, *, headers=None, params=None):
        return self.post(url)


ORIGIN = Address(name="Warehouse", street1="1 Airport Rd", city="Jamaica", state="NY", postal_code="11430")
START = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)


def _executor(transport, queue, clock):
    adapter = DiscountCarrierAdapter(DiscountCarrierConfig(client_code="C1", api_key="K1"), ORIGIN, transport,
                                     clock=clock)
    return ResilientExecutor(adapter, retry_queue=queue, clock=clock)


def _order():
    return OrderData(
        order_number="RW-1",
        ship_to=Address(name="Ann", street1="1 Main St", city="Chicago", state="IL", postal_code="60601"),
        items=[OrderItem(name="Mug", quantity=2, weight=Weight(4.5, "oz"))],
    )


UNAVAILABLE = FakeResponse(503, {"code": 0, "message": "Service Unavailable"})
CREATED = FakeResponse(200, {"code": 1, "data": {"trackingNo": "GV555", "labelPath": "L"}})


def test_failed_create_survives_restart_and_completes(tmp_path):
    store_path = tmp_path / "retry.db"
    clock = ManualClock(START)
    first = _executor(FakeTransport(UNAVAILABLE), RetryQueue(SqlRetryStore(store_path), clock=clock), clock)

    result = first.create_shipment(_order())

    assert not result.success
    assert result.error.code == 502 and result.error.retryable
    saved = SqlRetryStore(store_path).all()
    assert len(saved) == 1
    assert saved[0].job_type == "discount_create_shipment"
    assert saved[0].status.value == "pending"
    assert saved[0].payload["operation"] == "create_shipment"
    assert saved[0].payload["carrier"] == "discount"
    assert saved[0].payload["payload"]["order"]["order_number"] == "RW-1"

    # new process: reopen the store after the backoff window has passed
    later = ManualClock(START + dt.timedelta(minutes=2))
    queue = RetryQueue(SqlRetryStore(store_path), clock=later)
    transport = FakeTransport(CREATED)
    job_types = register_executor_handlers(queue, _executor(transport, queue, later))
    assert "discount_create_shipment" in job_types

    processed = RetryScheduler(queue).run_once()

    assert [j.status.value for j in processed] == ["completed"]
    assert len(transport.calls) == 1
    assert transport.calls[0][1]["referenceNo"].startswith("RW-1-")
    assert queue.stats()["completed"] == 1
    assert SqlRetryStore(store_path).all()[0].status.value == "completed"


def test_job_is_not_run_before_its_backoff(tmp_path):
    store_path = tmp_path / "retry.db"
    clock = ManualClock(START)
    queue = RetryQueue(SqlRetryStore(store_path), clock=clock)
    _executor(FakeTransport(UNAVAILABLE), queue, clock).create_shipment(_order())

    transport = FakeTransport()
    register_executor_handlers(queue, _executor(transport, queue, clock))

    assert RetryScheduler(queue).run_once() == []
    assert transport.calls == []
    assert queue.stats()["pending"] == 1


def test_replay_failures_exhaust_to_failed(tmp_path):
    store_path = tmp_path / "retry.db"
    clock = ManualClock(START)
    queue = RetryQueue(SqlRetryStore(store_path), clock=clock)
    _executor(FakeTransport(UNAVAILABLE), queue, clock).create_shipment(_order())

    replay_transport = FakeTransport(UNAVAILABLE, UNAVAILABLE, UNAVAILABLE)
    register_executor_handlers(queue, _executor(replay_transport, queue, clock))

    for _ in range(3):
        clock.advance(120)
        queue.process_due()

    job = SqlRetryStore(store_path).all()[0]
    assert job.status.value == "failed"
    assert job.attempts == 3
    assert job.last_error == "Handler reported failure"
    # replays never enqueue a second job
    assert len(SqlRetryStore(store_path).all()) == 1
