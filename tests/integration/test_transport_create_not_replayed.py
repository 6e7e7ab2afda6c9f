import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from carrier_routing.api.discount import DiscountCarrierAdapter, DiscountCarrierConfig
from carrier_routing.api.transport import RequestsTransport
from carrier_routing.models import Address, OrderData, OrderItem, Weight
from carrier_routing.pipelines.executor import ResilientExecutor
from carrier_routing.pipelines.retry_queue import RetryQueue
from carrier_routing.utils.clock import ManualClock

ORIGIN = Address(name="Warehouse", street1="1 Airport Rd", city="Jamaica", state="NY", postal_code="11430")


class Unavailable(BaseHTTPRequestHandler):
    hits = []

    def do_POST(self):
        body = self.rfile.read(int(self.headers.get("Content-Length") or 0))
        self.hits.append((self.path, json.loads(body or b"null")))
        out = json.dumps({"code": 0, "message": "Service Unavailable"}).encode()
        self.send_response(503)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(out)))
        self.end_headers()
        self.wfile.write(out)

    def log_message(self, *args):
        pass


@pytest.fixture
def carrier_url():
    Unavailable.hits = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), Unavailable)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_create_answered_503_is_sent_once_and_queued_once(carrier_url):
    clock = ManualClock()
    queue = RetryQueue(clock=clock)
    transport = RequestsTransport(timeout=5, max_retries=3, backoff_factor=0)
    adapter = DiscountCarrierAdapter(DiscountCarrierConfig(client_code="C1", api_key="K1", base_url=carrier_url),
                                     ORIGIN, transport, clock=clock)
    order = OrderData(
        order_number="NR-1",
        ship_to=Address(name="Ann", street1="1 Main St", city="Chicago", state="IL", postal_code="60601"),
        items=[OrderItem(name="Mug", quantity=1, weight=Weight(8, "oz"))],
    )

    result = ResilientExecutor(adapter, retry_queue=queue, clock=clock).create_shipment(order)
    transport.close()

    assert not result.success
    assert result.error.retryable
    assert [path for path, _ in Unavailable.hits] == ["/api/orderNew/createOrder"]
    assert Unavailable.hits[0][1]["referenceNo"].startswith("NR-1-")
    jobs = queue.store.all()
    assert [j.job_type for j in jobs] == ["discount_create_shipment"]
