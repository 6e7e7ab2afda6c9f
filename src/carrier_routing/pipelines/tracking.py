# src/carrier_routing/pipelines/tracking.py
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Mapping, Optional

from carrier_routing.api.normalize import newest_first, parse_timestamp
from carrier_routing.models import TrackingEvent, WebhookUpdate
from carrier_routing.pipelines.executor import CarrierResult, ResilientExecutor
from carrier_routing.rules import status_mapper as sm
from carrier_routing.rules.status_mapper import StatusMapper
from carrier_routing.utils.clock import Clock, SystemClock


def _event_key(e: TrackingEvent) -> tuple:
    return (e.timestamp, e.raw_status, e.description, e.location)


class TrackingService:
    """
    Accumulates TrackingEvents per tracking number from webhook pushes and polls.

    Duplicate events (same timestamp, raw code, description and location) are
    dropped. Timelines are returned newest first.
    """

    def __init__(
        self,
        executors: Optional[Mapping[str, ResilientExecutor]] = None,
        *,
        mapper: Optional[StatusMapper] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.executors = dict(executors or {})
        self.mapper = mapper or StatusMapper()
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("carrier_routing.pipelines.tracking")
        self._events: Dict[str, List[TrackingEvent]] = {}
        self._lock = threading.Lock()

    def _add(self, events: List[TrackingEvent]) -> int:
        added = 0
        with self._lock:
            for e in events:
                bucket = self._events.setdefault(e.tracking_number, [])
                if any(_event_key(x) == _event_key(e) for x in bucket):
                    continue
                bucket.append(e)
                added += 1
        return added

    def handle_webhook(self, carrier: str, update: WebhookUpdate) -> TrackingEvent:
        now = self.clock.now()
        timestamp = parse_timestamp(update.timestamp)
        if timestamp is None and update.timestamp not in (None, ""):
            self.logger.warning("Webhook %s %s: unreadable timestamp %r; using receive time",
                                carrier, update.tracking_number, update.timestamp)
        event = self.mapper.to_event(
            carrier,
            update.tracking_number,
            update.raw_status,
            raw_description=update.description or None,
            location=update.location,
            timestamp=timestamp,
            now=now,
        )
        self._add([event])
        self.logger.info("Webhook %s %s: %s -> %s", carrier, update.tracking_number,
                         update.raw_status, event.status)
        return event

    def poll(self, adapter_id: str, tracking_number: str) -> CarrierResult:
        """Fetch events through the adapter's executor; failures are retried by the queue."""
        executor = self.executors.get(adapter_id)
        if executor is None:
            raise KeyError(f"No executor configured for adapter {adapter_id!r}")
        result = executor.track_shipment(tracking_number)
        if result.success:
            added = self._add(list(result.data or []))
            self.logger.info("Polled %s %s: %d new event(s)", adapter_id, tracking_number, added)
        return result

    def timeline(self, tracking_number: str) -> List[TrackingEvent]:
        with self._lock:
            events = list(self._events.get(tracking_number, []))
        return newest_first(events)

    def current_status(self, tracking_number: str) -> Optional[str]:
        events = self.timeline(tracking_number)
        return events[0].status if events else None

    def is_delivered(self, tracking_number: str) -> bool:
        status = self.current_status(tracking_number)
        return status is not None and sm.is_delivered(status)

    def is_active(self, tracking_number: str) -> bool:
        status = self.current_status(tracking_number)
        return status is not None and sm.is_active(status)

    def needs_attention(self, tracking_number: str) -> bool:
        status = self.current_status(tracking_number)
        return status is not None and sm.is_problem(status)
