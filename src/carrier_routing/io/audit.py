from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Protocol

REDACTED = "[REDACTED]"

SECRET_KEY_PARTS = ("password", "secret", "token", "key", "auth", "signature", "sign")
PII_KEY_PARTS = ("phone", "email", "street", "address", "mobile", "consignee", "recipient", "passport")
PII_EXACT_KEYS = frozenset({"name", "first_name", "last_name", "firstname", "lastname",
                            "company", "company_name", "personname"})

_TRACKING_KEYS = ("trackingNo", "trackingNumber", "tracking_number", "orderNumber", "labelPath")


def _is_sensitive(key: str) -> bool:
    k = key.lower()
    if k in PII_EXACT_KEYS:
        return True
    return any(p in k for p in SECRET_KEY_PARTS) or any(p in k for p in PII_KEY_PARTS)


def sanitize_payload(payload: Any) -> Any:
    """Deep copy of `payload` with secret and personal fields replaced by REDACTED."""
    if isinstance(payload, dict):
        return {
            k: (REDACTED if _is_sensitive(str(k)) and v not in (None, "") else sanitize_payload(v))
            for k, v in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [sanitize_payload(v) for v in payload]
    if hasattr(payload, "to_dict"):
        return sanitize_payload(payload.to_dict())
    return payload


def sanitize_response(raw: Any) -> Any:
    """Keep only code/message/status and shipment identifiers from a carrier response."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        return {"message": str(raw)[:500]}

    out: dict[str, Any] = {}
    for key in ("code", "message", "status"):
        if key in raw:
            out[key] = raw[key]

    data = raw.get("data")
    if isinstance(data, dict):
        kept = {k: data[k] for k in _TRACKING_KEYS if k in data}
        if "status" in data and not isinstance(data["status"], (dict, list)):
            kept["status"] = data["status"]
        if isinstance(data.get("errors"), list):
            kept["errors"] = sanitize_payload(data["errors"])
        if data.get("message"):
            kept["message"] = data["message"]
        if kept:
            out["data"] = kept
    elif isinstance(data, list):
        out["data"] = {"items": len(data)}
    return out


class AuditSink(Protocol):
    def write(self, entry: Any) -> None: ...


@dataclass
class MemoryAuditSink:
    """Keeps entries in a list; used by tests and short-lived batch runs."""
    entries: List[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def write(self, entry: Any) -> None:
        with self._lock:
            self.entries.append(entry)

    def by_action(self, action: str) -> List[Any]:
        return [e for e in self.entries if getattr(e, "action", None) == action]


@dataclass
class JsonlAuditSink:
    """Append one JSON object per line (entry.to_dict()) to `path`.

    Write failures are logged and swallowed so auditing never breaks a carrier call.
    """

    path: Path
    logger: Optional[logging.Logger] = None

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.logger = self.logger or logging.getLogger("carrier_routing.io.audit")
        self._lock = threading.Lock()

    def write(self, entry: Any) -> None:
        record = entry.to_dict() if hasattr(entry, "to_dict") else entry
        try:
            line = json.dumps(record, ensure_ascii=False, default=str)
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except (OSError, TypeError, ValueError) as ex:
            self.logger.warning("Failed to append audit record to %s: %s", self.path, ex)

    def read_all(self) -> list:
        if not self.path.exists():
            return []
        out = []
        with self.path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append(json.loads(line))
                except json.JSONDecodeError:
                    self.logger.warning("Skipping malformed audit line in %s", self.path)
        return out


def safe_write(sink: Optional[AuditSink], entry: Any, logger: logging.Logger) -> None:
    """Write to `sink`, logging (not raising) any failure."""
    if sink is None:
        return
    try:
        sink.write(entry)
    except Exception as ex:  # sink implementations are external
        logger.warning("Audit sink %s failed: %s", type(sink).__name__, ex)
