from __future__ import annotations

import json
from typing import Any, Dict, Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG_BODY_LIMIT = 4000


class Transport(Protocol):
    timeout: float

    def post(self, url: str, *, headers: Optional[Dict[str, str]] = None, data: Any = None,
             json: Any = None, params: Optional[Dict[str, Any]] = None): ...

    def get(self, url: str, *, headers: Optional[Dict[str, str]] = None,
            params: Optional[Dict[str, Any]] = None): ...


class RequestsTransport:
    """requests.Session with urllib3 Retry for connection faults and 429/5xx.

    Only GETs are resent after a response. A POST that reached the carrier
    (create, label, cancel) is never replayed here; failures surface to the
    executor, which decides whether to enqueue a durable retry.
    Every call carries `timeout`; carrier adapters pick their own bound.
    """

    def __init__(self, timeout: float = 30, max_retries: int = 3, backoff_factor: float = 0.3) -> None:
        self.session = requests.Session()
        self.timeout = timeout

        retry = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def post(self, url: str, *, headers: Optional[Dict[str, str]] = None, data: Any = None,
             json: Any = None, params: Optional[Dict[str, Any]] = None):
        return self.session.post(url, headers=headers, data=data, json=json, params=params, timeout=self.timeout)

    def get(self, url: str, *, headers: Optional[Dict[str, str]] = None, params: Optional[Dict[str, Any]] = None):
        return self.session.get(url, headers=headers, params=params, timeout=self.timeout)

    def close(self) -> None:
        self.session.close()


def clip(body: Any, limit: int = LOG_BODY_LIMIT) -> str:
    """JSON-ish text of `body` cut to `limit` chars for debug logs."""
    if isinstance(body, str):
        text = body
    else:
        try:
            text = json.dumps(body, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(body)
    return text[:limit] + "..." if len(text) > limit else text


def response_json(resp) -> Any:
    """Parsed body or the raw text when the carrier did not send JSON."""
    try:
        return resp.json()
    except ValueError:
        return getattr(resp, "text", None)
