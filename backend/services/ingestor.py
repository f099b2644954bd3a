"""
EventIngestor Class - Runner callbacks to RunEvents

This module adapts the host runner's lifecycle notifications into the
normalized event stream and delivers each event, in order, to every
registered consumer.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.errors import MalformedEvent, UnknownEventKind
from models.data_models import (
    AssertionRecorded,
    RequestCompleted,
    RequestDispatched,
    RunEnded,
    RunEvent,
    RunStarted,
)
from utils.helpers import first_present, parse_ts, safe_float, safe_int, utc_now

logger = logging.getLogger(__name__)

EventConsumer = Callable[[RunEvent], None]

UNNAMED_REQUEST = "Unnamed Request"
UNNAMED_ASSERTION = "Unnamed Assertion"
UNKNOWN_METHOD = "UNKNOWN"

# Newman emitter names and the normalized names both map onto the five notifications
EVENT_KINDS: Dict[str, str] = {
    "start": "run-start",
    "run-start": "run-start",
    "beforerequest": "request-dispatched",
    "request-dispatched": "request-dispatched",
    "request": "request-completed",
    "request-completed": "request-completed",
    "assertion": "assertion-recorded",
    "assertion-recorded": "assertion-recorded",
    "done": "run-end",
    "run-end": "run-end",
}


def normalize_kind(kind: Any) -> str:
    key = str(kind or "").strip().lower()
    if key not in EVENT_KINDS:
        raise UnknownEventKind(kind)
    return EVENT_KINDS[key]


def _error_message(err: Any) -> Optional[str]:
    if err is None or err is False:
        return None
    if isinstance(err, dict):
        msg = err.get("message") or err.get("error") or err.get("name")
        return str(msg) if msg is not None else "error"
    if isinstance(err, BaseException):
        return str(err) or type(err).__name__
    return str(err)


def _url_string(url: Any) -> str:
    """Runner URLs arrive as strings or as Postman-style objects"""
    if url is None:
        return ""
    if isinstance(url, str):
        return url
    if isinstance(url, dict):
        if url.get("raw"):
            return str(url["raw"])
        host = url.get("host") or ""
        if isinstance(host, list):
            host = ".".join(str(h) for h in host)
        path = url.get("path") or ""
        if isinstance(path, list):
            path = "/".join(str(p) for p in path)
        protocol = url.get("protocol")
        prefix = f"{protocol}://{host}" if protocol and host else str(host)
        return f"{prefix}/{str(path).lstrip('/')}" if path else prefix
    return str(url)


def _size_bytes(size: Any) -> int:
    if isinstance(size, dict):
        size = size.get("total")
    value = safe_int(size)
    return value if value is not None and value >= 0 else 0


class EventIngestor:
    """
    Translates runner notifications into RunEvents.
    Responsibilities:
    - Keep the ordered list of downstream consumers
    - Normalize raw runner payloads (Newman or flat shapes)
    - Substitute sentinels for missing or malformed fields
    - Deliver each event synchronously, in arrival order
    """

    def __init__(self) -> None:
        self._consumers: List[EventConsumer] = []

    def subscribe(self, consumer: EventConsumer) -> None:
        self._consumers.append(consumer)

    def emit(self, event: RunEvent) -> RunEvent:
        for consumer in self._consumers:
            consumer(event)
        return event

    # ── typed callbacks ──────────────────────────────────────────────────────

    def on_run_start(self, started_at: Optional[datetime] = None) -> RunEvent:
        return self.emit(RunStarted(started_at=started_at or utc_now()))

    def on_before_request(self, request_name: Optional[str]) -> RunEvent:
        return self.emit(RequestDispatched(request_name=str(request_name) if request_name else UNNAMED_REQUEST))

    def on_request_complete(
        self,
        request_name: Optional[str],
        method: Optional[str],
        url: Any,
        status_code: Any,
        response_time_ms: Any,
        size_bytes: Any = None,
        error: Any = None,
    ) -> RunEvent:
        status = safe_int(status_code)
        elapsed = safe_float(response_time_ms)
        malformed = status is None or elapsed is None or elapsed < 0
        if malformed:
            logger.warning(
                "Request %r completed without a usable response; recording sentinel values",
                request_name,
            )
            if status is None:
                status = 0
            if elapsed is None or elapsed < 0:
                elapsed = 0.0

        return self.emit(
            RequestCompleted(
                request_name=str(request_name) if request_name else UNNAMED_REQUEST,
                method=(str(method).upper() if method else UNKNOWN_METHOD),
                url=_url_string(url),
                status_code=status,
                response_time_ms=elapsed,
                response_size_bytes=_size_bytes(size_bytes),
                failed=malformed or _error_message(error) is not None,
            )
        )

    def on_assertion(
        self,
        assertion_name: Optional[str],
        request_ref: Any,
        passed: bool,
        error_message: Optional[str] = None,
    ) -> RunEvent:
        return self.emit(
            AssertionRecorded(
                assertion_name=str(assertion_name) if assertion_name else UNNAMED_ASSERTION,
                request_ref=str(request_ref) if request_ref is not None else "",
                passed=bool(passed),
                error_message=None if passed else (error_message or "assertion failed"),
            )
        )

    def on_run_end(self, ended_at: Optional[datetime] = None) -> RunEvent:
        return self.emit(RunEnded(ended_at=ended_at or utc_now()))

    # ── raw payloads ─────────────────────────────────────────────────────────

    def handle(self, kind: Any, payload: Any = None) -> RunEvent:
        """
        Dispatch one raw runner notification.
        Malformed payloads degrade to sentinel events; only an unknown
        kind is reported back to the caller.
        """
        normalized = normalize_kind(kind)
        raw = payload if isinstance(payload, dict) else {}
        if payload is not None and not isinstance(payload, dict):
            logger.warning("Malformed %s payload of type %s", normalized, type(payload).__name__)

        if normalized == "run-start":
            return self.on_run_start(parse_ts(raw.get("timestamp") or raw.get("startedAt")))
        if normalized == "run-end":
            return self.on_run_end(parse_ts(raw.get("timestamp") or raw.get("endedAt")))
        if normalized == "request-dispatched":
            return self.on_before_request(
                first_present(raw, ("request", "name"), ("requestName",), ("request_name",), ("name",))
            )
        if normalized == "request-completed":
            return self._handle_request(raw)
        return self._handle_assertion(raw, malformed=not raw)

    def _handle_request(self, raw: Dict[str, Any]) -> RunEvent:
        return self.on_request_complete(
            request_name=first_present(raw, ("request", "name"), ("requestName",), ("request_name",), ("name",)),
            method=first_present(raw, ("request", "method"), ("method",)),
            url=first_present(raw, ("request", "url"), ("url",), ("path",)),
            status_code=first_present(raw, ("response", "code"), ("statusCode",), ("status_code",), ("status",)),
            response_time_ms=first_present(
                raw,
                ("response", "responseTime"),
                ("responseTimeMs",),
                ("response_time_ms",),
                ("responseTime",),
            ),
            size_bytes=first_present(
                raw, ("response", "size"), ("responseSizeBytes",), ("sizeBytes",), ("size_bytes",), ("size",)
            ),
            error=first_present(raw, ("error",), ("err",)),
        )

    def _handle_assertion(self, raw: Dict[str, Any], malformed: bool = False) -> RunEvent:
        name = first_present(raw, ("assertion",), ("assertionName",), ("assertion_name",), ("name",))
        ref = first_present(raw, ("cursor", "ref"), ("requestRef",), ("request_ref",), ("item", "name"))
        error = _error_message(first_present(raw, ("error",), ("err",), ("errorMessage",), ("error_message",)))

        try:
            passed = self._assertion_passed(raw, error, malformed)
        except MalformedEvent as exc:
            logger.warning("Recording assertion %r as failed: %s", name, exc.message)
            passed, error = False, exc.message

        return self.on_assertion(assertion_name=name, request_ref=ref, passed=passed, error_message=error)

    @staticmethod
    def _assertion_passed(raw: Dict[str, Any], error: Optional[str], malformed: bool) -> bool:
        if malformed:
            raise MalformedEvent("unparseable assertion payload")
        explicit = raw.get("passed")
        if explicit is None:
            return error is None
        if isinstance(explicit, bool):
            return explicit
        s = str(explicit).strip().lower()
        if s in ("true", "1", "yes"):
            return True
        if s in ("false", "0", "no"):
            return False
        raise MalformedEvent(f"unrecognized passed flag {explicit!r}")
