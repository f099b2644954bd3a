"""
MetricsAccumulator Class - Folds run events into counters

This module aggregates one run's event stream into RunMetrics.
"""

import logging
from datetime import datetime
from typing import List, Optional

from core.errors import IncompleteRun
from models.data_models import (
    AssertionRecorded,
    FailureRecord,
    RequestCompleted,
    RequestRecord,
    RunEnded,
    RunEvent,
    RunMetrics,
    RunStarted,
)
from utils.helpers import format_percent

logger = logging.getLogger(__name__)


class MetricsAccumulator:
    """
    Aggregates the events of a single run.
    Responsibilities:
    - Count requests, failed requests and assertions
    - Keep the ordered response-time samples
    - Keep per-request and per-failure records
    - Freeze the metrics once the run has ended
    """

    def __init__(self) -> None:
        self.total_tests = 0
        self.passed_tests = 0
        self.failed_tests = 0
        self.total_requests = 0
        self.failed_requests = 0
        self.response_times: List[float] = []
        self.requests: List[RequestRecord] = []
        self.failures: List[FailureRecord] = []
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None

    @property
    def finished(self) -> bool:
        return self.ended_at is not None

    @property
    def pass_rate(self) -> str:
        return format_percent(self.passed_tests, self.total_tests)

    def observe(self, event: RunEvent) -> None:
        """Apply one event in place"""
        if self.finished:
            logger.warning("Ignoring %s received after run end", event.kind)
            return

        if isinstance(event, RunStarted):
            if self.started_at is not None:
                logger.warning("Ignoring duplicate run start")
                return
            self.started_at = event.started_at
        elif isinstance(event, RequestCompleted):
            self._observe_request(event)
        elif isinstance(event, AssertionRecorded):
            self._observe_assertion(event)
        elif isinstance(event, RunEnded):
            self.ended_at = event.ended_at
            if self.started_at is None:
                logger.warning("Run ended without a recorded start")
        # RequestDispatched carries nothing to count

    def _observe_request(self, event: RequestCompleted) -> None:
        self.total_requests += 1
        self.response_times.append(event.response_time_ms)
        self.requests.append(
            RequestRecord(
                name=event.request_name,
                method=event.method,
                url=event.url,
                status_code=event.status_code,
                response_time_ms=event.response_time_ms,
                size_bytes=event.response_size_bytes,
            )
        )
        if event.failed or event.status_code >= 400:
            self.failed_requests += 1

    def _observe_assertion(self, event: AssertionRecorded) -> None:
        self.total_tests += 1
        if event.passed:
            self.passed_tests += 1
            return

        self.failed_tests += 1
        self.failures.append(
            FailureRecord(
                assertion_name=event.assertion_name,
                request_ref=event.request_ref,
                error_message=event.error_message or "",
            )
        )

    def snapshot(self) -> RunMetrics:
        """Immutable copy of the run; only valid once the run has ended"""
        if not self.finished:
            raise IncompleteRun()

        return RunMetrics(
            total_tests=self.total_tests,
            passed_tests=self.passed_tests,
            failed_tests=self.failed_tests,
            total_requests=self.total_requests,
            failed_requests=self.failed_requests,
            response_times=tuple(self.response_times),
            requests=tuple(self.requests),
            failures=tuple(self.failures),
            started_at=self.started_at,
            ended_at=self.ended_at,
        )
