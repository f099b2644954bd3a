"""
ReportingSession Class - One run from first event to persisted artifacts

This module wires the ingestor to the accumulator and the coverage tracker,
and on run end computes percentiles, renders, appends the trend point and
persists the artifacts.
"""

import logging
import threading
from typing import Any, Callable, Iterable, Optional, TextIO, Tuple

from core.config import Settings
from core.errors import IncompleteRun, PersistenceFailure
from models.data_models import (
    AssertionRecorded,
    RequestDispatched,
    RunEnded,
    RunEvent,
    RunOutcome,
    RunStarted,
    TrendPoint,
)
from services.accumulator import MetricsAccumulator
from services.coverage import CoverageTracker
from services.ingestor import EventIngestor
from services.percentiles import compute_percentiles
from services.renderer import ReportRenderer
from services.storage import ReportStore, TrendStore

logger = logging.getLogger(__name__)


class ConsoleProgress:
    """Human-facing progress lines while a run is in flight"""

    def __init__(self, write: Callable[[str], Any]):
        self.write = write

    @classmethod
    def to_stream(cls, stream: TextIO) -> "ConsoleProgress":
        return cls(lambda line: print(line, file=stream))

    def __call__(self, event: RunEvent) -> None:
        if isinstance(event, RunStarted):
            self.write("\nStarting API Tests...\n")
        elif isinstance(event, RequestDispatched):
            self.write(f"Executing: {event.request_name}")
        elif isinstance(event, AssertionRecorded):
            if event.passed:
                self.write(f"   ✅ {event.assertion_name}")
            else:
                self.write(f"   ❌ {event.assertion_name}: {event.error_message}")


class ReportingSession:
    """
    Owns one run.
    Responsibilities:
    - Register consumers on a fresh ingestor in delivery order
    - Serialize event delivery for the run
    - Finalize on run end: percentiles, render, trend append, persist
    """

    def __init__(
        self,
        coverage: CoverageTracker,
        trend_store: TrendStore,
        report_store: ReportStore,
        renderer: Optional[ReportRenderer] = None,
        progress: Optional[Callable[[RunEvent], None]] = None,
        console: Optional[Callable[[str], Any]] = None,
        reset_coverage: bool = False,
    ):
        self.coverage = coverage
        self.trend_store = trend_store
        self.report_store = report_store
        self.renderer = renderer or ReportRenderer()
        self.console = console
        self.reset_coverage = reset_coverage
        self.accumulator = MetricsAccumulator()
        self.outcome: Optional[RunOutcome] = None
        self._lock = threading.Lock()

        self.ingestor = EventIngestor()
        self.ingestor.subscribe(self.accumulator.observe)
        self.ingestor.subscribe(self.coverage.observe)
        if progress is not None:
            self.ingestor.subscribe(progress)
        # Must stay last: it reads the accumulator after it has seen RunEnded
        self.ingestor.subscribe(self._on_event)

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    def handle(self, kind: Any, payload: Any = None) -> RunEvent:
        with self._lock:
            return self.ingestor.handle(kind, payload)

    def _on_event(self, event: RunEvent) -> None:
        if isinstance(event, RunStarted) and self.reset_coverage:
            self.coverage.reset()
        if isinstance(event, RunEnded) and self.outcome is None:
            self.finalize()

    def finalize(self) -> RunOutcome:
        """
        Build and persist the artifacts of the ended run.
        The console summary is emitted before any write is attempted; a
        failed write raises PersistenceFailure carrying the outcome.
        """
        metrics = self.accumulator.snapshot()
        percentiles = compute_percentiles(metrics.response_times)
        coverage_report = self.coverage.report()
        point = TrendPoint.from_run(metrics, percentiles)

        try:
            history = self.trend_store.load()
        except PersistenceFailure as exc:
            logger.error("Trend history unavailable: %s", exc.message)
            history = []
        trend = (history + [point])[-self.trend_store.limit:]

        artifacts = self.renderer.render(metrics, percentiles, trend=trend, coverage=coverage_report)
        outcome = RunOutcome(artifacts=artifacts, coverage=coverage_report, trend=trend)
        self.outcome = outcome

        if self.console is not None:
            self.console(artifacts.console_summary)

        try:
            outcome.paths = self.report_store.save(
                artifacts.structured_report,
                coverage_report.to_dict(),
                artifacts.dashboard_document,
            )
            outcome.trend = self.trend_store.append(point)
            outcome.paths["trends"] = self.trend_store.file_path
        except PersistenceFailure as exc:
            outcome.persistence_error = exc.message
            exc.outcome = outcome
            logger.error("Run results were not persisted: %s", exc.message)
            raise

        logger.info(
            "Run finished: %d/%d tests passed, %d request(s), reports in %s",
            metrics.passed_tests,
            metrics.total_tests,
            metrics.total_requests,
            self.report_store.reports_dir,
        )
        return outcome


def split_event(raw: Any) -> Tuple[Any, Any]:
    """(kind, payload) of one recorded event object"""
    if not isinstance(raw, dict):
        return None, raw
    kind = raw.get("event") or raw.get("type") or raw.get("kind")
    payload = {k: v for k, v in raw.items() if k not in ("event", "type", "kind")}
    return kind, payload


def build_session(
    settings: Settings,
    coverage: CoverageTracker,
    progress: Optional[Callable[[RunEvent], None]] = None,
    console: Optional[Callable[[str], Any]] = None,
) -> ReportingSession:
    return ReportingSession(
        coverage=coverage,
        trend_store=TrendStore(settings.trends_path, limit=settings.trend_limit),
        report_store=ReportStore(settings.reports_dir),
        progress=progress,
        console=console,
        reset_coverage=settings.coverage_reset_per_run,
    )


def replay(session: ReportingSession, events: Iterable[Any]) -> RunOutcome:
    """
    Feed recorded events through a session in order.
    Raises IncompleteRun when the log never reaches run end.
    """
    delivered = 0
    for raw in events:
        kind, payload = split_event(raw)
        session.handle(kind, payload)
        delivered += 1
        if session.finished:
            break
    if session.outcome is None:
        raise IncompleteRun(f"event log ended after {delivered} event(s) without a run end")
    return session.outcome
