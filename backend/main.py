from __future__ import annotations

import logging
import os
import threading
import uuid
from collections import OrderedDict
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from fastapi import Body, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from core.config import Settings, configure_logging, load_settings
from core.errors import IncompleteRun, PersistenceFailure, UnknownEventKind
from models.data_models import HealthStatus, RunOutcome
from services.coverage import CoverageTracker
from services.pipeline import ReportingSession, build_session, replay, split_event
from services.storage import EventLogReader, ReportStore, TrendStore

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────

API_PREFIX = "/api"
FINISHED_RUNS_KEPT = 100

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────


def outcome_body(run_id: str, outcome: RunOutcome) -> Dict[str, Any]:
    return {
        "run_id": run_id,
        "status": "finished",
        "persisted": outcome.persisted,
        "summary": outcome.artifacts.structured_report["summary"],
        "coverage": outcome.coverage.to_dict()["summary"],
        "paths": outcome.paths,
    }


def persistence_error(run_id: str, exc: PersistenceFailure) -> HTTPException:
    detail: Dict[str, Any] = {"run_id": run_id, "error": exc.message}
    if exc.outcome is not None:
        detail["summary"] = exc.outcome.artifacts.structured_report["summary"]
        detail["report"] = exc.outcome.artifacts.structured_report
    return HTTPException(status_code=500, detail=detail)


class RunRegistry:
    """
    Sessions of runs still in flight, plus the outcomes of recently finished runs.
    A finished session is dropped as soon as its outcome is recorded; only the
    newest `keep_finished` outcomes are retained.
    """

    def __init__(self, settings: Settings, keep_finished: int = FINISHED_RUNS_KEPT):
        self.settings = settings
        self.keep_finished = keep_finished
        self.coverage = CoverageTracker(settings.coverage_declaration)
        self.sessions: Dict[str, ReportingSession] = {}
        self.outcomes: OrderedDict[str, RunOutcome] = OrderedDict()
        self._lock = threading.Lock()

    def start(self) -> Tuple[str, ReportingSession]:
        run_id = uuid.uuid4().hex
        session = build_session(self.settings, self.coverage)
        with self._lock:
            self.sessions[run_id] = session
        return run_id, session

    def get(self, run_id: str) -> ReportingSession:
        with self._lock:
            session = self.sessions.get(run_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown run {run_id}")
        return session

    def outcome(self, run_id: str) -> Optional[RunOutcome]:
        with self._lock:
            return self.outcomes.get(run_id)

    def complete(self, run_id: str) -> Optional[RunOutcome]:
        """Move a finalized session's outcome into the bounded history"""
        with self._lock:
            session = self.sessions.pop(run_id, None)
            if session is None or session.outcome is None:
                return self.outcomes.get(run_id)
            self.outcomes[run_id] = session.outcome
            while len(self.outcomes) > self.keep_finished:
                evicted, _ = self.outcomes.popitem(last=False)
                logger.debug("Dropped outcome of run %s", evicted)
            return session.outcome

    def discard(self, run_id: str) -> None:
        with self._lock:
            self.sessions.pop(run_id, None)

    def active(self) -> int:
        with self._lock:
            return len(self.sessions)


# ──────────────────────────────────────────────────────────────────────────────
# App
# ──────────────────────────────────────────────────────────────────────────────


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    registry = RunRegistry(settings)
    report_store = ReportStore(settings.reports_dir)
    trend_store = TrendStore(settings.trends_path, limit=settings.trend_limit)

    app = FastAPI(title="API Quality Dashboard (Runner Events → Reports)")
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # dev OK; lock down in prod
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Health ───────────────────────────────────────────────────────────────

    @app.get(f"{API_PREFIX}/health")
    def health() -> Dict[str, Any]:
        try:
            trend = trend_store.load()
        except PersistenceFailure as exc:
            raise HTTPException(status_code=500, detail=exc.message)
        status = HealthStatus(
            status="ok",
            reports_dir_exists=os.path.isdir(settings.reports_dir),
            reports_dir=os.path.abspath(settings.reports_dir),
            trend_points=len(trend),
            active_runs=registry.active(),
            latest_timestamp=(trend[-1].timestamp if trend else None),
        )
        return asdict(status)

    # ── Runs (runner events) ─────────────────────────────────────────────────

    @app.post(f"{API_PREFIX}/runs")
    def start_run(payload: Optional[Dict[str, Any]] = Body(None)) -> Dict[str, Any]:
        run_id, session = registry.start()
        session.handle("run-start", payload or {})
        logger.info("Run %s started", run_id)
        return {"run_id": run_id, "status": "running"}

    @app.post(f"{API_PREFIX}/runs/{{run_id}}/events")
    def post_event(run_id: str, event: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        if registry.outcome(run_id) is not None:
            raise HTTPException(status_code=409, detail=f"Run {run_id} has already ended")
        session = registry.get(run_id)
        if session.finished:
            raise HTTPException(status_code=409, detail=f"Run {run_id} has already ended")

        kind, payload = split_event(event)
        try:
            handled = session.handle(kind, payload)
        except UnknownEventKind as exc:
            raise HTTPException(status_code=400, detail=exc.message)
        except PersistenceFailure as exc:
            registry.complete(run_id)
            raise persistence_error(run_id, exc)

        if session.finished:
            return outcome_body(run_id, registry.complete(run_id) or session.outcome)
        return {
            "run_id": run_id,
            "status": "running",
            "event": handled.kind,
            "total_requests": session.accumulator.total_requests,
            "total_tests": session.accumulator.total_tests,
        }

    @app.post(f"{API_PREFIX}/runs/upload")
    async def upload_run(file: UploadFile = File(...)) -> Dict[str, Any]:
        """
        Accepts a recorded event log:
          - JSONL
          - JSON array
          - JSON object containing the list under events/logs/entries/data/items
        Replays it as one run.
        """
        content = await file.read()
        try:
            mode, events = EventLogReader.parse(content)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

        run_id, session = registry.start()
        try:
            outcome = replay(session, events)
        except UnknownEventKind as exc:
            registry.discard(run_id)
            raise HTTPException(status_code=400, detail=exc.message)
        except IncompleteRun as exc:
            registry.discard(run_id)
            raise HTTPException(status_code=422, detail=exc.message)
        except PersistenceFailure as exc:
            registry.complete(run_id)
            raise persistence_error(run_id, exc)

        registry.complete(run_id)
        body = outcome_body(run_id, outcome)
        body.update({"mode": mode, "events": len(events)})
        return body

    @app.get(f"{API_PREFIX}/runs/{{run_id}}/report")
    def run_report(run_id: str) -> Dict[str, Any]:
        outcome = registry.outcome(run_id)
        if outcome is None:
            session = registry.get(run_id)
            if session.outcome is None:
                raise HTTPException(status_code=409, detail=f"Run {run_id} is still in progress")
            outcome = session.outcome
        return outcome.artifacts.structured_report

    # ── Persisted artifacts ──────────────────────────────────────────────────

    @app.get(f"{API_PREFIX}/report")
    def latest_report() -> Dict[str, Any]:
        report = report_store.load_report()
        if report is None:
            raise HTTPException(status_code=404, detail="No report has been generated yet")
        return report

    @app.get(f"{API_PREFIX}/dashboard", response_class=HTMLResponse)
    def dashboard() -> HTMLResponse:
        document = report_store.load_dashboard()
        if document is None:
            raise HTTPException(status_code=404, detail="No dashboard has been generated yet")
        return HTMLResponse(content=document)

    @app.get(f"{API_PREFIX}/trends")
    def trends(limit: int = Query(30, ge=1, le=1000)) -> Dict[str, Any]:
        try:
            history = trend_store.load()
        except PersistenceFailure as exc:
            raise HTTPException(status_code=500, detail=exc.message)
        return {"trends": [p.to_dict() for p in history[-limit:]]}

    # ── Coverage ─────────────────────────────────────────────────────────────

    @app.get(f"{API_PREFIX}/coverage")
    def coverage() -> Dict[str, Any]:
        return registry.coverage.report().to_dict()

    @app.post(f"{API_PREFIX}/coverage/reset")
    def reset_coverage() -> Dict[str, Any]:
        registry.coverage.reset()
        return registry.coverage.report().to_dict()

    return app


configure_logging(os.getenv("LOG_LEVEL", "INFO"))
app = create_app()
