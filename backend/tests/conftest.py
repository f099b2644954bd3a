from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from core.config import DEFAULT_COVERAGE_DECLARATION, Settings
from services.coverage import CoverageTracker


def request_event(
    name: str = "Get user",
    method: str = "GET",
    url: str = "https://jsonplaceholder.typicode.com/users/1",
    code: int = 200,
    response_time: float = 150,
    size: int = 512,
) -> Dict[str, Any]:
    """Newman-shaped `request` notification"""
    return {
        "event": "request",
        "request": {"name": name, "method": method, "url": url},
        "response": {"code": code, "responseTime": response_time, "size": {"total": size}},
    }


def assertion_event(name: str, ref: str = "req-1", error: Optional[str] = None) -> Dict[str, Any]:
    """Newman-shaped `assertion` notification"""
    event: Dict[str, Any] = {"event": "assertion", "assertion": name, "cursor": {"ref": ref}}
    if error is not None:
        event["error"] = {"message": error}
    return event


def run_log(*events: Dict[str, Any]) -> List[Dict[str, Any]]:
    return (
        [{"event": "start", "timestamp": "2026-10-19T10:00:00Z"}]
        + list(events)
        + [{"event": "done", "timestamp": "2026-10-19T10:00:02.500Z"}]
    )


def write_jsonl(path: Path, events: List[Dict[str, Any]]) -> Path:
    path.write_text("\n".join(json.dumps(e) for e in events) + "\n", encoding="utf-8")
    return path


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(reports_dir=str(tmp_path / "reports"))


@pytest.fixture()
def coverage() -> CoverageTracker:
    return CoverageTracker(DEFAULT_COVERAGE_DECLARATION)
