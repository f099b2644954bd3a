"""
Data Models (DTOs - Data Transfer Objects)

This module contains all dataclass definitions used throughout the application:
runner events, the per-run metrics snapshot, percentile and coverage summaries,
trend points and rendered artifacts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from utils.helpers import format_percent, isoformat, mean, round2


def _optional_float(x: Any) -> Optional[float]:
    """None stays None; anything else must be a number"""
    return float(x) if x is not None else None


# ──────────────────────────────────────────────────────────────────────────────
# Run events
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RunStarted:
    started_at: datetime
    kind: str = field(default="run-start", init=False)


@dataclass(frozen=True)
class RequestDispatched:
    """Emitted before a request leaves the runner; carries no metrics"""
    request_name: str
    kind: str = field(default="request-dispatched", init=False)


@dataclass(frozen=True)
class RequestCompleted:
    request_name: str
    method: str
    url: str
    status_code: int
    response_time_ms: float
    response_size_bytes: int
    failed: bool
    kind: str = field(default="request-completed", init=False)


@dataclass(frozen=True)
class AssertionRecorded:
    assertion_name: str
    request_ref: str
    passed: bool
    error_message: Optional[str] = None
    kind: str = field(default="assertion-recorded", init=False)


@dataclass(frozen=True)
class RunEnded:
    ended_at: datetime
    kind: str = field(default="run-end", init=False)


RunEvent = Union[RunStarted, RequestDispatched, RequestCompleted, AssertionRecorded, RunEnded]


# ──────────────────────────────────────────────────────────────────────────────
# Run metrics
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RequestRecord:
    name: str
    method: str
    url: str
    status_code: int
    response_time_ms: float
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "method": self.method,
            "url": self.url,
            "status": self.status_code,
            "responseTime": self.response_time_ms,
            "size": self.size_bytes,
        }


@dataclass(frozen=True)
class FailureRecord:
    assertion_name: str
    request_ref: str
    error_message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test": self.assertion_name,
            "request": self.request_ref,
            "error": self.error_message,
        }


@dataclass(frozen=True)
class RunMetrics:
    """Read-only snapshot of one run, produced once the run has ended"""
    total_tests: int
    passed_tests: int
    failed_tests: int
    total_requests: int
    failed_requests: int
    response_times: Tuple[float, ...]
    requests: Tuple[RequestRecord, ...]
    failures: Tuple[FailureRecord, ...]
    started_at: Optional[datetime]
    ended_at: Optional[datetime]

    @property
    def pass_rate(self) -> str:
        return format_percent(self.passed_tests, self.total_tests)

    @property
    def average_response_time_ms(self) -> float:
        return mean(list(self.response_times))

    @property
    def min_response_time_ms(self) -> Optional[float]:
        return min(self.response_times) if self.response_times else None

    @property
    def max_response_time_ms(self) -> Optional[float]:
        return max(self.response_times) if self.response_times else None

    @property
    def total_time_seconds(self) -> float:
        if self.started_at is None or self.ended_at is None:
            return 0.0
        return max(0.0, (self.ended_at - self.started_at).total_seconds())


# ──────────────────────────────────────────────────────────────────────────────
# Percentiles
# ──────────────────────────────────────────────────────────────────────────────

PERCENTILE_KEYS: Tuple[Tuple[str, float], ...] = (
    ("p50", 0.50),
    ("p75", 0.75),
    ("p90", 0.90),
    ("p95", 0.95),
    ("p99", 0.99),
)


@dataclass(frozen=True)
class PercentileSummary:
    min: Optional[float]
    p50: Optional[float]
    p75: Optional[float]
    p90: Optional[float]
    p95: Optional[float]
    p99: Optional[float]
    max: Optional[float]
    count: int = 0

    @classmethod
    def undefined(cls) -> "PercentileSummary":
        return cls(None, None, None, None, None, None, None, 0)

    @property
    def is_defined(self) -> bool:
        return self.count > 0

    def percentiles(self) -> Dict[str, Optional[float]]:
        return {key: getattr(self, key) for key, _ in PERCENTILE_KEYS}


# ──────────────────────────────────────────────────────────────────────────────
# Coverage
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class CoverageEntry:
    """Declared vs observed methods for one normalized endpoint"""
    declared_methods: Set[str]
    observed_methods: Set[str] = field(default_factory=set)

    @property
    def tested_methods(self) -> Set[str]:
        return self.observed_methods & self.declared_methods


@dataclass(frozen=True)
class EndpointCoverage:
    endpoint: str
    total_methods: int
    tested_methods: int
    coverage: str
    untested: List[str]
    undeclared_observed: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "totalMethods": self.total_methods,
            "testedMethods": self.tested_methods,
            "coverage": self.coverage,
            "untested": list(self.untested),
            "undeclaredObserved": list(self.undeclared_observed),
        }


@dataclass(frozen=True)
class CoverageReport:
    total_endpoints: int
    total_methods: int
    tested_methods: int
    overall_coverage: str
    endpoints: List[EndpointCoverage]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "totalEndpoints": self.total_endpoints,
                "totalMethods": self.total_methods,
                "testedMethods": self.tested_methods,
                "overallCoverage": self.overall_coverage,
            },
            "endpoints": [e.to_dict() for e in self.endpoints],
            "timestamp": self.timestamp,
        }


# ──────────────────────────────────────────────────────────────────────────────
# Trend history
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrendPoint:
    """One run's summary as retained in the trend history"""
    total_tests: int
    passed: int
    failed: int
    pass_rate: str
    total_requests: int
    failed_requests: int
    total_time_seconds: float
    average_response_time_ms: float
    min_response_time_ms: Optional[float]
    max_response_time_ms: Optional[float]
    timestamp: Optional[str]
    percentiles: Dict[str, Optional[float]] = field(default_factory=dict)

    @classmethod
    def from_run(cls, metrics: RunMetrics, percentiles: PercentileSummary) -> "TrendPoint":
        return cls(
            total_tests=metrics.total_tests,
            passed=metrics.passed_tests,
            failed=metrics.failed_tests,
            pass_rate=metrics.pass_rate,
            total_requests=metrics.total_requests,
            failed_requests=metrics.failed_requests,
            total_time_seconds=round2(metrics.total_time_seconds),
            average_response_time_ms=round2(metrics.average_response_time_ms),
            min_response_time_ms=round2(metrics.min_response_time_ms),
            max_response_time_ms=round2(metrics.max_response_time_ms),
            timestamp=isoformat(metrics.ended_at),
            percentiles=percentiles.percentiles(),
        )

    def summary_dict(self) -> Dict[str, Any]:
        return {
            "totalTests": self.total_tests,
            "passed": self.passed,
            "failed": self.failed,
            "passRate": self.pass_rate,
            "totalRequests": self.total_requests,
            "failedRequests": self.failed_requests,
            "totalTimeSeconds": self.total_time_seconds,
            "averageResponseTimeMs": self.average_response_time_ms,
            "minResponseTimeMs": self.min_response_time_ms,
            "maxResponseTimeMs": self.max_response_time_ms,
            "timestamp": self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.summary_dict()
        d["percentiles"] = dict(self.percentiles)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TrendPoint":
        return cls(
            total_tests=int(d.get("totalTests") or 0),
            passed=int(d.get("passed") or 0),
            failed=int(d.get("failed") or 0),
            pass_rate=str(d.get("passRate") or "0.00%"),
            total_requests=int(d.get("totalRequests") or 0),
            failed_requests=int(d.get("failedRequests") or 0),
            total_time_seconds=float(d.get("totalTimeSeconds") or 0.0),
            average_response_time_ms=float(d.get("averageResponseTimeMs") or 0.0),
            min_response_time_ms=_optional_float(d.get("minResponseTimeMs")),
            max_response_time_ms=_optional_float(d.get("maxResponseTimeMs")),
            timestamp=d.get("timestamp"),
            percentiles={str(k): _optional_float(v) for k, v in dict(d.get("percentiles") or {}).items()},
        )


# ──────────────────────────────────────────────────────────────────────────────
# Outputs
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RenderedArtifacts:
    structured_report: Dict[str, Any]
    dashboard_document: str
    console_summary: str


@dataclass
class RunOutcome:
    """Everything one finished run produced, persisted or not"""
    artifacts: RenderedArtifacts
    coverage: CoverageReport
    trend: List[TrendPoint]
    paths: Dict[str, str] = field(default_factory=dict)
    persistence_error: Optional[str] = None

    @property
    def persisted(self) -> bool:
        return self.persistence_error is None


@dataclass
class HealthStatus:
    """Health check response"""
    status: str
    reports_dir_exists: bool
    reports_dir: str
    trend_points: int
    active_runs: int
    latest_timestamp: Optional[str] = None
