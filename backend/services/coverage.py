"""
CoverageTracker Class - Endpoint x method coverage

Tracks which declared (endpoint, method) pairs were exercised by at least one
completed request. State outlives a single run until reset() is called.
"""

import logging
from typing import Dict, Iterable, List, Optional

from models.data_models import (
    CoverageEntry,
    CoverageReport,
    EndpointCoverage,
    RequestCompleted,
    RunEvent,
)
from utils.helpers import format_percent, isoformat, normalize_endpoint, utc_now

logger = logging.getLogger(__name__)


class CoverageTracker:
    """
    Marks declared endpoint methods as exercised.
    Responsibilities:
    - Normalize raw request paths to declared patterns
    - Record observed methods for declared endpoints only
    - Produce per-endpoint and overall coverage
    """

    def __init__(self, declaration: Dict[str, Iterable[str]]):
        self.entries: Dict[str, CoverageEntry] = {
            pattern: CoverageEntry(declared_methods={m.upper() for m in methods})
            for pattern, methods in declaration.items()
        }
        # Declaration order, methods listed as declared
        self._declared_order: Dict[str, List[str]] = {
            pattern: list(dict.fromkeys(m.upper() for m in methods))
            for pattern, methods in declaration.items()
        }

    def observe(self, event: RunEvent) -> None:
        """Event consumer: only completed requests affect coverage"""
        if isinstance(event, RequestCompleted):
            self.record_observation(event.method, event.url)

    def record_observation(self, method: str, raw_path: str) -> None:
        key = normalize_endpoint(raw_path)
        entry = self.entries.get(key)
        if entry is None:
            logger.debug("Ignoring undeclared endpoint %s (%s)", key, raw_path)
            return
        entry.observed_methods.add((method or "").upper())

    def reset(self) -> None:
        for entry in self.entries.values():
            entry.observed_methods.clear()

    def report(self, timestamp: Optional[str] = None) -> CoverageReport:
        total_methods = 0
        tested_methods = 0
        endpoints: List[EndpointCoverage] = []

        for pattern, entry in self.entries.items():
            declared = self._declared_order[pattern]
            tested = entry.tested_methods

            total_methods += len(declared)
            tested_methods += len(tested)

            endpoints.append(
                EndpointCoverage(
                    endpoint=pattern,
                    total_methods=len(declared),
                    tested_methods=len(tested),
                    coverage=format_percent(len(tested), len(declared)),
                    untested=[m for m in declared if m not in tested],
                    undeclared_observed=sorted(entry.observed_methods - entry.declared_methods),
                )
            )

        return CoverageReport(
            total_endpoints=len(self.entries),
            total_methods=total_methods,
            tested_methods=tested_methods,
            overall_coverage=format_percent(tested_methods, total_methods),
            endpoints=endpoints,
            timestamp=timestamp or isoformat(utc_now()),
        )
