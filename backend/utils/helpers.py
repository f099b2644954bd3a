"""
Helper Functions

This module contains utility functions used throughout the application.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from dateutil import parser as dtparser

PATH_PARAM_PLACEHOLDER = ":id"

_NUMERIC_SEGMENT = re.compile(r"^\d+$")
_CSS_TOKEN = re.compile(r"[^A-Za-z0-9_-]")
_HOST_SEGMENT = re.compile(r"^(localhost|\{\{[^{}]+\}\}|[^.:/]+(\.[^.:/]+)+|[^:/]+:\d+)(:\d+)?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(x: Any) -> Optional[datetime]:
    """Parse timestamp from various formats"""
    if not x:
        return None
    if isinstance(x, datetime):
        dt = x
    elif isinstance(x, (int, float)) and not isinstance(x, bool):
        # Runner clocks report epoch milliseconds
        try:
            return datetime.fromtimestamp(x / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        try:
            dt = dtparser.isoparse(str(x))
        except Exception:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def safe_int(x: Any) -> Optional[int]:
    """Safely convert to int"""
    try:
        return int(x) if x is not None else None
    except Exception:
        return None


def safe_float(x: Any) -> Optional[float]:
    """Safely convert to float, rejecting NaN and infinities"""
    try:
        value = float(x) if x is not None else None
    except Exception:
        return None
    if value is None or math.isnan(value) or math.isinf(value):
        return None
    return value


def get_nested(d: Dict[str, Any], path: Tuple[str, ...]) -> Any:
    """Safely read nested dict keys"""
    cur: Any = d
    for k in path:
        if not isinstance(cur, dict) or k not in cur:
            return None
        cur = cur[k]
    return cur


def first_present(d: Dict[str, Any], *paths: Tuple[str, ...]) -> Any:
    """Return the first nested value that is not None"""
    for path in paths:
        value = get_nested(d, path)
        if value is not None:
            return value
    return None


def nearest_rank(sorted_vals: Sequence[float], q: float) -> float:
    """
    Nearest-rank percentile on an ascending list.
    Index is floor(q * n) clamped to [0, n - 1]; no interpolation.
    Caller guarantees the list is non-empty.
    """
    n = len(sorted_vals)
    idx = int(math.floor(q * n))
    idx = max(0, min(idx, n - 1))
    return sorted_vals[idx]


def mean(values: List[float]) -> float:
    return (sum(values) / len(values)) if values else 0.0


def round2(x: Optional[float]) -> Optional[float]:
    return round(float(x), 2) if x is not None else None


def format_percent(numerator: int, denominator: int) -> str:
    """Two-decimal percentage; a zero denominator yields 0.00%"""
    if denominator <= 0:
        return "0.00%"
    return f"{numerator / denominator * 100.0:.2f}%"


def format_ms(x: Optional[float]) -> str:
    return f"{x:.2f}ms" if x is not None else "n/a"


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    return dt.astimezone(timezone.utc).isoformat() if dt is not None else None


def _looks_like_host(segment: str) -> bool:
    """Leading segment of a schemeless URL: host, host:port or a {{variable}}"""
    return bool(_HOST_SEGMENT.match(segment))


def extract_path(raw: str) -> str:
    """Path component of a URL or bare path, without query and trailing slash"""
    raw = (raw or "").strip()
    if "://" in raw:
        path = urlsplit(raw).path
    else:
        path = raw.split("?", 1)[0].split("#", 1)[0]
        if not path.startswith("/"):
            head, _, rest = path.partition("/")
            if _looks_like_host(head):
                path = rest
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def normalize_endpoint(raw: str) -> str:
    """Collapse every purely numeric path segment into the placeholder"""
    path = extract_path(raw)
    segments = [
        PATH_PARAM_PLACEHOLDER if _NUMERIC_SEGMENT.match(seg) else seg
        for seg in path.split("/")
    ]
    return "/".join(segments) or "/"


def css_token(value: Any) -> str:
    """Restrict a value to characters safe inside a class attribute"""
    return _CSS_TOKEN.sub("", str(value))
