"""
Storage Classes - Handles file I/O operations

This module manages the persisted artifacts: the bounded trend history, the
report files written after each run, and recorded runner event logs.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.errors import PersistenceFailure
from models.data_models import TrendPoint

logger = logging.getLogger(__name__)

_path_locks: Dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def lock_for(path: str) -> threading.Lock:
    """One lock per absolute file path, shared by every store in the process"""
    key = os.path.abspath(path)
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


def atomic_write_text(path: str, text: str) -> None:
    """
    Write text so that readers only ever see the old or the new content.
    Raises PersistenceFailure when the destination cannot be written.
    """
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path: Optional[str] = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=os.path.basename(path), dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as exc:
        raise PersistenceFailure(f"could not write {path}: {exc}", path=path) from exc
    finally:
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_path)


def atomic_write_json(path: str, obj: Any) -> None:
    atomic_write_text(path, json.dumps(obj, indent=2, ensure_ascii=False) + "\n")


class TrendStore:
    """
    Bounded, durable history of run summaries.
    Responsibilities:
    - Load the existing history (empty when none exists)
    - Append a point and keep only the most recent `limit`
    - Write the whole history back atomically under a per-file lock
    """

    def __init__(self, file_path: str, limit: int = 30):
        if limit < 1:
            raise ValueError("trend limit must be at least 1")
        self.file_path = file_path
        self.limit = limit

    def load(self) -> List[TrendPoint]:
        return self._to_points(self._read_raw())

    def append(self, point: TrendPoint) -> List[TrendPoint]:
        """Append under the file lock; returns the history as written"""
        with lock_for(self.file_path):
            history = self._read_raw()
            self._to_points(history)
            history.append(point.to_dict())
            history = history[-self.limit:]
            atomic_write_json(self.file_path, history)
        logger.info("Trend history at %s now holds %d run(s)", self.file_path, len(history))
        return self._to_points(history)

    def _to_points(self, history: List[Dict[str, Any]]) -> List[TrendPoint]:
        try:
            return [TrendPoint.from_dict(d) for d in history]
        except (TypeError, ValueError) as exc:
            raise PersistenceFailure(
                f"trend history has an unreadable entry: {self.file_path}: {exc}", path=self.file_path
            ) from exc

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceFailure(f"could not read {self.file_path}: {exc}", path=self.file_path) from exc

        if not text.strip():
            return []
        # Refuse to overwrite history we cannot parse
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise PersistenceFailure(f"trend history is not valid JSON: {self.file_path}", path=self.file_path) from exc
        if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
            raise PersistenceFailure(f"trend history must be a list of objects: {self.file_path}", path=self.file_path)
        return data


class ReportStore:
    """
    Writes and reads the per-run report artifacts.
    Responsibilities:
    - Persist the structured report, coverage report and dashboard
    - Serve the latest persisted artifacts back
    """

    def __init__(self, reports_dir: str):
        self.reports_dir = reports_dir

    @property
    def report_path(self) -> str:
        return os.path.join(self.reports_dir, "detailed-report.json")

    @property
    def coverage_path(self) -> str:
        return os.path.join(self.reports_dir, "coverage.json")

    @property
    def dashboard_path(self) -> str:
        return os.path.join(self.reports_dir, "dashboard.html")

    def save(
        self,
        structured_report: Dict[str, Any],
        coverage_report: Dict[str, Any],
        dashboard_document: str,
    ) -> Dict[str, str]:
        atomic_write_json(self.report_path, structured_report)
        atomic_write_json(self.coverage_path, coverage_report)
        atomic_write_text(self.dashboard_path, dashboard_document)
        return {
            "report": os.path.abspath(self.report_path),
            "coverage": os.path.abspath(self.coverage_path),
            "dashboard": os.path.abspath(self.dashboard_path),
        }

    def load_report(self) -> Optional[Dict[str, Any]]:
        return self._read_json(self.report_path)

    def load_coverage(self) -> Optional[Dict[str, Any]]:
        return self._read_json(self.coverage_path)

    def load_dashboard(self) -> Optional[str]:
        try:
            with open(self.dashboard_path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    @staticmethod
    def _read_json(path: str) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None


class EventLogReader:
    """
    Reads recorded runner events.
    Accepts JSONL, a JSON array, a single JSON object, or a JSON object
    holding the list under events/logs/entries/data/items.
    """

    LIST_KEYS = ("events", "logs", "entries", "data", "items")

    @classmethod
    def parse(cls, content: bytes) -> Tuple[str, List[Dict[str, Any]]]:
        """Returns (mode, events)"""
        if not content:
            raise ValueError("Empty file content")

        text = content.decode("utf-8", errors="ignore").strip()
        if not text:
            raise ValueError("Empty file after decoding")

        # Try parsing as JSON first (handles multiline JSON)
        try:
            obj = json.loads(text)
        except ValueError:
            obj = None

        if isinstance(obj, list):
            return "json_array", [it for it in obj if isinstance(it, dict)]
        if isinstance(obj, dict):
            for key in cls.LIST_KEYS:
                if key in obj and isinstance(obj[key], list):
                    return f"json_object.{key}", [it for it in obj[key] if isinstance(it, dict)]
            return "single_json_object", [obj]

        return "jsonl", list(cls._iter_jsonl(text.splitlines()))

    @classmethod
    def read_file(cls, path: str) -> Tuple[str, List[Dict[str, Any]]]:
        with open(path, "rb") as f:
            return cls.parse(f.read())

    @staticmethod
    def _iter_jsonl(lines: Iterable[str]) -> Iterable[Dict[str, Any]]:
        """Invalid lines are skipped"""
        for n, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
            except ValueError:
                logger.warning("Skipping unparseable event log line %d", n)
                continue
            if isinstance(item, dict):
                yield item
