from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from core.errors import PersistenceFailure
from models.data_models import TrendPoint
from services import storage
from services.storage import EventLogReader, ReportStore, TrendStore, atomic_write_json


def _point(i: int) -> TrendPoint:
    return TrendPoint(
        total_tests=i,
        passed=i,
        failed=0,
        pass_rate="100.00%",
        total_requests=i + 1,
        failed_requests=0,
        total_time_seconds=1.25,
        average_response_time_ms=100.0 + i,
        min_response_time_ms=50.0,
        max_response_time_ms=200.5,
        timestamp=f"2026-10-{(i % 28) + 1:02d}T10:00:00+00:00",
        percentiles={"p50": 100.0, "p75": 120.0, "p90": 150.0, "p95": 180.0, "p99": 200.5},
    )


class TestTrendStore:
    def test_missing_file_loads_empty(self, tmp_path: Path) -> None:
        assert TrendStore(str(tmp_path / "trends.json")).load() == []

    def test_round_trip_preserves_points_and_order(self, tmp_path: Path) -> None:
        store = TrendStore(str(tmp_path / "trends.json"))
        points = [_point(i) for i in range(30)]
        for p in points:
            store.append(p)
        assert store.load() == points

    def test_thirty_first_point_evicts_the_oldest(self, tmp_path: Path) -> None:
        store = TrendStore(str(tmp_path / "trends.json"))
        for i in range(31):
            store.append(_point(i))

        history = store.load()
        assert len(history) == 30
        assert history[0] == _point(1)
        assert history[-1] == _point(30)

    def test_append_returns_written_history(self, tmp_path: Path) -> None:
        store = TrendStore(str(tmp_path / "trends.json"), limit=2)
        store.append(_point(1))
        store.append(_point(2))
        assert store.append(_point(3)) == [_point(2), _point(3)]

    def test_corrupt_history_is_never_overwritten(self, tmp_path: Path) -> None:
        path = tmp_path / "trends.json"
        path.write_text("{not json", encoding="utf-8")
        store = TrendStore(str(path))

        with pytest.raises(PersistenceFailure):
            store.append(_point(1))
        assert path.read_text(encoding="utf-8") == "{not json"

    def test_non_list_history_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "trends.json"
        path.write_text(json.dumps({"runs": []}), encoding="utf-8")
        with pytest.raises(PersistenceFailure):
            TrendStore(str(path)).load()

    def test_entries_with_bad_values_are_rejected_and_kept(self, tmp_path: Path) -> None:
        path = tmp_path / "trends.json"
        for content in ('[{"totalTests": "lots"}]', '[{"totalTests": 1, "percentiles": [1, 2]}]'):
            path.write_text(content, encoding="utf-8")
            store = TrendStore(str(path))

            with pytest.raises(PersistenceFailure) as excinfo:
                store.load()
            assert excinfo.value.path == str(path)
            with pytest.raises(PersistenceFailure):
                store.append(_point(1))
            assert path.read_text(encoding="utf-8") == content

    def test_unwritable_location_fails_explicitly(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        store = TrendStore(str(blocker / "trends.json"))

        with pytest.raises(PersistenceFailure) as excinfo:
            store.append(_point(1))
        assert excinfo.value.path == str(blocker / "trends.json")

    def test_failed_replace_keeps_previous_history(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "trends.json"
        store = TrendStore(str(path))
        store.append(_point(1))
        before = path.read_text(encoding="utf-8")

        def boom(src: str, dst: str) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(storage.os, "replace", boom)
        with pytest.raises(PersistenceFailure):
            store.append(_point(2))

        assert path.read_text(encoding="utf-8") == before
        assert sorted(os.listdir(tmp_path)) == ["trends.json"]

    def test_limit_must_be_positive(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            TrendStore(str(tmp_path / "trends.json"), limit=0)


class TestReportStore:
    def test_save_and_load(self, tmp_path: Path) -> None:
        store = ReportStore(str(tmp_path / "reports"))
        paths = store.save({"summary": {"totalTests": 1}}, {"summary": {}}, "<html></html>")

        assert set(paths) == {"report", "coverage", "dashboard"}
        assert store.load_report() == {"summary": {"totalTests": 1}}
        assert store.load_coverage() == {"summary": {}}
        assert store.load_dashboard() == "<html></html>"

    def test_nothing_saved_yet(self, tmp_path: Path) -> None:
        store = ReportStore(str(tmp_path / "reports"))
        assert store.load_report() is None
        assert store.load_dashboard() is None

    def test_atomic_write_creates_parent_dirs(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "out.json"
        atomic_write_json(str(target), [1, 2])
        assert json.loads(target.read_text(encoding="utf-8")) == [1, 2]


class TestEventLogReader:
    def test_jsonl_skips_invalid_lines(self) -> None:
        content = b'{"event": "start"}\nnot json\n\n{"event": "done"}\n'
        mode, events = EventLogReader.parse(content)
        assert mode == "jsonl"
        assert events == [{"event": "start"}, {"event": "done"}]

    def test_json_array(self) -> None:
        mode, events = EventLogReader.parse(b'[{"event": "start"}, 3, {"event": "done"}]')
        assert mode == "json_array"
        assert events == [{"event": "start"}, {"event": "done"}]

    def test_object_with_events_list(self) -> None:
        mode, events = EventLogReader.parse(b'{"events": [{"event": "start"}]}')
        assert mode == "json_object.events"
        assert events == [{"event": "start"}]

    def test_empty_content_rejected(self) -> None:
        with pytest.raises(ValueError):
            EventLogReader.parse(b"   ")
