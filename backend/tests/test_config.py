from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.config import DEFAULT_COVERAGE_DECLARATION, DEFAULT_TREND_LIMIT, load_declaration, load_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("REPORTS_DIR", "TREND_LIMIT", "COVERAGE_DECLARATION_FILE", "COVERAGE_RESET_PER_RUN", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()

    assert settings.reports_dir == "./reports"
    assert settings.trend_limit == DEFAULT_TREND_LIMIT == 30
    assert settings.coverage_declaration == DEFAULT_COVERAGE_DECLARATION
    assert settings.coverage_reset_per_run is False
    assert settings.trends_path.endswith("trends.json")


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    declaration = tmp_path / "decl.json"
    declaration.write_text(json.dumps({"/v2/items": ["get", "post"]}), encoding="utf-8")
    monkeypatch.setenv("REPORTS_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("TREND_LIMIT", "5")
    monkeypatch.setenv("COVERAGE_DECLARATION_FILE", str(declaration))
    monkeypatch.setenv("COVERAGE_RESET_PER_RUN", "yes")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()
    assert settings.reports_dir == str(tmp_path / "out")
    assert settings.trend_limit == 5
    assert settings.coverage_declaration == {"/v2/items": ["GET", "POST"]}
    assert settings.coverage_reset_per_run is True
    assert settings.log_level == "DEBUG"


def test_invalid_trend_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TREND_LIMIT", "0")
    with pytest.raises(ValueError):
        load_settings()


def test_declaration_must_be_an_object(tmp_path: Path) -> None:
    path = tmp_path / "decl.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_declaration(str(path))


def test_default_declaration_is_a_copy() -> None:
    declaration = load_declaration(None)
    declaration["/users"].append("POST")
    assert DEFAULT_COVERAGE_DECLARATION["/users"] == ["GET"]
