from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

# JSONPlaceholder contract surface exercised by the bundled collection
DEFAULT_COVERAGE_DECLARATION: Dict[str, List[str]] = {
    "/users": ["GET"],
    "/users/:id": ["GET"],
    "/posts": ["GET", "POST"],
    "/posts/:id": ["GET", "PUT", "PATCH", "DELETE"],
    "/comments": ["GET", "POST"],
    "/comments/:id": ["GET", "DELETE"],
    "/albums": ["GET"],
    "/photos": ["GET"],
    "/todos": ["GET"],
}

DEFAULT_TREND_LIMIT = 30


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_declaration(path: Optional[str]) -> Dict[str, List[str]]:
    """Read a {pattern: [methods]} declaration file, or fall back to the default."""
    if not path:
        return {k: list(v) for k, v in DEFAULT_COVERAGE_DECLARATION.items()}
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"coverage declaration must be a JSON object: {path}")
    return {str(k): [str(m).upper() for m in v] for k, v in raw.items()}


@dataclass(frozen=True)
class Settings:
    reports_dir: str
    trend_limit: int = DEFAULT_TREND_LIMIT
    coverage_declaration: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_COVERAGE_DECLARATION.items()}
    )
    coverage_reset_per_run: bool = False
    log_level: str = "INFO"

    @property
    def trends_path(self) -> str:
        return os.path.join(self.reports_dir, "trends.json")


def load_settings() -> Settings:
    trend_limit = int(os.getenv("TREND_LIMIT", str(DEFAULT_TREND_LIMIT)))
    if trend_limit < 1:
        raise ValueError("TREND_LIMIT must be at least 1")
    return Settings(
        reports_dir=os.getenv("REPORTS_DIR", "./reports"),
        trend_limit=trend_limit,
        coverage_declaration=load_declaration(os.getenv("COVERAGE_DECLARATION_FILE")),
        coverage_reset_per_run=_env_bool("COVERAGE_RESET_PER_RUN", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
