from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from typing import List, Optional

from core.config import Settings, configure_logging, load_settings
from core.errors import IncompleteRun, PersistenceFailure, UnknownEventKind
from services.coverage import CoverageTracker
from services.ingestor import EventIngestor
from services.pipeline import ConsoleProgress, build_session, replay, split_event
from services.renderer import render_coverage_console, render_trend_console
from services.storage import EventLogReader, ReportStore, TrendStore, atomic_write_json

EXIT_OK = 0
EXIT_TEST_FAILURES = 1
EXIT_BAD_INPUT = 2
EXIT_PERSISTENCE = 3


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build API test reports from recorded runner events")
    parser.add_argument("--reports-dir", default=None, help="overrides REPORTS_DIR")
    parser.add_argument("--log-level", default=None, help="overrides LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p_replay = sub.add_parser("replay", help="replay one or more recorded runs")
    p_replay.add_argument("files", nargs="+")
    p_replay.add_argument("--quiet", action="store_true", help="suppress per-event progress lines")
    p_replay.add_argument(
        "--fail-on-test-failure",
        action="store_true",
        help="exit non-zero when any assertion or request failed",
    )

    p_cov = sub.add_parser("coverage", help="coverage of recorded runs against the declaration")
    p_cov.add_argument("files", nargs="+")
    p_cov.add_argument("--write", action="store_true", help="also write coverage.json")
    p_cov.add_argument("--json", action="store_true", dest="json_output")

    p_trends = sub.add_parser("trends", help="print the stored trend history")
    p_trends.add_argument("--json", action="store_true", dest="json_output")

    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings()
    overrides = {}
    if args.reports_dir:
        overrides["reports_dir"] = args.reports_dir
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def cmd_replay(args: argparse.Namespace, settings: Settings) -> int:
    coverage = CoverageTracker(settings.coverage_declaration)
    progress = None if args.quiet else ConsoleProgress.to_stream(sys.stdout)
    exit_code = EXIT_OK

    for path in args.files:
        try:
            _, events = EventLogReader.read_file(path)
        except (OSError, ValueError) as exc:
            print(f"Cannot read {path}: {exc}", file=sys.stderr)
            return EXIT_BAD_INPUT

        session = build_session(settings, coverage, progress=progress, console=sys.stdout.write)
        try:
            outcome = replay(session, events)
        except (IncompleteRun, UnknownEventKind) as exc:
            print(f"{path}: {exc.message}", file=sys.stderr)
            return EXIT_BAD_INPUT
        except PersistenceFailure as exc:
            # Summary was already printed by the session
            print(f"Reports for {path} were not saved: {exc.message}", file=sys.stderr)
            return EXIT_PERSISTENCE

        print(f"\nReports generated in: {settings.reports_dir}/")
        for name in sorted(outcome.paths):
            print(f"   - {outcome.paths[name]}")

        summary = outcome.artifacts.structured_report["summary"]
        if args.fail_on_test_failure and (summary["failed"] or summary["failedRequests"]):
            exit_code = EXIT_TEST_FAILURES

    print(render_coverage_console(coverage.report()))
    return exit_code


def cmd_coverage(args: argparse.Namespace, settings: Settings) -> int:
    coverage = CoverageTracker(settings.coverage_declaration)
    for path in args.files:
        try:
            _, events = EventLogReader.read_file(path)
        except (OSError, ValueError) as exc:
            print(f"Cannot read {path}: {exc}", file=sys.stderr)
            return EXIT_BAD_INPUT
        # Standalone tracker: only request completions reach it
        ingestor = EventIngestor()
        ingestor.subscribe(coverage.observe)
        for raw in events:
            kind, payload = split_event(raw)
            try:
                ingestor.handle(kind, payload)
            except UnknownEventKind as exc:
                print(f"{path}: {exc.message}", file=sys.stderr)
                return EXIT_BAD_INPUT

    report = coverage.report()
    if args.write:
        try:
            atomic_write_json(ReportStore(settings.reports_dir).coverage_path, report.to_dict())
        except PersistenceFailure as exc:
            print(render_coverage_console(report))
            print(f"Coverage was not saved: {exc.message}", file=sys.stderr)
            return EXIT_PERSISTENCE

    if args.json_output:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(render_coverage_console(report))
    return EXIT_OK


def cmd_trends(args: argparse.Namespace, settings: Settings) -> int:
    store = TrendStore(settings.trends_path, limit=settings.trend_limit)
    try:
        history = store.load()
    except PersistenceFailure as exc:
        print(exc.message, file=sys.stderr)
        return EXIT_PERSISTENCE
    if args.json_output:
        print(json.dumps([p.to_dict() for p in history], indent=2))
    else:
        print(render_trend_console(history), end="")
    return EXIT_OK


COMMANDS = {
    "replay": cmd_replay,
    "coverage": cmd_coverage,
    "trends": cmd_trends,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = _settings(args)
    configure_logging(settings.log_level)
    return COMMANDS[args.command](args, settings)


if __name__ == "__main__":
    sys.exit(main())
