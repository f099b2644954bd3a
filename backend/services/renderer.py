"""
ReportRenderer Class - Projects run state into artifacts

Builds the structured report, the HTML dashboard and the console summary.
Nothing here touches storage; the caller decides where artifacts go.
"""

from html import escape
from typing import Any, Dict, List, Optional, Sequence

from models.data_models import (
    CoverageReport,
    FailureRecord,
    PercentileSummary,
    RenderedArtifacts,
    RunMetrics,
    TrendPoint,
)
from utils.helpers import css_token, format_ms, round2

RULE = "=" * 60
THIN_RULE = "-" * 60

_DASHBOARD_CSS = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: #f5f5f5; padding: 20px; }
        .container { max-width: 1200px; margin: 0 auto; }
        .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; border-radius: 10px; margin-bottom: 20px; }
        .header h1 { font-size: 2em; margin-bottom: 10px; }
        .metrics { display: grid; grid-template-columns: repeat(auto-fit, minmax(250px, 1fr)); gap: 20px; margin-bottom: 20px; }
        .metric-card { background: white; padding: 20px; border-radius: 10px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
        .metric-card h3 { color: #666; font-size: 0.9em; margin-bottom: 10px; text-transform: uppercase; }
        .metric-card .value { font-size: 2em; font-weight: bold; color: #333; }
        .metric-card.success .value { color: #4caf50; }
        .metric-card.danger .value { color: #f44336; }
        .metric-card.info .value { color: #2196f3; }
        .section { background: white; padding: 20px; border-radius: 10px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); margin-bottom: 20px; }
        .section h2 { margin-bottom: 15px; color: #333; }
        table { width: 100%; border-collapse: collapse; }
        table th { background: #f5f5f5; padding: 12px; text-align: left; font-weight: 600; color: #666; }
        table td { padding: 12px; border-top: 1px solid #eee; }
        .status-ok { color: #4caf50; font-weight: bold; }
        .status-warn { color: #ff9800; font-weight: bold; }
        .status-error { color: #f44336; font-weight: bold; }
        .method { display: inline-block; padding: 4px 8px; border-radius: 4px; font-size: 0.85em; font-weight: bold; }
        .method-GET { background: #e3f2fd; color: #1976d2; }
        .method-POST { background: #e8f5e9; color: #388e3c; }
        .method-PUT { background: #fff3e0; color: #f57c00; }
        .method-PATCH { background: #f3e5f5; color: #7b1fa2; }
        .method-DELETE { background: #ffebee; color: #c62828; }
        .failure { background: #ffebee; padding: 10px; border-left: 4px solid #f44336; margin-bottom: 10px; border-radius: 4px; }
        .failure-test { font-weight: bold; color: #c62828; }
        .failure-error { color: #666; margin-top: 5px; }
        .failure-request { color: #999; font-size: 0.9em; margin-top: 5px; }
"""


def _num(x: Optional[float], suffix: str = "ms") -> str:
    return f"{x:.2f}{suffix}" if x is not None else "n/a"


def _status_class(status: int) -> str:
    if status == 0 or status >= 500:
        return "status-error"
    if status >= 400:
        return "status-warn"
    return "status-ok"


class ReportRenderer:
    """
    Renders one finished run.
    Responsibilities:
    - Structured (JSON-ready) report
    - Self-contained HTML dashboard with every untrusted string escaped
    - Plain-text console summary
    """

    def __init__(self, title: str = "API Test Dashboard", subtitle: str = "API Automation Results"):
        self.title = title
        self.subtitle = subtitle

    def render(
        self,
        metrics: RunMetrics,
        percentiles: PercentileSummary,
        failures: Optional[Sequence[FailureRecord]] = None,
        trend: Optional[Sequence[TrendPoint]] = None,
        coverage: Optional[CoverageReport] = None,
    ) -> RenderedArtifacts:
        failure_list = list(metrics.failures if failures is None else failures)
        report = self.structured_report(metrics, percentiles, failure_list)
        return RenderedArtifacts(
            structured_report=report,
            dashboard_document=self.dashboard(report, percentiles, trend, coverage),
            console_summary=self.console_summary(metrics),
        )

    # ── structured report ────────────────────────────────────────────────────

    @staticmethod
    def structured_report(
        metrics: RunMetrics,
        percentiles: PercentileSummary,
        failures: List[FailureRecord],
    ) -> Dict[str, Any]:
        summary = TrendPoint.from_run(metrics, percentiles).summary_dict()
        return {
            "summary": summary,
            "requests": [r.to_dict() for r in metrics.requests],
            "failures": [f.to_dict() for f in failures],
            "performance": {
                "responseTimes": list(metrics.response_times),
                "percentiles": percentiles.percentiles(),
            },
        }

    # ── dashboard ────────────────────────────────────────────────────────────

    def dashboard(
        self,
        report: Dict[str, Any],
        percentiles: PercentileSummary,
        trend: Optional[Sequence[TrendPoint]] = None,
        coverage: Optional[CoverageReport] = None,
    ) -> str:
        summary = report["summary"]
        failed_card = "danger" if summary["failed"] > 0 else "success"

        sections = [
            self._metric_cards(summary, failed_card),
            self._percentile_section(percentiles),
            self._failure_section(report["failures"]),
            self._request_section(report["requests"]),
        ]
        if trend:
            sections.append(self._trend_section(trend))
        if coverage is not None:
            sections.append(self._coverage_section(coverage))

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(self.title)}</title>
    <style>{_DASHBOARD_CSS}    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{escape(self.title)}</h1>
            <p>{escape(self.subtitle)}</p>
            <p>Generated: {escape(str(summary["timestamp"] or ""))}</p>
        </div>
{"".join(s for s in sections if s)}
    </div>
</body>
</html>
"""

    @staticmethod
    def _metric_cards(summary: Dict[str, Any], failed_card: str) -> str:
        return f"""
        <div class="metrics">
            <div class="metric-card success"><h3>Pass Rate</h3><div class="value">{escape(summary["passRate"])}</div></div>
            <div class="metric-card {failed_card}"><h3>Tests Passed</h3><div class="value">{summary["passed"]}/{summary["totalTests"]}</div></div>
            <div class="metric-card info"><h3>Total Requests</h3><div class="value">{summary["totalRequests"]}</div></div>
            <div class="metric-card info"><h3>Failed Requests</h3><div class="value">{summary["failedRequests"]}</div></div>
            <div class="metric-card info"><h3>Avg Response Time</h3><div class="value">{_num(summary["averageResponseTimeMs"])}</div></div>
        </div>
"""

    @staticmethod
    def _percentile_section(percentiles: PercentileSummary) -> str:
        rows = [
            ("Minimum", percentiles.min),
            ("50th Percentile (Median)", percentiles.p50),
            ("75th Percentile", percentiles.p75),
            ("90th Percentile", percentiles.p90),
            ("95th Percentile", percentiles.p95),
            ("99th Percentile", percentiles.p99),
            ("Maximum", percentiles.max),
        ]
        body = "".join(f"<tr><td>{label}</td><td>{_num(value)}</td></tr>" for label, value in rows)
        return f"""
        <div class="section">
            <h2>Performance Metrics</h2>
            <table><thead><tr><th>Percentile</th><th>Response Time</th></tr></thead><tbody>{body}</tbody></table>
        </div>
"""

    @staticmethod
    def _failure_section(failures: List[Dict[str, Any]]) -> str:
        if not failures:
            return ""
        items = "".join(
            f"""
            <div class="failure">
                <div class="failure-test">{escape(str(f["test"]))}</div>
                <div class="failure-error">{escape(str(f["error"]))}</div>
                <div class="failure-request">Request: {escape(str(f["request"]))}</div>
            </div>"""
            for f in failures
        )
        return f"""
        <div class="section">
            <h2>Failures ({len(failures)})</h2>{items}
        </div>
"""

    @staticmethod
    def _request_section(requests: List[Dict[str, Any]]) -> str:
        rows = "".join(
            f"""
                <tr>
                    <td>{escape(str(r["name"]))}</td>
                    <td><span class="method method-{css_token(r["method"])}">{escape(str(r["method"]))}</span></td>
                    <td>{escape(str(r["url"]))}</td>
                    <td class="{_status_class(int(r["status"]))}">{int(r["status"])}</td>
                    <td>{_num(r["responseTime"])}</td>
                    <td>{r["size"] / 1024:.2f} KB</td>
                </tr>"""
            for r in requests
        )
        return f"""
        <div class="section">
            <h2>Request Details</h2>
            <table>
                <thead><tr><th>Request</th><th>Method</th><th>URL</th><th>Status</th><th>Response Time</th><th>Size</th></tr></thead>
                <tbody>{rows}
                </tbody>
            </table>
        </div>
"""

    @staticmethod
    def _trend_section(trend: Sequence[TrendPoint]) -> str:
        rows = "".join(
            f"<tr><td>{escape(str(p.timestamp or ''))}</td><td>{escape(p.pass_rate)}</td>"
            f"<td>{p.passed}/{p.total_tests}</td><td>{p.failed_requests}/{p.total_requests}</td>"
            f"<td>{_num(p.average_response_time_ms)}</td><td>{_num(p.percentiles.get('p95'))}</td></tr>"
            for p in reversed(list(trend))
        )
        return f"""
        <div class="section">
            <h2>Trend (last {len(trend)} runs)</h2>
            <table>
                <thead><tr><th>Run</th><th>Pass Rate</th><th>Tests</th><th>Failed Requests</th><th>Avg</th><th>p95</th></tr></thead>
                <tbody>{rows}</tbody>
            </table>
        </div>
"""

    @staticmethod
    def _coverage_section(coverage: CoverageReport) -> str:
        rows = "".join(
            f"<tr><td>{escape(e.endpoint)}</td><td>{e.tested_methods}/{e.total_methods}</td>"
            f"<td>{escape(e.coverage)}</td><td>{escape(', '.join(e.untested))}</td></tr>"
            for e in coverage.endpoints
        )
        return f"""
        <div class="section">
            <h2>Endpoint Coverage ({escape(coverage.overall_coverage)})</h2>
            <table>
                <thead><tr><th>Endpoint</th><th>Methods</th><th>Coverage</th><th>Untested</th></tr></thead>
                <tbody>{rows}</tbody>
            </table>
        </div>
"""

    # ── console ──────────────────────────────────────────────────────────────

    @staticmethod
    def console_summary(metrics: RunMetrics) -> str:
        pass_rate = metrics.pass_rate
        if metrics.total_tests == 0:
            pass_rate += " (no tests executed)"
        lines = [
            "",
            RULE,
            "TEST EXECUTION SUMMARY",
            RULE,
            f"Total Tests:          {metrics.total_tests}",
            f"Passed:               {metrics.passed_tests}",
            f"Failed:               {metrics.failed_tests}",
            f"Pass Rate:            {pass_rate}",
            THIN_RULE,
            f"Total Requests:       {metrics.total_requests}",
            f"Failed Requests:      {metrics.failed_requests}",
            THIN_RULE,
            f"Total Time:           {metrics.total_time_seconds:.2f}s",
            f"Avg Response Time:    {format_ms(round2(metrics.average_response_time_ms))}",
            f"Min Response Time:    {format_ms(metrics.min_response_time_ms)}",
            f"Max Response Time:    {format_ms(metrics.max_response_time_ms)}",
            RULE,
        ]
        return "\n".join(lines) + "\n"


def render_coverage_console(report: CoverageReport) -> str:
    lines = [
        "",
        RULE,
        "API COVERAGE REPORT",
        RULE,
        f"Overall Coverage:     {report.overall_coverage}",
        f"Total Endpoints:      {report.total_endpoints}",
        f"Total Methods:        {report.total_methods}",
        f"Tested Methods:       {report.tested_methods}",
        THIN_RULE,
    ]
    for ep in report.endpoints:
        lines.append(f"{ep.endpoint:<20} {ep.coverage:>7}")
        if ep.untested:
            lines.append(f"  Untested: {', '.join(ep.untested)}")
    lines.append(RULE)
    return "\n".join(lines) + "\n"


def render_trend_console(trend: Sequence[TrendPoint]) -> str:
    if not trend:
        return "No runs recorded yet.\n"
    lines = [f"{'Run':<34} {'Pass Rate':>9} {'Tests':>9} {'Avg':>12} {'p95':>12}"]
    for p in trend:
        lines.append(
            f"{str(p.timestamp or ''):<34} {p.pass_rate:>9} {f'{p.passed}/{p.total_tests}':>9} "
            f"{_num(p.average_response_time_ms):>12} {_num(p.percentiles.get('p95')):>12}"
        )
    return "\n".join(lines) + "\n"
