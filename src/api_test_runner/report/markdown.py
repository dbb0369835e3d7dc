"""Markdown views of a TestReport."""

import json
from typing import Any

from api_test_runner.executor.models import TestResult
from api_test_runner.generator.models import TestCategory
from api_test_runner.report.models import TestReport
from api_test_runner.report.summary import percentage

CATEGORY_NAMES = {
    TestCategory.FUNCTIONAL: "Functional",
    TestCategory.VALIDATION: "Validation",
    TestCategory.BOUNDARY: "Boundary",
    TestCategory.EXCEPTION: "Exception",
    TestCategory.TRANSACTION: "Transaction",
    TestCategory.CONCURRENT: "Concurrent",
    TestCategory.PERFORMANCE: "Performance",
}

ERROR_KIND_NAMES = {
    "connection": "Connection errors",
    "timeout": "Timeouts",
    "assertion": "Assertion failures",
    "exception": "Exceptions",
    "unknown": "Unknown errors",
}

BODY_PREVIEW = 1000


def _json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _when(report: TestReport) -> str:
    return report.generated_at.strftime("%Y-%m-%d %H:%M:%S")


def _label(result: TestResult) -> str:
    endpoint = result.test_case.endpoint
    return f"{endpoint.method} {endpoint.path}"


def failure_kind(result: TestResult) -> str:
    """Error kind used to group a failed result."""
    if result.error is not None:
        return result.error.kind
    return "assertion" if result.failures else "unknown"


def analyze_failure(result: TestResult) -> list[str]:
    """Likely causes for a failed result."""
    notes = []
    kind = failure_kind(result)
    if kind == "connection":
        notes += ["Could not connect to the server; check that the service is running.",
                  "Check that base_url is configured correctly."]
    elif kind == "timeout":
        notes += ["The request timed out; the service may be responding slowly.",
                  "Consider raising the timeout or optimizing the endpoint."]
    elif kind == "assertion":
        notes.append("The actual result did not match the expectation.")
        notes += result.failures
    elif result.error is not None:
        notes.append("An unexpected error occurred.")

    status = result.response.status_code
    if status >= 500:
        notes.append("Server error (5xx); check the backend logs.")
    elif status >= 400:
        notes.append("Client error (4xx); check the request parameters.")
    return notes or ["Needs further investigation."]


def suggest_fix(result: TestResult) -> list[str]:
    """Canned remediation steps keyed off error kind and status code."""
    kind = result.error.kind if result.error else None
    status = result.response.status_code
    if kind == "connection":
        return ["Make sure the service is started.", "Check firewall settings.", "Verify network connectivity."]
    if kind == "timeout":
        return ["Increase the configured timeout.", "Check database query performance.",
                "Optimize the endpoint implementation."]
    if status == 401:
        return ["Check that the token is valid.", "Confirm the authentication credentials."]
    if status == 403:
        return ["Check the user's permissions.", "Confirm the endpoint's access-control configuration."]
    if status == 404:
        return ["Check that the endpoint path is correct.", "Confirm the endpoint is deployed."]
    if status == 500:
        return ["Read the server error log.", "Look for null-pointer errors.", "Verify the database operations."]
    return ["See the detailed logs for analysis."]


def render_summary(report: TestReport) -> str:
    """The primary human-readable report (report.md)."""
    summary = report.summary
    latency = summary.latency
    lines = [
        f"# {report.name}",
        "",
        "## Overview",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Generated | {_when(report)} |",
        f"| Target | {report.config.base_url} |",
        f"| Total duration | {summary.duration}ms |",
        f"| Pass rate | {summary.pass_rate} |",
        f"| Latency p50 / p90 / p99 | {latency.p50}ms / {latency.p90}ms / {latency.p99}ms |",
        "",
        "## Results",
        "",
        "| Status | Count | Share |",
        "|--------|-------|-------|",
        f"| Passed | {summary.passed} | {percentage(summary.passed, summary.total)} |",
        f"| Failed | {summary.failed} | {percentage(summary.failed, summary.total)} |",
        f"| Skipped | {summary.skipped} | {percentage(summary.skipped, summary.total)} |",
        f"| **Total** | **{summary.total}** | **100%** |",
        "",
        "## By category",
        "",
        "| Category | Total | Passed | Failed | Pass rate |",
        "|----------|-------|--------|--------|-----------|",
    ]
    for category, stats in summary.categories.items():
        rate = percentage(stats.passed, stats.total) if stats.total else "N/A"
        lines.append(f"| {CATEGORY_NAMES[category]} | {stats.total} | {stats.passed} | {stats.failed} | {rate} |")

    failed = [r for r in report.results if not r.passed]
    if failed:
        lines += ["", f"## Failed cases ({len(failed)})", ""]
        for result in failed:
            lines += [
                f"### {result.test_case.name}",
                "",
                f"- **Endpoint**: `{_label(result)}`",
                f"- **Category**: {CATEGORY_NAMES[result.test_case.category]}",
                f"- **Duration**: {result.duration}ms",
            ]
            if result.error:
                lines.append(f"- **Error kind**: {result.error.kind}")
                lines.append(f"- **Error message**: {result.error.message}")
            for reason in result.failures:
                lines.append(f"- **Check**: {reason}")
            lines += [
                "",
                "**Request input**:",
                "```json",
                _json(result.test_case.input.model_dump(exclude_defaults=True)),
                "```",
                "",
                "**Response body**:",
                "```json",
                _json(result.response.body)[:BODY_PREVIEW],
                "```",
                "",
                "---",
                "",
            ]

    passed = [r for r in report.results if r.passed]
    lines += [
        "",
        f"## Passed cases ({len(passed)})",
        "",
        "| Case | Endpoint | Category | Duration |",
        "|------|----------|----------|----------|",
    ]
    for result in passed:
        lines.append(f"| {result.test_case.name} | `{_label(result)}` | "
                     f"{CATEGORY_NAMES[result.test_case.category]} | {result.duration}ms |")

    lines += [
        "",
        "## Endpoint coverage",
        "",
        "| Endpoint | Method | Cases | Status |",
        "|----------|--------|-------|--------|",
    ]
    for endpoint in report.endpoints:
        covering = [
            r for r in report.results
            if r.test_case.endpoint.path == endpoint.path and r.test_case.endpoint.method == endpoint.method
        ]
        if not covering:
            status = "Not tested"
        elif all(r.passed for r in covering):
            status = "Passed"
        else:
            status = "Failed"
        lines.append(f"| {endpoint.path} | {endpoint.method} | {len(covering)} | {status} |")

    return "\n".join(lines) + "\n"


def render_detailed_logs(report: TestReport) -> str:
    """Per-case trace (detailed-logs.md)."""
    lines = ["# Detailed test logs", "", f"Generated: {_when(report)}", ""]
    for result in report.results:
        request, response = result.request, result.response
        lines += [
            f"## {'PASS' if result.passed else 'FAIL'} {result.test_case.name}",
            "",
            f"**Time**: {result.start_time.strftime('%H:%M:%S')} - "
            f"{result.end_time.strftime('%H:%M:%S')} ({result.duration}ms)",
            "",
            "### Request",
            "```",
            f"{request.method} {request.url}",
            f"Headers: {_json(request.headers)}",
        ]
        if request.body is not None:
            lines.append(f"Body: {_json(request.body)}")
        if request.files:
            lines.append(f"Files: {', '.join(request.files)}")
        lines += [
            "```",
            "",
            "### Response",
            "```",
            f"Status: {response.status_code} {response.status_text}",
            f"Response Time: {response.response_time}ms",
            f"Body: {_json(response.body)}",
            "```",
            "",
        ]
        if result.data_results:
            lines.append("### Data queries")
            for data in result.data_results:
                lines += ["```sql", data.sql, "```",
                          f"Result: {json.dumps(data.result, default=str)} "
                          f"({data.row_count} rows, {data.execution_time}ms)", ""]
        if result.logs:
            lines += ["### Execution log", "```", *result.logs, "```", ""]
        lines += ["---", ""]
    return "\n".join(lines) + "\n"


def render_failed_cases(report: TestReport) -> str:
    """Failures grouped by error kind with analysis (failed-cases.md)."""
    failed = [r for r in report.results if not r.passed]
    lines = ["# Failed case analysis", "", f"{len(failed)} failed case(s)", ""]
    if not failed:
        lines.append("All test cases passed.")
        return "\n".join(lines) + "\n"

    groups: dict[str, list[TestResult]] = {}
    for result in failed:
        groups.setdefault(failure_kind(result), []).append(result)

    for kind, results in groups.items():
        lines += [f"## {ERROR_KIND_NAMES.get(kind, kind)} ({len(results)})", ""]
        for result in results:
            message = result.error.message if result.error else "; ".join(result.failures) or "unknown error"
            lines += [
                f"### {result.test_case.name}",
                "",
                f"- **Endpoint**: `{_label(result)}`",
                f"- **Error message**: {message}",
                "",
                "**Analysis**:",
                *(f"- {note}" for note in analyze_failure(result)),
                "",
                "**Suggested fix**:",
                *(f"{i}. {step}" for i, step in enumerate(suggest_fix(result), 1)),
                "",
                "---",
                "",
            ]
    return "\n".join(lines) + "\n"


def render_sql_queries(report: TestReport) -> str:
    """Every executed setup statement and data assertion (sql-queries.md)."""
    lines = ["# SQL queries", "", f"Generated: {_when(report)}", ""]
    count = 0
    for result in report.results:
        if not result.data_results:
            continue
        lines += [f"## {result.test_case.name}", ""]
        for data in result.data_results:
            count += 1
            outcome = "n/a" if data.passed is None else ("passed" if data.passed else "failed")
            lines += [
                f"### SQL #{count} ({data.phase})",
                "```sql",
                data.sql,
                "```",
                "",
                "| Metric | Value |",
                "|--------|-------|",
                f"| Rows | {data.row_count} |",
                f"| Execution time | {data.execution_time}ms |",
                f"| Outcome | {outcome} |",
                "",
                "**Result**:",
                "```json",
                _json(data.result),
                "```",
                "",
            ]
    if count == 0:
        lines.append("No SQL statements were executed in this run.")
    else:
        lines += ["---", "", f"{count} SQL statement(s) executed."]
    return "\n".join(lines) + "\n"
