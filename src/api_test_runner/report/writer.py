"""Persist TestReports as Markdown and JSON artifacts."""

import logging
from pathlib import Path

from api_test_runner.config import STATE_DIR, ConfigError
from api_test_runner.report.markdown import (
    render_detailed_logs,
    render_failed_cases,
    render_sql_queries,
    render_summary,
)
from api_test_runner.report.models import TestReport

logger = logging.getLogger(__name__)

REPORTS_DIR = "reports"
REPORT_JSON = "report.json"

ARTIFACTS = {
    "report.md": render_summary,
    "detailed-logs.md": render_detailed_logs,
    "failed-cases.md": render_failed_cases,
    "sql-queries.md": render_sql_queries,
}


def reports_root(workspace: Path) -> Path:
    return workspace / STATE_DIR / REPORTS_DIR


class ReportWriter:
    """Writes one directory of five artifacts per report."""

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)

    def save(self, report: TestReport) -> Path:
        """Write all artifacts and return the new report directory.

        Raises ConfigError if the workspace does not exist; OSError from the
        filesystem propagates.
        """
        if not self.workspace.is_dir():
            raise ConfigError(f"Workspace directory not found: {self.workspace}")

        report_dir = self._new_report_dir(report)
        (report_dir / REPORT_JSON).write_text(report.model_dump_json(indent=2), encoding="utf-8")
        for file_name, render in ARTIFACTS.items():
            (report_dir / file_name).write_text(render(report), encoding="utf-8")

        logger.info("Report %s written to %s", report.id, report_dir)
        return report_dir

    def _new_report_dir(self, report: TestReport) -> Path:
        root = reports_root(self.workspace)
        root.mkdir(parents=True, exist_ok=True)
        stamp = report.generated_at.strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3]
        base = f"report_{stamp}"
        candidate, n = root / base, 1
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                candidate = root / f"{base}_{n}"
                n += 1


def load_report(path: Path) -> TestReport:
    """Read a report back from its directory or its report.json."""
    path = Path(path)
    if path.is_dir():
        path = path / REPORT_JSON
    return TestReport.model_validate_json(path.read_text(encoding="utf-8"))


def list_reports(workspace: Path) -> list[Path]:
    """Stored report directories, newest first."""
    root = reports_root(Path(workspace))
    if not root.is_dir():
        return []
    dirs = [p for p in root.iterdir() if p.is_dir() and (p / REPORT_JSON).exists()]
    return sorted(dirs, key=lambda p: p.name, reverse=True)
