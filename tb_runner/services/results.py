"""Helpers for persisting finished reports."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime
from json import JSONEncoder
from pathlib import Path
from typing import Any

from tb_common.errors import ConfigurationError
from tb_runner.services.aggregator import Report


logger = logging.getLogger(__name__)

REPORT_FILENAME = "report.json"
CSV_FILENAME = "results.csv"


class DateTimeEncoder(JSONEncoder):
    """Custom JSON encoder that handles datetime and path objects."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def report_dir(output_dir: Path, run_id: str) -> Path:
    return output_dir / run_id


def persist_report(report: Report, output_dir: Path) -> Report:
    """Write ``report.json`` and ``results.csv``; return the report with its path."""
    target = report_dir(output_dir, report.run_id)
    target.mkdir(parents=True, exist_ok=True)
    report_path = target / REPORT_FILENAME
    tmp_path = report_path.with_suffix(".json.tmp")
    tmp_path.write_text(json.dumps(report.to_payload(), indent=2, cls=DateTimeEncoder))
    tmp_path.replace(report_path)
    logger.info("Saved report to %s", report_path)

    csv_path = target / CSV_FILENAME
    report.to_frame().to_csv(csv_path, index=False)
    logger.info("Saved results table to %s", csv_path)
    return replace(report, local_path=report_path)


def load_report(path: Path) -> Report:
    """Load a report from a ``report.json`` file or its run directory."""
    report_path = path / REPORT_FILENAME if path.is_dir() else path
    if not report_path.exists():
        raise ConfigurationError(f"Report not found: {report_path}", context={"path": report_path})
    try:
        payload = json.loads(report_path.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"Report is not valid JSON: {report_path}", context={"path": report_path}, cause=exc
        ) from exc
    if not isinstance(payload, dict) or "runId" not in payload:
        raise ConfigurationError(f"Not a report file: {report_path}", context={"path": report_path})
    try:
        report = Report.from_payload(payload)
    except (KeyError, ValueError, TypeError) as exc:
        raise ConfigurationError(
            f"Malformed report: {report_path}", context={"path": report_path}, cause=exc
        ) from exc
    return replace(report, local_path=report_path)
