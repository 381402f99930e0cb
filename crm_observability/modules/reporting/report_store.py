"""File-backed persistence for scheduled report jobs and rendered snapshots.

Job definitions are kept in a single JSON document. Load and save failures are
logged and never raised: the in-memory job list stays authoritative for the
lifetime of the process.
"""

import asyncio
import json
import re
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from crm_observability.logger import logger

from .schemas import ReportConfig, ReportData, ScheduledReport

_REPORT_LIST = TypeAdapter(List[ScheduledReport])


class ScheduledReportRepository:
    """JSON file store for scheduled report definitions.

    Example:
        repository = ScheduledReportRepository("./data/scheduled_reports.json")
        reports = repository.load()
        repository.save(reports)
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> List[ScheduledReport]:
        """Read persisted jobs; returns an empty list on a missing or unreadable file."""
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return _REPORT_LIST.validate_python(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Error loading scheduled reports from {self.path}: {e}")
            return []

    def save(self, reports: List[ScheduledReport]) -> bool:
        """Overwrite the file with the given jobs.

        Returns:
            False if the write failed
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [report.model_dump(mode="json") for report in reports]
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            tmp_path.replace(self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving scheduled reports to {self.path}: {e}")
            return False


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "report"


class JsonReportRenderer:
    """Default rendering collaborator: writes the report snapshot as JSON.

    The requested format is recorded in the document but no PDF or Excel
    layout is produced. Any exception propagates to the caller so the run is
    marked failed.
    """

    def __init__(self, output_dir: str = "./data/reports"):
        self.output_dir = Path(output_dir)

    async def __call__(self, config: ReportConfig, data: ReportData) -> Optional[str]:
        """Render a report.

        Args:
            config: Rendering options, with the date range filled in
            data: Report snapshot

        Returns:
            Path of the written file
        """
        stamp = data.metadata.generated_at.strftime("%Y%m%dT%H%M%S")
        file_path = self.output_dir / f"{_slugify(config.title)}_{stamp}.json"
        document = {
            "config": config.model_dump(mode="json"),
            "data": data.model_dump(mode="json"),
        }

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, file_path, document)
        logger.debug(f"Report written to {file_path}")
        return str(file_path)

    def _write(self, file_path: Path, document: dict) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
