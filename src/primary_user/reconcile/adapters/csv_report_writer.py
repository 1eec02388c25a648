"""CSV report sink adapter.

This adapter implements IReportSink. The file is created with its header as
soon as the sink is built and every outcome is flushed as it arrives, so the
report on disk always reflects the devices processed so far.
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from ..domain.entities import REPORT_COLUMNS, ReconciliationOutcome
from ..domain.ports import IReportSink

logger = logging.getLogger(__name__)

REPORT_PREFIX = "PrimaryUserReport"


def report_filename(started_at: Optional[datetime] = None) -> str:
    """Timestamped report file name, e.g. PrimaryUserReport_20240101_093000.csv"""
    started_at = started_at or datetime.now()
    return f"{REPORT_PREFIX}_{started_at.strftime('%Y%m%d_%H%M%S')}.csv"


class CsvReportSink(IReportSink):
    """Writes one CSV row per reconciliation outcome."""

    def __init__(self, path: Union[str, os.PathLike]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, "w", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(self._file, fieldnames=REPORT_COLUMNS)
        self._writer.writeheader()
        self._file.flush()
        self.rows_written = 0
        logger.info(f"Writing report to {self.path}")

    @classmethod
    def in_directory(
        cls,
        output_dir: Union[str, os.PathLike],
        started_at: Optional[datetime] = None,
    ) -> "CsvReportSink":
        """Create a fresh timestamped report in output_dir."""
        return cls(Path(output_dir) / report_filename(started_at))

    @property
    def closed(self) -> bool:
        return self._file.closed

    def write(self, outcome: ReconciliationOutcome) -> None:
        if self._file.closed:
            raise RuntimeError(f"Report {self.path} is already closed")
        self._writer.writerow(outcome.to_row())
        self._file.flush()
        self.rows_written += 1

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
            logger.info(f"Report closed: {self.rows_written} rows in {self.path}")
