"""Tests for the CSV report sink."""

import csv
from datetime import datetime

import pytest

from src.primary_user.reconcile.adapters.csv_report_writer import CsvReportSink, report_filename
from src.primary_user.reconcile.domain.entities import (
    REPORT_COLUMNS,
    DeviceRecord,
    FailureReason,
    ReconciliationOutcome,
    TargetUser,
)
from src.primary_user.reconcile.domain.report import OutcomeReporter


def read_rows(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def test_report_filename():
    assert report_filename(datetime(2024, 3, 5, 9, 7, 1)) == "PrimaryUserReport_20240305_090701.csv"


def test_header_written_on_creation(tmp_path):
    sink = CsvReportSink.in_directory(tmp_path / "reports", datetime(2024, 1, 1))

    assert sink.path.name == "PrimaryUserReport_20240101_000000.csv"
    assert read_rows(sink.path) == [REPORT_COLUMNS]
    sink.close()


def test_rows_flushed_as_written(tmp_path):
    sink = CsvReportSink(tmp_path / "report.csv")
    reporter = OutcomeReporter(sink)

    reporter.append(ReconciliationOutcome(
        device=DeviceRecord("m-1", "d-1", "LAPTOP, 01"),
        current_primary_user="bob@contoso.com",
        target_user=TargetUser.resolved("alice@contoso.com"),
        was_modified=True,
        message="Primary user set to alice@contoso.com",
    ))

    # Visible before the sink is closed
    assert read_rows(sink.path)[1] == [
        "m-1", "LAPTOP, 01", "bob@contoso.com", "alice@contoso.com", "Yes",
        "Primary user set to alice@contoso.com",
    ]

    reporter.append(ReconciliationOutcome(
        device=DeviceRecord("m-2", "d-2", "LAPTOP-02"),
        current_primary_user=None,
        target_user=TargetUser.failed(FailureReason.NO_SIGN_IN_ACTIVITY),
        message="No qualifying sign-in activity in window",
    ))
    reporter.finalize()

    rows = read_rows(sink.path)
    assert len(rows) == 3
    assert rows[2][2:5] == ["None", "Failed", "No"]
    assert sink.closed
    assert sink.rows_written == 2


def test_write_after_close_raises(tmp_path):
    sink = CsvReportSink(tmp_path / "report.csv")
    sink.close()
    sink.close()

    with pytest.raises(RuntimeError):
        sink.write(ReconciliationOutcome(
            device=DeviceRecord("m-1", "d-1"),
            current_primary_user=None,
            target_user=TargetUser(),
        ))
