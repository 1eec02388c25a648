#!/usr/bin/env python3
"""Tests for the command-line entry point."""

import csv
import logging
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
import main
from src.primary_user.reconcile.domain.entities import REPORT_COLUMNS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SIGNIN_WINDOW_DAYS", "SIGNIN_APP_FILTER", "REPORT_OUTPUT_DIR", "DRY_RUN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def graph():
    """Patch out authentication and the HTTP layer."""
    client = MagicMock()
    client.get = AsyncMock()
    client.fetch_all = AsyncMock(return_value=[])
    client.post = AsyncMock()

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=None)

    with patch("main.TokenManager"), patch("main.GraphClient", return_value=context):
        yield client


def reports(directory):
    return sorted(directory.glob("PrimaryUserReport_*.csv"))


class TestArguments:

    def test_group_or_input_required(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args([])

    def test_group_and_input_exclusive(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["--group", "g", "--input", "f.csv"])

    def test_defaults(self):
        args = main.build_parser().parse_args(["--group", "Laptops"])
        assert args.group == "Laptops"
        assert args.days is None
        assert not args.dry_run

    @pytest.mark.parametrize("argv", [
        ["--group", ""],
        ["--group", "   "],
        ["--input", ""],
        ["--group", "g", "--app-filter", ""],
    ])
    def test_empty_values_rejected(self, argv, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main.main(argv)
        assert exc_info.value.code == 2
        assert "must not be empty" in capsys.readouterr().err


class TestRun:

    def test_malformed_header_leaves_header_only_report(self, tmp_path, graph):
        input_file = tmp_path / "devices.csv"
        input_file.write_text("Serial,Name\nSN1,LAPTOP-01\n")

        code = main.main(["--input", str(input_file), "--output-dir", str(tmp_path)])

        assert code == 1
        [report] = reports(tmp_path)
        with open(report, newline="") as f:
            assert list(csv.reader(f)) == [REPORT_COLUMNS]
        graph.get.assert_not_called()
        graph.fetch_all.assert_not_called()

    def test_missing_input_file(self, tmp_path, graph):
        code = main.main(["--input", str(tmp_path / "nope.csv"), "--output-dir", str(tmp_path)])
        assert code == 1

    def test_missing_group_aborts(self, tmp_path, graph):
        graph.fetch_all.return_value = []

        code = main.main(["--group", "Nope", "--output-dir", str(tmp_path)])

        assert code == 1
        assert len(reports(tmp_path)) == 1

    def test_abort_logs_error_details(self, tmp_path, graph, caplog):
        graph.fetch_all.return_value = []
        caplog.set_level(logging.DEBUG, logger="main")

        code = main.main(["--group", "Nope", "--output-dir", str(tmp_path)])

        assert code == 1
        assert "Group 'Nope' not found" in caplog.text
        [details] = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Abort details:")]
        assert "'code': 'GROUP_NOT_FOUND'" in details
        assert "'group_name': 'Nope'" in details
        assert "'recoverable': False" in details

    def test_invalid_window(self, tmp_path, graph):
        code = main.main(["--group", "g", "--days", "0", "--output-dir", str(tmp_path)])
        assert code == 1

    def test_completed_run(self, tmp_path, graph):
        input_file = tmp_path / "devices.csv"
        input_file.write_text("ManagedDeviceId,DeviceName\nm-1,LAPTOP-01\n")

        async def get(endpoint, params=None):
            if endpoint == "/deviceManagement/managedDevices/m-1":
                return {"id": "m-1", "azureADDeviceId": "d-1", "deviceName": "LAPTOP-01"}
            if endpoint.startswith("/users/"):
                return {"id": "id-alice", "userPrincipalName": "alice@contoso.com"}
            if endpoint == "/deviceManagement/managedDevices/m-1/users":
                return {"value": []}
            raise AssertionError(endpoint)

        async def paginate(endpoint, config=None, params=None):
            yield [{"userPrincipalName": "alice@contoso.com", "deviceDetail": {"deviceId": "d-1"}}]

        graph.get.side_effect = get
        graph.paginate = MagicMock(side_effect=paginate)
        graph.base_url = "https://graph.microsoft.com/beta"

        code = main.main(["--input", str(input_file), "--output-dir", str(tmp_path)])

        assert code == 0
        graph.post.assert_awaited_once()
        [report] = reports(tmp_path)
        with open(report, newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows == [{
            "ManagedDeviceId": "m-1",
            "DeviceName": "LAPTOP-01",
            "CurrentPrimaryUser": "None",
            "TargetUser": "alice@contoso.com",
            "Modified": "Yes",
            "Message": "Primary user set to alice@contoso.com",
        }]

    def test_dry_run_does_not_write(self, tmp_path, graph):
        input_file = tmp_path / "devices.csv"
        input_file.write_text("AzureADDeviceId,DeviceName\nd-1,LAPTOP-01\n")

        graph.fetch_all.return_value = [{"id": "m-1", "azureADDeviceId": "d-1", "deviceName": "LAPTOP-01"}]
        graph.get.side_effect = [
            {"id": "id-alice", "userPrincipalName": "alice@contoso.com"},
            {"value": [{"userPrincipalName": "bob@contoso.com"}]},
        ]

        async def paginate(endpoint, config=None, params=None):
            yield [{"userPrincipalName": "alice@contoso.com", "deviceDetail": {"deviceId": "d-1"}}]

        graph.paginate = MagicMock(side_effect=paginate)

        code = main.main(["--input", str(input_file), "--output-dir", str(tmp_path), "--dry-run"])

        assert code == 0
        graph.post.assert_not_called()
