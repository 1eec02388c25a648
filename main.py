#!/usr/bin/env python3
"""Intune Primary User Sync CLI.

Sets each managed device's primary user to the person who signed in on it
most often over a trailing window of Entra ID sign-in logs.

Architecture:
    - GraphClient is the shared HTTP layer for all Graph calls
    - TokenManager handles the OAuth2 client credentials flow
    - Graph adapters implement the reconciliation ports
    - RunReconciliationUseCase drives one run, one device at a time

Environment Variables Required:
    - AZURE_TENANT_ID: Entra ID tenant
    - AZURE_CLIENT_ID: App registration client ID
    - AZURE_CLIENT_SECRET: App registration client secret

Optional: AZURE_TOKEN_URL, GRAPH_BASE_URL, SIGNIN_WINDOW_DAYS,
SIGNIN_APP_FILTER, REPORT_OUTPUT_DIR, DRY_RUN

Example Usage:
    $ python main.py --group "Windows Laptops"
    $ python main.py --input devices.csv --days 14
    $ python main.py --group "Kiosks" --dry-run --verbose

Exit codes: 0 when the run completed (per-device failures are in the
report), 1 when the run was aborted.
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.primary_user.api import GraphClient, GraphSyncError, TokenManager
from src.primary_user.config import SyncConfig
from src.primary_user.reconcile.adapters import (
    CsvReportSink,
    DeviceListParser,
    GraphDeviceManagementStore,
    GraphGroupDirectory,
    GraphSignInSource,
    GraphUserDirectory,
)
from src.primary_user.reconcile.domain import OutcomeReporter, ReconciliationReport
from src.primary_user.reconcile.use_cases import (
    DeviceSource,
    ResolveDevicesUseCase,
    RunReconciliationUseCase,
)

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    # aiohttp is chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def read_input_file(path: str) -> bytes:
    """Read the device input file.

    Raises:
        GraphSyncError: If the file cannot be read
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise GraphSyncError(
            f"Cannot read input file {path}: {e.strerror or e}",
            code="INPUT_FILE_ERROR",
            recoverable=False,
            cause=e,
        )


async def run_reconciliation(
    source: DeviceSource,
    config: SyncConfig,
    reporter: OutcomeReporter,
    token_manager: Optional[TokenManager] = None,
) -> ReconciliationReport:
    """Wire the Graph adapters together and execute one run.

    Args:
        source: Group name or input file content
        config: Effective run configuration
        reporter: Reporter bound to the run's report sink
        token_manager: Optional pre-built TokenManager

    Returns:
        The finalized report
    """
    token_manager = token_manager or TokenManager()

    async with GraphClient(token_manager, request_timeout=config.request_timeout) as client:
        store = GraphDeviceManagementStore(client)
        resolver = ResolveDevicesUseCase(
            management_store=store,
            group_directory=GraphGroupDirectory(client),
            device_list_parser=DeviceListParser(),
        )
        use_case = RunReconciliationUseCase(
            telemetry_source=GraphSignInSource(client),
            user_directory=GraphUserDirectory(client),
            management_store=store,
            resolver=resolver,
        )
        return await use_case.execute(
            source,
            reporter,
            app_filter=config.app_filter,
            window_days=config.window_days,
            dry_run=config.dry_run,
        )


def non_empty(value: str) -> str:
    """argparse type for options that must carry text."""
    if not value.strip():
        raise argparse.ArgumentTypeError("must not be empty")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Set Intune primary users from Entra ID sign-in frequency",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --group "Windows Laptops"       # Reconcile a device group
  python main.py --input devices.csv             # Reconcile devices from a file
  python main.py --input devices.xlsx --days 14  # Use a 14 day sign-in window
  python main.py --group "Kiosks" --dry-run      # Report changes without writing

Input files need the header ManagedDeviceId,DeviceName or
AzureADDeviceId,DeviceName.
        """
    )

    # Device selection
    source_group = parser.add_argument_group("Device Selection")
    source = source_group.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--group",
        type=non_empty,
        metavar="NAME",
        help="Entra ID group whose device members are reconciled"
    )
    source.add_argument(
        "--input",
        type=non_empty,
        metavar="FILE",
        help="CSV or XLSX file listing the devices to reconcile"
    )

    # Sign-in window
    window_group = parser.add_argument_group("Sign-in Window")
    window_group.add_argument(
        "--days",
        type=int,
        metavar="N",
        help="Trailing sign-in window in days (default: SIGNIN_WINDOW_DAYS or 30)"
    )
    window_group.add_argument(
        "--app-filter",
        type=non_empty,
        metavar="NAME",
        help="Application whose sign-ins count (default: 'Windows Sign In')"
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--output-dir",
        type=str,
        metavar="DIR",
        help="Directory for the CSV report (default: REPORT_OUTPUT_DIR or .)"
    )
    output_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Decide and report, but never change a primary user"
    )
    output_group.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    return parser


async def run(args: argparse.Namespace) -> int:
    """Execute a run from parsed arguments and return the exit code."""
    started_at = datetime.now()

    try:
        config = SyncConfig().apply_overrides(
            window_days=args.days,
            app_filter=args.app_filter,
            output_dir=args.output_dir,
            dry_run=args.dry_run,
        )
    except GraphSyncError as e:
        logger.error(f"Configuration error: {e.message}")
        return 1

    logger.info(f"Configuration: {config}")

    # The report exists from here on, even if the run aborts
    sink = CsvReportSink.in_directory(config.output_dir, started_at)
    reporter = OutcomeReporter(sink)

    try:
        if args.group:
            source = DeviceSource.group(args.group)
        else:
            source = DeviceSource.file(read_input_file(args.input), filename=args.input)

        report = await run_reconciliation(source, config, reporter)

    except GraphSyncError as e:
        logger.error(f"Run aborted: {e}")
        logger.debug(f"Abort details: {e.to_dict()}")
        for detail in getattr(e, "errors", [])[:20]:
            logger.error(f"  {detail}")
        return 1

    finally:
        reporter.finalize()

    print("\n" + "=" * 60)
    print("RECONCILIATION COMPLETE" + (" (DRY RUN)" if config.dry_run else ""))
    print("=" * 60)
    print(f"Devices:   {report.total}")
    print(f"Modified:  {report.modified}")
    print(f"Unchanged: {report.unchanged}")
    print(f"Failed:    {report.failed}")
    print(f"Report:    {sink.path}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
