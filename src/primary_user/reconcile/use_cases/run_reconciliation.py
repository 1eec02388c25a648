"""Run Reconciliation use case.

Drives a complete run:

STEP 1: Build the working set
├── Input file: header/schema and duplicate checks (run-aborting)
├── Group: existence check and member listing (run-aborting)
└── Management records resolved; unmanaged devices reported immediately

STEP 2: Fetch the sign-in window ONCE (run-aborting on failure)

STEP 3: Reconcile devices SEQUENTIALLY
└── One outcome per device, appended in processing order

The reporter is always finalized, so an aborted run still leaves a report
file: just the header when input validation fails, plus any rows already
known (unmanaged devices) when the telemetry fetch fails.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...config import DEFAULT_APP_FILTER, DEFAULT_WINDOW_DAYS
from ..domain.aggregation import SignInAggregator
from ..domain.entities import FailureReason, ReconciliationOutcome, TargetUser
from ..domain.ports import (
    IDeviceManagementStore,
    ISignInTelemetrySource,
    IUserDirectory,
)
from ..domain.report import OutcomeReporter, ReconciliationReport
from .reconcile_device import ReconcileDeviceUseCase, describe_error
from .resolve_devices import ResolutionResult, ResolveDevicesUseCase

logger = logging.getLogger(__name__)


@dataclass
class DeviceSource:
    """Where the working set comes from. Exactly one field is set."""

    group_name: Optional[str] = None
    file_content: Optional[bytes] = None
    filename: Optional[str] = None

    def __post_init__(self):
        has_group = bool(self.group_name)
        has_file = self.file_content is not None
        if has_group == has_file:
            raise ValueError("Specify exactly one of group_name or file_content")

    @classmethod
    def group(cls, name: str) -> "DeviceSource":
        return cls(group_name=name)

    @classmethod
    def file(cls, content: bytes, filename: Optional[str] = None) -> "DeviceSource":
        return cls(file_content=content, filename=filename)


class RunReconciliationUseCase:
    """Reconcile every device of a group or input file."""

    def __init__(
        self,
        telemetry_source: ISignInTelemetrySource,
        user_directory: IUserDirectory,
        management_store: IDeviceManagementStore,
        resolver: ResolveDevicesUseCase,
    ):
        self.telemetry = telemetry_source
        self.directory = user_directory
        self.store = management_store
        self.resolver = resolver

    async def execute(
        self,
        source: DeviceSource,
        reporter: OutcomeReporter,
        app_filter: str = DEFAULT_APP_FILTER,
        window_days: int = DEFAULT_WINDOW_DAYS,
        dry_run: bool = False,
    ) -> ReconciliationReport:
        """Execute the run.

        Args:
            source: Group name or input file
            reporter: Accumulator receiving one outcome per device
            app_filter: Application whose sign-ins count
            window_days: Trailing window size in days
            dry_run: Decide but never write

        Returns:
            The finalized report

        Raises:
            ConfigurationError: Invalid input schema or missing group
            GraphSyncError: Telemetry could not be fetched
        """
        started_at = datetime.now()
        if source.group_name:
            mode = f"group '{source.group_name}'"
        else:
            mode = f"file {source.filename or 'upload'}"
        logger.info(
            f"Starting primary user reconciliation for {mode} "
            f"(app={app_filter!r}, window={window_days}d, dry_run={dry_run})"
        )

        try:
            # STEP 1: working set
            resolution = await self._resolve(source)
            for failure in resolution.failures:
                reporter.append(failure)

            # STEP 2: bulk telemetry, once per run
            events = await self.telemetry.fetch_window(app_filter, window_days)
            aggregator = SignInAggregator(events)
            logger.info(
                f"Fetched {aggregator.event_count:,} sign-in events "
                f"({aggregator.qualifying_count:,} with a principal) "
                f"covering {aggregator.device_count:,} devices"
            )

            # STEP 3: sequential reconciliation
            engine = ReconcileDeviceUseCase(
                aggregator=aggregator,
                user_directory=self.directory,
                management_store=self.store,
                dry_run=dry_run,
            )
            for index, device in enumerate(resolution.devices, start=1):
                logger.debug(f"[{index}/{len(resolution.devices)}] {device.display_name}")
                reporter.append(await self._reconcile_isolated(engine, device))

        finally:
            report = reporter.finalize()

        duration = (datetime.now() - started_at).total_seconds()
        logger.info(
            f"Run complete in {duration:.1f}s: {report.total} devices, "
            f"{report.modified} modified, {report.unchanged} unchanged, "
            f"{report.failed} failed"
        )
        return report

    async def _resolve(self, source: DeviceSource) -> ResolutionResult:
        if source.group_name:
            return await self.resolver.from_group(source.group_name)

        rows, id_type = self.resolver.load_input(source.file_content, source.filename)
        return await self.resolver.from_rows(rows, id_type)

    @staticmethod
    async def _reconcile_isolated(engine, device) -> ReconciliationOutcome:
        # A failure on one device must never stop the rest of the run
        try:
            return await engine.execute(device)
        except Exception as e:
            logger.exception(f"Unexpected failure reconciling {device.display_name}")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=None,
                target_user=TargetUser.failed(FailureReason.UNEXPECTED_ERROR),
                message=describe_error(e),
                is_error=True,
            )
