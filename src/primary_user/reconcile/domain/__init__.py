"""Domain layer for primary user reconciliation.

Contains:
- Entities: Core business objects
- Aggregation: Most-frequent-signer computation
- Report: Append-only outcome accumulator
- Ports: Interface definitions for infrastructure adapters
"""

from .aggregation import SignInAggregator, most_frequent_user
from .entities import (
    FAILED_TARGET,
    NO_PRIMARY_USER,
    REPORT_COLUMNS,
    DeviceRecord,
    DirectoryUser,
    FailureReason,
    GroupMember,
    IdentifierType,
    InputRow,
    ManagedDeviceInfo,
    ReconciliationOutcome,
    SignInEvent,
    TargetUser,
    ValidationResult,
)
from .ports import (
    IDeviceListParser,
    IDeviceManagementStore,
    IGroupDirectory,
    IReportSink,
    ISignInTelemetrySource,
    IUserDirectory,
)
from .report import OutcomeReporter, ReconciliationReport

__all__ = [
    # Entities
    "SignInEvent",
    "DeviceRecord",
    "ManagedDeviceInfo",
    "DirectoryUser",
    "GroupMember",
    "InputRow",
    "ValidationResult",
    "TargetUser",
    "FailureReason",
    "IdentifierType",
    "ReconciliationOutcome",
    "REPORT_COLUMNS",
    "NO_PRIMARY_USER",
    "FAILED_TARGET",
    # Aggregation
    "SignInAggregator",
    "most_frequent_user",
    # Report
    "OutcomeReporter",
    "ReconciliationReport",
    # Ports
    "IUserDirectory",
    "IDeviceManagementStore",
    "IGroupDirectory",
    "ISignInTelemetrySource",
    "IDeviceListParser",
    "IReportSink",
]
