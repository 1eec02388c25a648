"""Domain entities for primary user reconciliation.

These are pure domain objects with no infrastructure dependencies.

Two identifier namespaces appear throughout and are never interchangeable:

- directory id: the Entra ID device id. Sign-in telemetry correlates on it.
- management id: the Intune managed device id. Primary user reads and
  writes address it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

NO_PRIMARY_USER = "None"
FAILED_TARGET = "Failed"


class FailureReason(str, Enum):
    """Why a target user could not be determined for a device."""

    NOT_MANAGED = "not_managed"  # No matching record in the management store
    NO_SIGN_IN_ACTIVITY = "no_sign_in_activity"  # Zero qualifying sign-ins in window
    PRINCIPAL_NOT_FOUND = "principal_not_found"  # Signer missing from the directory
    LOOKUP_FAILED = "lookup_failed"  # A directory read failed outright
    UNEXPECTED_ERROR = "unexpected_error"  # Anything else raised while reconciling


class IdentifierType(str, Enum):
    """Namespace of the identifiers in a device input file."""

    MANAGEMENT_ID = "management_id"
    DIRECTORY_ID = "directory_id"


@dataclass(frozen=True)
class SignInEvent:
    """A principal authenticating on a device inside the telemetry window."""

    device_id: str  # directory id, NOT the management id
    user_principal: Optional[str]
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DeviceRecord:
    """A device in the working set, resolved in both namespaces.

    Records that failed resolution keep whichever identifier the input
    carried and leave the other empty. They only ever reach the report.
    """

    management_id: str
    directory_id: str
    display_name: str = ""

    @property
    def is_resolved(self) -> bool:
        return bool(self.management_id) and bool(self.directory_id)


@dataclass(frozen=True)
class ManagedDeviceInfo:
    """A device as the management store knows it."""

    management_id: str
    directory_id: str
    display_name: str = ""
    operating_system: Optional[str] = None

    def to_record(self, display_name: Optional[str] = None) -> DeviceRecord:
        """Build the canonical record, preferring the caller's display name."""
        return DeviceRecord(
            management_id=self.management_id,
            directory_id=self.directory_id,
            display_name=display_name or self.display_name,
        )


@dataclass(frozen=True)
class DirectoryUser:
    """A principal that exists in the identity directory."""

    id: str
    user_principal_name: str


@dataclass(frozen=True)
class GroupMember:
    """A device-type member of a directory group."""

    directory_id: str
    display_name: str = ""


@dataclass
class InputRow:
    """A single data row from a device input file."""

    row_number: int
    identifier: str
    display_name: str = ""

    def __post_init__(self):
        self.identifier = self.identifier.strip()
        self.display_name = (self.display_name or "").strip()


@dataclass
class ValidationResult:
    """Result of validating input rows."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TargetUser:
    """The user a device should be assigned to, or why none was found."""

    principal: Optional[str] = None
    failure: Optional[FailureReason] = None

    @classmethod
    def resolved(cls, principal: str) -> "TargetUser":
        return cls(principal=principal)

    @classmethod
    def failed(cls, reason: FailureReason) -> "TargetUser":
        return cls(failure=reason)

    @property
    def is_resolved(self) -> bool:
        return self.failure is None and bool(self.principal)

    def __str__(self) -> str:
        return self.principal if self.is_resolved else FAILED_TARGET


@dataclass(frozen=True)
class ReconciliationOutcome:
    """What happened to one device during a run.

    Produced exactly once per processed device and never revisited.
    `message` holds the operator-facing text; for rejected writes it is the
    remote error verbatim.
    """

    device: DeviceRecord
    current_primary_user: Optional[str]
    target_user: TargetUser
    was_modified: bool = False
    message: Optional[str] = None
    is_error: bool = False

    @property
    def is_failure(self) -> bool:
        """True when no target was found or the device could not be brought in line."""
        return self.is_error or not self.target_user.is_resolved

    def to_row(self) -> dict[str, str]:
        """Render the report columns for this outcome."""
        return {
            "ManagedDeviceId": self.device.management_id,
            "DeviceName": self.device.display_name,
            "CurrentPrimaryUser": self.current_primary_user or NO_PRIMARY_USER,
            "TargetUser": str(self.target_user),
            "Modified": "Yes" if self.was_modified else "No",
            "Message": self.message or "",
        }


REPORT_COLUMNS = [
    "ManagedDeviceId",
    "DeviceName",
    "CurrentPrimaryUser",
    "TargetUser",
    "Modified",
    "Message",
]
