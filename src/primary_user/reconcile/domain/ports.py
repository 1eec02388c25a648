"""Port interfaces for primary user reconciliation.

These are abstract interfaces (ports) that define how the domain
interacts with external systems. Concrete implementations (adapters)
are provided in the adapters module.

This follows the Hexagonal Architecture pattern.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .entities import (
    DirectoryUser,
    GroupMember,
    IdentifierType,
    InputRow,
    ManagedDeviceInfo,
    ReconciliationOutcome,
    SignInEvent,
    ValidationResult,
)


class IUserDirectory(ABC):
    """Port for principal lookups in the identity directory."""

    @abstractmethod
    async def lookup_by_principal(self, principal: str) -> Optional[DirectoryUser]:
        """Find a user by user principal name.

        Args:
            principal: User principal name (case-insensitive)

        Returns:
            DirectoryUser if found, None otherwise
        """
        ...


class IDeviceManagementStore(ABC):
    """Port for device state in the device-management system.

    Every method addresses devices by management id except
    get_by_directory_id, which bridges from the directory namespace.
    """

    @abstractmethod
    async def get_by_management_id(self, management_id: str) -> Optional[ManagedDeviceInfo]:
        """Find a managed device by its management id.

        Returns:
            ManagedDeviceInfo if found, None otherwise
        """
        ...

    @abstractmethod
    async def get_by_directory_id(self, directory_id: str) -> Optional[ManagedDeviceInfo]:
        """Find a managed device by its directory device id.

        Returns:
            ManagedDeviceInfo if found, None otherwise
        """
        ...

    @abstractmethod
    async def get_primary_user(self, management_id: str) -> Optional[str]:
        """Get the principal currently recorded as primary user.

        Returns:
            User principal name, or None when no primary user is set
        """
        ...

    @abstractmethod
    async def set_primary_user(self, management_id: str, user_id: str) -> None:
        """Record a directory user as the device's primary user.

        Called at most once per device per run.

        Args:
            management_id: Managed device id
            user_id: Directory object id of the user (not the UPN)

        Raises:
            GraphSyncError: If the store rejects the change
        """
        ...


class IGroupDirectory(ABC):
    """Port for directory group membership."""

    @abstractmethod
    async def resolve_device_members(self, group_name: str) -> list[GroupMember]:
        """List the device-type members of a group.

        Args:
            group_name: Group display name

        Returns:
            Device members in directory order

        Raises:
            GroupNotFoundError: If no group has that name
        """
        ...


class ISignInTelemetrySource(ABC):
    """Port for sign-in telemetry."""

    @abstractmethod
    async def fetch_window(self, app_filter: str, window_days: int) -> list[SignInEvent]:
        """Fetch every sign-in event of the trailing window.

        Args:
            app_filter: Application display name the sign-ins belong to
            window_days: Size of the trailing window in days

        Returns:
            Fully materialized list of events in source order
        """
        ...


class IDeviceListParser(ABC):
    """Port for device input file parsing."""

    @abstractmethod
    def parse(self, file_content: bytes, filename: Optional[str] = None) -> tuple[list[InputRow], IdentifierType]:
        """Parse a device input file.

        Args:
            file_content: Raw bytes of the CSV or XLSX file
            filename: Optional filename, used to pick the format

        Returns:
            Tuple of (rows, identifier namespace declared by the header)

        Raises:
            InputSchemaError: If the header or file format is invalid
        """
        ...

    @abstractmethod
    def validate(self, rows: list[InputRow]) -> ValidationResult:
        """Validate parsed rows (empty and duplicate identifiers)."""
        ...


class IReportSink(ABC):
    """Port for the durable side of the outcome report."""

    @abstractmethod
    def write(self, outcome: ReconciliationOutcome) -> None:
        """Persist one outcome row."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Flush and release the sink."""
        ...
