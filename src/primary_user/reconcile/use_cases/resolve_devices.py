"""Resolve Devices use case.

Turns a group name or a device input file into canonical DeviceRecords,
resolved in both the directory and management namespaces.

Input problems (bad header, duplicate identifiers, missing group) raise
ConfigurationError subclasses and abort the run. Devices that simply are not
managed become NOT_MANAGED outcomes and are left out of reconciliation.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ...api.exceptions import InputSchemaError
from ..domain.entities import (
    DeviceRecord,
    FailureReason,
    IdentifierType,
    InputRow,
    ManagedDeviceInfo,
    ReconciliationOutcome,
    TargetUser,
)
from ..domain.ports import IDeviceListParser, IDeviceManagementStore, IGroupDirectory
from .reconcile_device import describe_error

logger = logging.getLogger(__name__)

MSG_NOT_MANAGED = "Not managed"


@dataclass
class ResolutionResult:
    """Devices ready for reconciliation plus the ones that failed resolution."""

    devices: list[DeviceRecord] = field(default_factory=list)
    failures: list[ReconciliationOutcome] = field(default_factory=list)
    duplicates_skipped: int = 0

    @property
    def total(self) -> int:
        return len(self.devices) + len(self.failures)


class ResolveDevicesUseCase:
    """Build the working set of devices for a run."""

    def __init__(
        self,
        management_store: IDeviceManagementStore,
        group_directory: Optional[IGroupDirectory] = None,
        device_list_parser: Optional[IDeviceListParser] = None,
    ):
        self.store = management_store
        self.groups = group_directory
        self.parser = device_list_parser

    def load_input(
        self,
        file_content: bytes,
        filename: Optional[str] = None,
    ) -> tuple[list[InputRow], IdentifierType]:
        """Parse and validate an input file without touching any remote.

        Raises:
            InputSchemaError: On a malformed header, unreadable file,
                empty file, or duplicate identifiers
        """
        if self.parser is None:
            raise RuntimeError("No device list parser configured")

        logger.info(f"Loading device list: {filename or 'unknown'}")
        rows, id_type = self.parser.parse(file_content, filename)

        if not rows:
            raise InputSchemaError(f"No data rows found in {filename or 'input file'}")

        validation = self.parser.validate(rows)
        for warning in validation.warnings:
            logger.warning(warning)
        if not validation.is_valid:
            logger.error(f"Input validation failed: {len(validation.errors)} errors")
            raise InputSchemaError(
                f"Input file failed validation with {len(validation.errors)} error(s)",
                errors=validation.errors,
            )

        logger.info(f"Loaded {len(rows)} rows keyed by {id_type.value}")
        return rows, id_type

    async def from_rows(
        self,
        rows: list[InputRow],
        id_type: IdentifierType,
    ) -> ResolutionResult:
        """Resolve validated input rows against the management store."""
        result = ResolutionResult()
        seen: set[str] = set()

        for row in rows:
            try:
                if id_type == IdentifierType.MANAGEMENT_ID:
                    info = await self.store.get_by_management_id(row.identifier)
                else:
                    info = await self.store.get_by_directory_id(row.identifier)
            except Exception as e:
                logger.error(f"Row {row.row_number}: lookup of {row.identifier} failed: {e}")
                result.failures.append(
                    self._unresolved(row.identifier, row.display_name, id_type, describe_error(e))
                )
                continue

            if info is None:
                logger.warning(f"Row {row.row_number}: {row.identifier} is not a managed device")
                result.failures.append(
                    self._unresolved(row.identifier, row.display_name, id_type, MSG_NOT_MANAGED)
                )
                continue

            self._add(result, seen, info, row.display_name)

        self._log(result)
        return result

    async def from_group(self, group_name: str) -> ResolutionResult:
        """Resolve the device members of a directory group.

        Raises:
            GroupNotFoundError: If the group does not exist
        """
        if self.groups is None:
            raise RuntimeError("No group directory configured")

        members = await self.groups.resolve_device_members(group_name)
        logger.info(f"Group '{group_name}' has {len(members)} device members")

        result = ResolutionResult()
        seen: set[str] = set()

        for member in members:
            try:
                info = await self.store.get_by_directory_id(member.directory_id)
            except Exception as e:
                logger.error(f"Lookup of {member.display_name} ({member.directory_id}) failed: {e}")
                result.failures.append(
                    self._unresolved(
                        member.directory_id,
                        member.display_name,
                        IdentifierType.DIRECTORY_ID,
                        describe_error(e),
                    )
                )
                continue

            if info is None:
                logger.warning(f"{member.display_name} ({member.directory_id}) is not a managed device")
                result.failures.append(
                    self._unresolved(
                        member.directory_id,
                        member.display_name,
                        IdentifierType.DIRECTORY_ID,
                        MSG_NOT_MANAGED,
                    )
                )
                continue

            self._add(result, seen, info, member.display_name)

        self._log(result)
        return result

    @staticmethod
    def _add(
        result: ResolutionResult,
        seen: set[str],
        info: ManagedDeviceInfo,
        display_name: str,
    ) -> None:
        # First occurrence wins; repeats can come from nested group membership
        if info.management_id in seen:
            logger.warning(
                f"Skipping duplicate device {display_name or info.display_name} ({info.management_id})"
            )
            result.duplicates_skipped += 1
            return
        seen.add(info.management_id)
        result.devices.append(info.to_record(display_name))

    @staticmethod
    def _unresolved(
        identifier: str,
        display_name: str,
        id_type: IdentifierType,
        message: str,
    ) -> ReconciliationOutcome:
        if id_type == IdentifierType.MANAGEMENT_ID:
            device = DeviceRecord(management_id=identifier, directory_id="", display_name=display_name)
        else:
            device = DeviceRecord(management_id="", directory_id=identifier, display_name=display_name)
        return ReconciliationOutcome(
            device=device,
            current_primary_user=None,
            target_user=TargetUser.failed(FailureReason.NOT_MANAGED),
            message=message,
            is_error=message != MSG_NOT_MANAGED,
        )

    @staticmethod
    def _log(result: ResolutionResult) -> None:
        logger.info(
            f"Resolved {len(result.devices)} managed devices, "
            f"{len(result.failures)} unresolved, "
            f"{result.duplicates_skipped} duplicates skipped"
        )
