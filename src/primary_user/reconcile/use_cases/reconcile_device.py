"""Reconcile Device use case.

Decides, for one device, whether its primary user matches the most frequent
signer and converges the management store when it does not.

Decision order:
1. No qualifying sign-ins          -> failure, no remote call
2. Signer unknown to the directory -> failure, no management call
3. Current primary user read (absent is "None", never an error)
4. Current == target (case-insensitive) -> no-op
5. Otherwise one write attempt; a rejected write is reported, not retried
"""

import logging
from typing import Optional

from ...api.exceptions import GraphSyncError
from ..domain.aggregation import SignInAggregator
from ..domain.entities import (
    DeviceRecord,
    FailureReason,
    ReconciliationOutcome,
    TargetUser,
)
from ..domain.ports import IDeviceManagementStore, IUserDirectory

logger = logging.getLogger(__name__)

MSG_NO_ACTIVITY = "No qualifying sign-in activity in window"
MSG_ALREADY_CORRECT = "Already correct"


def describe_error(error: Exception) -> str:
    """Operator-facing text for a collaborator failure."""
    if isinstance(error, GraphSyncError):
        return error.message
    return str(error) or error.__class__.__name__


def principals_match(left: Optional[str], right: Optional[str]) -> bool:
    """Compare principal names the way the directory does (case-insensitive)."""
    if not left or not right:
        return False
    return left.strip().casefold() == right.strip().casefold()


class ReconcileDeviceUseCase:
    """Bring one device's primary user in line with its sign-in history."""

    def __init__(
        self,
        aggregator: SignInAggregator,
        user_directory: IUserDirectory,
        management_store: IDeviceManagementStore,
        dry_run: bool = False,
    ):
        """Initialize the use case.

        Args:
            aggregator: Sign-in index built from the full telemetry window
            user_directory: Directory used to validate the target principal
            management_store: Store holding primary user assignments
            dry_run: Decide but never write
        """
        self.aggregator = aggregator
        self.directory = user_directory
        self.store = management_store
        self.dry_run = dry_run

    async def execute(self, device: DeviceRecord) -> ReconciliationOutcome:
        """Reconcile a single resolved device.

        Raises:
            ValueError: If the device has no management id
        """
        if not device.management_id:
            raise ValueError(
                f"Device {device.display_name or device.directory_id!r} has no management id"
            )

        # 1. Most frequent signer, correlated on the directory id
        target_upn = self.aggregator.most_frequent_user(device.directory_id)
        if not target_upn:
            logger.info(f"{device.display_name}: no sign-in activity")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=None,
                target_user=TargetUser.failed(FailureReason.NO_SIGN_IN_ACTIVITY),
                message=MSG_NO_ACTIVITY,
            )

        # 2. The signer must exist in the directory
        try:
            user = await self.directory.lookup_by_principal(target_upn)
        except Exception as e:
            logger.error(f"{device.display_name}: directory lookup for {target_upn} failed: {e}")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=None,
                target_user=TargetUser.failed(FailureReason.LOOKUP_FAILED),
                message=describe_error(e),
                is_error=True,
            )

        if user is None:
            logger.warning(f"{device.display_name}: {target_upn} not found in directory")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=None,
                target_user=TargetUser.failed(FailureReason.PRINCIPAL_NOT_FOUND),
                message=f"User {target_upn} not found in directory",
            )

        target = TargetUser.resolved(target_upn)

        # 3. Current assignment
        try:
            current_upn = await self.store.get_primary_user(device.management_id)
        except Exception as e:
            logger.error(f"{device.display_name}: reading primary user failed: {e}")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=None,
                target_user=target,
                message=describe_error(e),
                is_error=True,
            )

        # 4. Already converged
        if principals_match(current_upn, target_upn):
            logger.info(f"{device.display_name}: primary user already {current_upn}")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=current_upn,
                target_user=target,
                message=MSG_ALREADY_CORRECT,
            )

        if self.dry_run:
            logger.info(
                f"{device.display_name}: would change primary user "
                f"{current_upn or 'None'} -> {target_upn} (dry run)"
            )
            return ReconciliationOutcome(
                device=device,
                current_primary_user=current_upn,
                target_user=target,
                message=f"Would set primary user to {target_upn} (dry run)",
            )

        # 5. Single write attempt
        try:
            await self.store.set_primary_user(device.management_id, user.id)
        except Exception as e:
            logger.error(f"{device.display_name}: setting primary user to {target_upn} failed: {e}")
            return ReconciliationOutcome(
                device=device,
                current_primary_user=current_upn,
                target_user=target,
                message=describe_error(e),
                is_error=True,
            )

        logger.info(
            f"{device.display_name}: primary user changed {current_upn or 'None'} -> {target_upn}"
        )
        return ReconciliationOutcome(
            device=device,
            current_primary_user=current_upn,
            target_user=target,
            was_modified=True,
            message=f"Primary user set to {target_upn}",
        )
