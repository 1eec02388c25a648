"""Use cases for primary user reconciliation.

Each use case represents one step of a run and orchestrates domain logic
without knowing about infrastructure details.
"""

from .reconcile_device import (
    MSG_ALREADY_CORRECT,
    MSG_NO_ACTIVITY,
    ReconcileDeviceUseCase,
    describe_error,
    principals_match,
)
from .resolve_devices import MSG_NOT_MANAGED, ResolutionResult, ResolveDevicesUseCase
from .run_reconciliation import DeviceSource, RunReconciliationUseCase

__all__ = [
    "ReconcileDeviceUseCase",
    "ResolveDevicesUseCase",
    "ResolutionResult",
    "RunReconciliationUseCase",
    "DeviceSource",
    "describe_error",
    "principals_match",
    "MSG_ALREADY_CORRECT",
    "MSG_NO_ACTIVITY",
    "MSG_NOT_MANAGED",
]
