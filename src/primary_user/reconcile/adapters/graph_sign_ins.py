"""Microsoft Graph sign-in telemetry adapter.

Fetches the whole trailing window of `/auditLogs/signIns` for one
application. The audit log API is heavily throttled, so pages are large and
spaced out (see SIGN_INS_PAGINATION).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ...api.client import SIGN_INS_PAGINATION, GraphClient, PaginationConfig
from ..domain.entities import SignInEvent
from ..domain.ports import ISignInTelemetrySource
from .graph_directory import odata_quote

logger = logging.getLogger(__name__)

SIGN_INS = "/auditLogs/signIns"


def window_start(window_days: int, now: Optional[datetime] = None) -> datetime:
    """Start of the trailing window, in UTC."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=window_days)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GraphSignInSource(ISignInTelemetrySource):
    """Sign-in events from the Entra ID audit log."""

    def __init__(
        self,
        client: GraphClient,
        pagination: Optional[PaginationConfig] = None,
    ):
        self.client = client
        self.pagination = pagination or SIGN_INS_PAGINATION

    def build_filter(self, app_filter: str, window_days: int, now: Optional[datetime] = None) -> str:
        cutoff = window_start(window_days, now).strftime("%Y-%m-%dT%H:%M:%SZ")
        return f"appDisplayName eq {odata_quote(app_filter)} and createdDateTime ge {cutoff}"

    async def fetch_window(self, app_filter: str, window_days: int) -> list[SignInEvent]:
        """Fetch and materialize every sign-in of the window.

        Events without a device id cannot be correlated and are dropped.
        """
        if window_days <= 0:
            raise ValueError(f"window_days must be positive, got {window_days}")

        params = {
            "$filter": self.build_filter(app_filter, window_days),
            "$select": "createdDateTime,userPrincipalName,deviceDetail",
        }

        events: list[SignInEvent] = []
        skipped = 0
        async for page in self.client.paginate(SIGN_INS, self.pagination, params):
            for item in page:
                event = self._to_event(item)
                if event is None:
                    skipped += 1
                    continue
                events.append(event)

        if skipped:
            logger.debug(f"Dropped {skipped} sign-ins without a device id")
        logger.info(
            f"Sign-in window: {len(events):,} events for '{app_filter}' over {window_days} days"
        )
        return events

    @staticmethod
    def _to_event(item: dict[str, Any]) -> Optional[SignInEvent]:
        device_id = (item.get("deviceDetail") or {}).get("deviceId")
        if not device_id:
            return None
        return SignInEvent(
            device_id=device_id,
            user_principal=item.get("userPrincipalName"),
            created_at=parse_timestamp(item.get("createdDateTime")),
        )
