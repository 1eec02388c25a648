"""Microsoft Graph device management adapter.

Implements IDeviceManagementStore over `/deviceManagement/managedDevices`.
Reads go through the client's retry path; the primary user write is a single
POST whose failure propagates to the caller.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

from ...api.client import GraphClient
from ...api.exceptions import NotFoundError
from ..domain.entities import ManagedDeviceInfo
from ..domain.ports import IDeviceManagementStore
from .graph_directory import odata_quote

logger = logging.getLogger(__name__)

MANAGED_DEVICES = "/deviceManagement/managedDevices"
DEVICE_FIELDS = "id,azureADDeviceId,deviceName,operatingSystem"


def path_segment(management_id: str) -> str:
    """Encode an id for use as one URL path segment."""
    return quote(management_id, safe="")


def key_segment(management_id: str) -> str:
    """Encode an id for the OData key syntax `('...')`."""
    return quote(management_id.replace("'", "''"), safe="'")


class GraphDeviceManagementStore(IDeviceManagementStore):
    """Intune managed device reads and primary user writes."""

    def __init__(self, client: GraphClient):
        """Initialize with a GraphClient.

        Args:
            client: Open GraphClient (inside its async context)
        """
        self.client = client

    @staticmethod
    def _to_info(data: dict[str, Any]) -> ManagedDeviceInfo:
        return ManagedDeviceInfo(
            management_id=data["id"],
            directory_id=data.get("azureADDeviceId") or "",
            display_name=data.get("deviceName") or "",
            operating_system=data.get("operatingSystem"),
        )

    async def get_by_management_id(self, management_id: str) -> Optional[ManagedDeviceInfo]:
        try:
            data = await self.client.get(
                f"{MANAGED_DEVICES}/{path_segment(management_id)}",
                params={"$select": DEVICE_FIELDS},
            )
        except NotFoundError:
            return None
        return self._to_info(data)

    async def get_by_directory_id(self, directory_id: str) -> Optional[ManagedDeviceInfo]:
        devices = await self.client.fetch_all(
            MANAGED_DEVICES,
            params={
                "$filter": f"azureADDeviceId eq {odata_quote(directory_id)}",
                "$select": DEVICE_FIELDS,
            },
        )
        if not devices:
            return None
        if len(devices) > 1:
            # Re-enrolled devices can leave stale records behind
            logger.warning(
                f"{len(devices)} managed devices share directory id {directory_id}, "
                f"using {devices[0]['id']}"
            )
        return self._to_info(devices[0])

    async def get_primary_user(self, management_id: str) -> Optional[str]:
        data = await self.client.get(f"{MANAGED_DEVICES}/{path_segment(management_id)}/users")
        users = data.get("value") or []
        if not users:
            return None
        return users[0].get("userPrincipalName") or None

    async def set_primary_user(self, management_id: str, user_id: str) -> None:
        await self.client.post(
            f"{MANAGED_DEVICES}('{key_segment(management_id)}')/users/$ref",
            json_body={"@odata.id": f"{self.client.base_url}/users/{user_id}"},
        )
        logger.debug(f"Primary user of {management_id} set to {user_id}")
