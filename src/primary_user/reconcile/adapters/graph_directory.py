"""Microsoft Graph directory adapters.

Implements IUserDirectory and IGroupDirectory over the Graph `/users` and
`/groups` endpoints.
"""

import logging
from typing import Optional
from urllib.parse import quote

from ...api.client import GraphClient
from ...api.exceptions import GroupNotFoundError, NotFoundError
from ..domain.entities import DirectoryUser, GroupMember
from ..domain.ports import IGroupDirectory, IUserDirectory

logger = logging.getLogger(__name__)


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


class GraphUserDirectory(IUserDirectory):
    """User lookups against `/users/{upn}`."""

    def __init__(self, client: GraphClient):
        self.client = client

    async def lookup_by_principal(self, principal: str) -> Optional[DirectoryUser]:
        """Find a user by UPN. A 404 means the user does not exist."""
        try:
            data = await self.client.get(
                f"/users/{quote(principal, safe='@')}",
                params={"$select": "id,userPrincipalName"},
            )
        except NotFoundError:
            logger.debug(f"User {principal} not found")
            return None

        return DirectoryUser(
            id=data["id"],
            user_principal_name=data.get("userPrincipalName") or principal,
        )


class GraphGroupDirectory(IGroupDirectory):
    """Group membership via `/groups` and `transitiveMembers`."""

    def __init__(self, client: GraphClient):
        self.client = client

    async def resolve_device_members(self, group_name: str) -> list[GroupMember]:
        """List the device members of a group, including nested groups.

        Raises:
            GroupNotFoundError: If no group has that display name
        """
        groups = await self.client.fetch_all(
            "/groups",
            params={
                "$filter": f"displayName eq {odata_quote(group_name)}",
                "$select": "id,displayName",
            },
        )
        if not groups:
            raise GroupNotFoundError(group_name)
        if len(groups) > 1:
            logger.warning(
                f"{len(groups)} groups named '{group_name}', using {groups[0]['id']}"
            )

        group_id = groups[0]["id"]
        members = await self.client.fetch_all(
            f"/groups/{group_id}/transitiveMembers/microsoft.graph.device",
            params={"$select": "deviceId,displayName"},
        )

        result = []
        for member in members:
            device_id = member.get("deviceId")
            if not device_id:
                logger.debug(f"Skipping group member without deviceId: {member.get('id')}")
                continue
            result.append(
                GroupMember(
                    directory_id=device_id,
                    display_name=member.get("displayName") or "",
                )
            )
        return result
