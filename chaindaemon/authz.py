"""Queries for the Cosmos authz module."""

from __future__ import annotations

from chaindaemon.querier import Message, ModuleQuerier


class Authz(ModuleQuerier):
    """Queries for the authz module."""

    SERVICE = "cosmos.authz.v1beta1.Query"

    async def grants(
        self,
        granter: str,
        grantee: str,
        msg_type_url: str,
        pagination: Message | None = None,
    ) -> Message:
        """Return the grants from ``granter`` to ``grantee`` for a message type."""
        return await self.query(
            "Grants",
            {
                "granter": granter,
                "grantee": grantee,
                "msg_type_url": msg_type_url,
                "pagination": pagination,
            },
        )

    async def grantee_grants(self, grantee: str, pagination: Message | None = None) -> Message:
        """Return the grants held by ``grantee``."""
        return await self.query(
            "GranteeGrants", {"grantee": grantee, "pagination": pagination}
        )

    async def granter_grants(self, granter: str, pagination: Message | None = None) -> Message:
        """Return the grants given by ``granter``."""
        return await self.query(
            "GranterGrants", {"granter": granter, "pagination": pagination}
        )