"""Queries for the Cosmos fee grant module."""

from __future__ import annotations

from chaindaemon.querier import Message, ModuleQuerier


class FeeGrant(ModuleQuerier):
    """Queries for the fee grant module."""

    SERVICE = "cosmos.feegrant.v1beta1.Query"

    async def allowance(self, granter: str, grantee: str) -> Message:
        """Return the allowance granted to ``grantee`` by ``granter``."""
        response = await self.query("Allowance", {"granter": granter, "grantee": grantee})
        return self._field(response, "allowance")

    async def allowances(self, grantee: str, pagination: Message | None = None) -> list[Message]:
        """Return all allowances granted to ``grantee``."""
        response = await self.query(
            "Allowances", {"grantee": grantee, "pagination": pagination}
        )
        return list(response.get("allowances", []))