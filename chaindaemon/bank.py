"""Queries for the Cosmos bank module."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from chaindaemon.querier import Coin, Message, ModuleQuerier


def coin_from_proto(c: Mapping[str, Any]) -> Coin:
    """Turn a coin message, whose amount is a decimal string, into a Coin."""
    amount = str(c.get("amount", ""))
    if not amount.isascii() or not amount.isdigit():
        raise ValueError(f"invalid coin amount {amount!r}")
    return Coin(int(amount), c.get("denom", ""))


def coins_from_proto(coins: Iterable[Mapping[str, Any]]) -> list[Coin]:
    """Turn a sequence of coin messages into Coins."""
    return [coin_from_proto(c) for c in coins]


class Bank(ModuleQuerier):
    """Queries for the bank module."""

    SERVICE = "cosmos.bank.v1beta1.Query"

    async def balance(self, address: str, denom: str | None = None) -> list[Coin]:
        """Return the balance of ``address`` in ``denom``, or all its balances if no denom is given."""
        if denom is not None:
            response = await self.query("Balance", {"address": address, "denom": denom})
            return [coin_from_proto(self._field(response, "balance"))]
        response = await self.query("AllBalances", {"address": address})
        return coins_from_proto(response.get("balances", []))

    async def spendable_balances(self, address: str) -> list[Coin]:
        """Return the spendable balances of ``address``."""
        response = await self.query(
            "SpendableBalances", {"address": address, "pagination": None}
        )
        return coins_from_proto(response.get("balances", []))

    async def total_supply(self) -> list[Coin]:
        """Return the total supply of every denomination."""
        response = await self.query("TotalSupply", {"pagination": None})
        return coins_from_proto(response.get("supply", []))

    async def supply_of(self, denom: str) -> Coin:
        """Return the total supply of ``denom``."""
        response = await self.query("SupplyOf", {"denom": denom})
        return coin_from_proto(self._field(response, "amount"))

    async def params(self) -> Message:
        """Return the bank module parameters."""
        response = await self.query("Params", {})
        return self._field(response, "params")

    async def denom_metadata(self, denom: str) -> Message:
        """Return the metadata of ``denom``."""
        response = await self.query("DenomMetadata", {"denom": denom})
        return self._field(response, "metadata")

    async def denoms_metadata(self, pagination: Message | None = None) -> list[Message]:
        """Return the metadata of all denominations, one page at a time."""
        response = await self.query("DenomsMetadata", {"pagination": pagination})
        return list(response.get("metadatas", []))