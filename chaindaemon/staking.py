"""Queries for the Cosmos staking module."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from chaindaemon.bank import coin_from_proto
from chaindaemon.querier import Coin, Message, ModuleQuerier

_DECIMAL_PLACES = 18
_DECIMAL_RE = re.compile(r"([0-9]+)(?:\.([0-9]+))?")
_UINT128_LIMIT = 1 << 128


def _parse_decimal(text: Any) -> Decimal:
    """Parse a fixed-point decimal with at most 18 fractional digits."""
    text = str(text)
    match = _DECIMAL_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid decimal {text!r}")
    whole, fraction = match.group(1), match.group(2) or ""
    if len(fraction) > _DECIMAL_PLACES:
        raise ValueError(f"decimal {text!r} has more than {_DECIMAL_PLACES} fractional digits")
    if int(whole + fraction.ljust(_DECIMAL_PLACES, "0")) >= _UINT128_LIMIT:
        raise ValueError(f"decimal {text!r} is out of range")
    return Decimal(text)


class StakingBondStatus(enum.IntEnum):
    """Bond status of a validator."""

    UNSPECIFIED = 0
    UNBONDED = 1
    UNBONDING = 2
    BONDED = 3

    def __str__(self) -> str:
        return f"BOND_STATUS_{self.name}"


@dataclass(frozen=True)
class Validator:
    """A validator and its commission rates."""

    address: str
    commission: Decimal
    max_commission: Decimal
    max_change_rate: Decimal


@dataclass(frozen=True)
class Delegation:
    """An amount delegated by a delegator to a validator."""

    delegator: str
    validator: str
    amount: Coin


def validator_from_proto(validator: Mapping[str, Any]) -> Validator:
    """Turn a validator message into a Validator."""
    commission = validator.get("commission") or {}
    rates = commission.get("commission_rates")
    if rates is None:
        raise ValueError("validator has no commission rates")
    return Validator(
        address=validator.get("operator_address", ""),
        commission=_parse_decimal(rates.get("rate", "")),
        max_commission=_parse_decimal(rates.get("max_rate", "")),
        max_change_rate=_parse_decimal(rates.get("max_change_rate", "")),
    )


def delegation_from_proto(delegation_response: Mapping[str, Any]) -> Delegation:
    """Turn a delegation response message into a Delegation."""
    delegation = delegation_response.get("delegation")
    if delegation is None:
        raise ValueError("delegation response has no delegation")
    balance = delegation_response.get("balance")
    if balance is None:
        raise ValueError("delegation response has no balance")
    return Delegation(
        delegator=delegation.get("delegator_address", ""),
        validator=delegation.get("validator_address", ""),
        amount=coin_from_proto(balance),
    )


class Staking(ModuleQuerier):
    """Queries for the staking module."""

    SERVICE = "cosmos.staking.v1beta1.Query"

    async def validator(self, validator_addr: str) -> Validator:
        """Return the validator with the given operator address."""
        response = await self.query("Validator", {"validator_addr": validator_addr})
        return validator_from_proto(self._field(response, "validator"))

    async def validators(self, status: StakingBondStatus) -> list[Validator]:
        """Return the validators with the given bond status."""
        response = await self.query(
            "Validators", {"status": str(status), "pagination": None}
        )
        return [validator_from_proto(v) for v in response.get("validators", [])]

    async def delegations(
        self, validator_addr: str, pagination: Message | None = None
    ) -> list[Delegation]:
        """Return the delegations made to a validator."""
        response = await self.query(
            "ValidatorDelegations",
            {"validator_addr": validator_addr, "pagination": pagination},
        )
        return [delegation_from_proto(d) for d in response.get("delegation_responses", [])]

    async def unbonding_delegations(self, validator_addr: str) -> list[Message]:
        """Return the unbonding delegations of a validator."""
        response = await self.query(
            "ValidatorUnbondingDelegations",
            {"validator_addr": validator_addr, "pagination": None},
        )
        return list(response.get("unbonding_responses", []))

    async def delegation(self, validator_addr: str, delegator_addr: str) -> Delegation:
        """Return the delegation of a delegator to a validator."""
        response = await self.query(
            "Delegation",
            {"validator_addr": validator_addr, "delegator_addr": delegator_addr},
        )
        return delegation_from_proto(self._field(response, "delegation_response"))

    async def unbonding_delegation(self, validator_addr: str, delegator_addr: str) -> Message:
        """Return the unbonding delegation of a delegator from a validator."""
        response = await self.query(
            "UnbondingDelegation",
            {"validator_addr": validator_addr, "delegator_addr": delegator_addr},
        )
        return self._field(response, "unbond")

    async def delegator_delegations(
        self, delegator_addr: str, pagination: Message | None = None
    ) -> Message:
        """Return all delegations of a delegator."""
        return await self.query(
            "DelegatorDelegations",
            {"delegator_addr": delegator_addr, "pagination": pagination},
        )

    async def delegator_unbonding_delegations(
        self, delegator_addr: str, pagination: Message | None = None
    ) -> Message:
        """Return all unbonding delegations of a delegator."""
        return await self.query(
            "DelegatorUnbondingDelegations",
            {"delegator_addr": delegator_addr, "pagination": pagination},
        )

    async def redelegations(
        self,
        delegator_addr: str,
        src_validator_addr: str,
        dst_validator_addr: str,
        pagination: Message | None = None,
    ) -> Message:
        """Return the redelegations of a delegator between two validators."""
        return await self.query(
            "Redelegations",
            {
                "delegator_addr": delegator_addr,
                "src_validator_addr": src_validator_addr,
                "dst_validator_addr": dst_validator_addr,
                "pagination": pagination,
            },
        )

    async def delegator_validator(self, validator_addr: str, delegator_addr: str) -> Message:
        """Return a validator that a delegator has delegated to."""
        return await self.query(
            "DelegatorValidator",
            {"validator_addr": validator_addr, "delegator_addr": delegator_addr},
        )

    async def delegator_validators(
        self, delegator_addr: str, pagination: Message | None = None
    ) -> Message:
        """Return the validators a delegator has delegated to."""
        return await self.query(
            "DelegatorValidators",
            {"delegator_addr": delegator_addr, "pagination": pagination},
        )

    async def historical_info(self, height: int) -> Message:
        """Return the historical staking info at ``height``."""
        return await self.query("HistoricalInfo", {"height": height})

    async def pool(self) -> Message:
        """Return the staking pool."""
        return await self.query("Pool", {})

    async def params(self) -> Message:
        """Return the staking parameters."""
        return await self.query("Params", {})