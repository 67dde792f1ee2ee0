"""A contract querier backed by a live chain, for chain-backed unit tests.

It answers read-only queries only: bank balances, raw and smart wasm queries,
and the bonded denom and delegations of the staking module.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from chaindaemon.bank import Bank, coin_from_proto
from chaindaemon.cosmwasm import CosmWasm
from chaindaemon.querier import Channel, Coin, DaemonError
from chaindaemon.staking import Staking

QUERIER_ERROR = (
    "Only Bank balances and Wasm (raw + smart) and Some staking queries are covered for now"
)


class QuerierSystemError(DaemonError):
    """The query request could not be parsed or is not supported."""

    def __init__(self, error: str, request: bytes) -> None:
        super().__init__(error)
        self.error = error
        self.request = request


def _to_json(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), default=repr).encode()


def _coin_json(coin: Coin) -> dict[str, str]:
    return {"denom": coin.denom, "amount": str(coin.amount)}


class WasmMockQuerier:
    """Answers contract queries by asking a live node."""

    def __init__(self, channel: Channel) -> None:
        self.channel = channel

    async def raw_query(self, bin_request: bytes) -> bytes:
        """Parse a JSON query request and answer it with JSON bytes."""
        try:
            request = json.loads(bin_request)
        except (ValueError, TypeError) as exc:
            raise QuerierSystemError(
                f"Parsing query request: {exc}", bytes(bin_request)
            ) from exc
        if not isinstance(request, dict) or len(request) != 1:
            raise QuerierSystemError(
                "Parsing query request: expected an object with a single variant",
                bytes(bin_request),
            )
        return await self.handle_query(request)

    async def handle_query(self, request: Mapping[str, Any]) -> bytes:
        """Answer a parsed query request by querying the node.

        Unsupported requests raise QuerierSystemError; failures of the node query
        itself raise DaemonError.
        """
        kind, body = self._variant(request, request)
        if kind == "wasm":
            return await self._wasm(request, *self._variant(body, request))
        if kind == "bank":
            return await self._bank(request, *self._variant(body, request))
        if kind == "staking":
            return await self._staking(request, *self._variant(body, request))
        raise self._unsupported(request)

    async def _wasm(self, request: Mapping[str, Any], kind: str, args: Any) -> bytes:
        querier = CosmWasm(self.channel)
        if kind == "smart":
            address = self._arg(args, "contract_addr", request)
            msg = self._binary(self._arg(args, "msg", request), request)
            return await querier.contract_state(address, msg)
        if kind == "raw":
            address = self._arg(args, "contract_addr", request)
            key = self._binary(self._arg(args, "key", request), request)
            response = await querier.contract_raw_state(address, key)
            return bytes(response.get("data", b""))
        raise self._unsupported(request)

    async def _bank(self, request: Mapping[str, Any], kind: str, args: Any) -> bytes:
        querier = Bank(self.channel)
        if kind == "balance":
            address = self._arg(args, "address", request)
            denom = self._arg(args, "denom", request)
            balances = await querier.balance(address, denom)
            return _to_json({"amount": _coin_json(balances[0])})
        if kind == "all_balances":
            address = self._arg(args, "address", request)
            balances = await querier.balance(address, None)
            return _to_json({"amount": [_coin_json(c) for c in balances]})
        raise self._unsupported(request)

    async def _staking(self, request: Mapping[str, Any], kind: str, args: Any) -> bytes:
        querier = Staking(self.channel)
        if kind == "bonded_denom":
            response = await querier.params()
            params = response.get("params")
            if params is None:
                raise DaemonError("staking params response has no params")
            return _to_json({"denom": params.get("bond_denom", "")})
        if kind == "all_delegations":
            delegator = self._arg(args, "delegator", request)
            # Only the first page of delegations is returned.
            response = await querier.delegator_delegations(delegator, None)
            delegations = []
            for entry in response.get("delegation_responses", []):
                delegation = entry.get("delegation")
                if delegation is None:
                    continue
                balance = entry.get("balance")
                if balance is None:
                    raise DaemonError("delegation response has no balance")
                delegations.append(
                    {
                        "delegator": delegation.get("delegator_address", ""),
                        "validator": delegation.get("validator_address", ""),
                        "amount": _coin_json(coin_from_proto(balance)),
                    }
                )
            return _to_json({"delegations": delegations})
        raise self._unsupported(request)

    @staticmethod
    def _unsupported(request: Mapping[str, Any]) -> QuerierSystemError:
        return QuerierSystemError(QUERIER_ERROR, _to_json(request))

    @classmethod
    def _variant(cls, value: Any, request: Mapping[str, Any]) -> tuple[str, Any]:
        if not isinstance(value, Mapping) or len(value) != 1:
            raise cls._unsupported(request)
        ((kind, body),) = value.items()
        return kind, body

    @staticmethod
    def _arg(args: Any, name: str, request: Mapping[str, Any]) -> Any:
        if not isinstance(args, Mapping) or name not in args:
            raise QuerierSystemError(
                f"Parsing query request: missing field `{name}`", _to_json(request)
            )
        return args[name]

    @staticmethod
    def _binary(value: Any, request: Mapping[str, Any]) -> bytes:
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, TypeError, ValueError) as exc:
            raise QuerierSystemError(
                f"Parsing query request: {exc}", _to_json(request)
            ) from exc


@dataclass
class MockDependencies:
    """Storage and a live-chain querier for contract unit tests."""

    querier: WasmMockQuerier
    storage: dict[bytes, bytes] = field(default_factory=dict)


def mock_dependencies(channel: Channel) -> MockDependencies:
    """Return dependencies with empty storage and a querier using ``channel``."""
    return MockDependencies(querier=WasmMockQuerier(channel))