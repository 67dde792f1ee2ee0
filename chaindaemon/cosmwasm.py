"""Queries for the CosmWasm module, with bech32 and instantiate2 address helpers."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from chaindaemon.querier import DaemonError, Message, ModuleQuerier

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_CHECKSUM_LEN = 6


@dataclass(frozen=True)
class CodeInfo:
    """Information about stored code."""

    code_id: int
    creator: str
    checksum: bytes


@dataclass(frozen=True)
class ContractInfo:
    """Information about an instantiated contract."""

    code_id: int
    creator: str
    admin: str | None = None
    pinned: bool = False
    ibc_port: str | None = None


def code_info_from_proto(code_info: Mapping[str, Any]) -> CodeInfo:
    """Turn a code info message into a CodeInfo."""
    return CodeInfo(
        code_id=int(code_info.get("code_id", 0)),
        creator=code_info.get("creator", ""),
        checksum=bytes(code_info.get("data_hash", b"")),
    )


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for i, generator in enumerate(_GENERATORS):
            if (top >> i) & 1:
                chk ^= generator
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    max_value = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise ValueError(f"value {value} does not fit in {from_bits} bits")
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (acc << (to_bits - bits)) & max_value:
        raise ValueError("invalid padding in bech32 data")
    return out


def _check_hrp(hrp: str) -> None:
    if not hrp:
        raise ValueError("bech32 prefix is empty")
    if any(not 33 <= ord(c) <= 126 for c in hrp):
        raise ValueError(f"invalid character in bech32 prefix {hrp!r}")


def bech32_encode(prefix: str, data: bytes) -> str:
    """Encode ``data`` as a bech32 string with the given human-readable prefix."""
    _check_hrp(prefix)
    if prefix != prefix.lower():
        raise ValueError("bech32 prefix must be lower case")
    five_bit = _convert_bits(data, 8, 5, True)
    polymod = _polymod(_hrp_expand(prefix) + five_bit + [0] * _CHECKSUM_LEN) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(_CHECKSUM_LEN)]
    return prefix + "1" + "".join(_CHARSET[d] for d in five_bit + checksum)


def bech32_decode(address: str) -> tuple[str, bytes]:
    """Split a bech32 string into its prefix and the bytes it carries."""
    if address.lower() != address and address.upper() != address:
        raise ValueError("bech32 string mixes upper and lower case")
    address = address.lower()
    separator = address.rfind("1")
    if separator < 1 or separator + 1 + _CHECKSUM_LEN > len(address):
        raise ValueError(f"invalid bech32 string {address!r}")
    hrp = address[:separator]
    _check_hrp(hrp)
    values = []
    for char in address[separator + 1 :]:
        index = _CHARSET.find(char)
        if index < 0:
            raise ValueError(f"invalid bech32 character {char!r}")
        values.append(index)
    if _polymod(_hrp_expand(hrp) + values) != 1:
        raise ValueError("invalid bech32 checksum")
    return hrp, bytes(_convert_bits(values[:-_CHECKSUM_LEN], 5, 8, False))


def _length_prefixed(data: bytes) -> bytes:
    return len(data).to_bytes(8, "big") + data


def instantiate2_address(checksum: bytes, creator: bytes, salt: bytes) -> bytes:
    """Return the canonical address of a contract created with instantiate2."""
    if len(checksum) != 32:
        raise ValueError("checksum must be 32 bytes")
    if not 1 <= len(salt) <= 64:
        raise ValueError("salt must be between 1 and 64 bytes")
    key = (
        b"wasm\0"
        + _length_prefixed(bytes(checksum))
        + _length_prefixed(bytes(creator))
        + _length_prefixed(bytes(salt))
        + _length_prefixed(b"")
    )
    type_hash = hashlib.sha256(b"module").digest()
    return hashlib.sha256(type_hash + key).digest()


class CosmWasm(ModuleQuerier):
    """Queries for the CosmWasm module."""

    SERVICE = "cosmwasm.wasm.v1.Query"

    async def code_id_hash(self, code_id: int) -> bytes:
        """Return the checksum of the code stored under ``code_id``."""
        response = await self.query("Code", {"code_id": code_id})
        return bytes(self._field(response, "code_info").get("data_hash", b""))

    async def contract_info(self, address: str) -> ContractInfo:
        """Return information about the contract at ``address``."""
        response = await self.query("ContractInfo", {"address": address})
        info = self._field(response, "contract_info")
        return ContractInfo(
            code_id=int(info.get("code_id", 0)),
            creator=info.get("creator", ""),
            admin=info.get("admin") or None,
            ibc_port=info.get("ibc_port_id") or None,
        )

    async def contract_history(self, address: str, pagination: Message | None = None) -> Message:
        """Return the code history of a contract."""
        return await self.query(
            "ContractHistory", {"address": address, "pagination": pagination}
        )

    async def contract_state(self, address: str, query_data: bytes) -> bytes:
        """Run a smart query against a contract and return the raw answer."""
        response = await self.query(
            "SmartContractState", {"address": address, "query_data": bytes(query_data)}
        )
        return bytes(response.get("data", b""))

    async def all_contract_state(self, address: str, pagination: Message | None = None) -> Message:
        """Return all raw key-value pairs stored by a contract."""
        return await self.query(
            "AllContractState", {"address": address, "pagination": pagination}
        )

    async def code(self, code_id: int) -> CodeInfo:
        """Return information about the code stored under ``code_id``."""
        response = await self.query("Code", {"code_id": code_id})
        return code_info_from_proto(self._field(response, "code_info"))

    async def code_data(self, code_id: int) -> bytes:
        """Return the bytes of the code stored under ``code_id``."""
        response = await self.query("Code", {"code_id": code_id})
        return bytes(response.get("data", b""))

    async def codes(self, pagination: Message | None = None) -> list[CodeInfo]:
        """Return information about stored codes."""
        response = await self.query("Codes", {"pagination": pagination})
        return [code_info_from_proto(c) for c in response.get("code_infos", [])]

    async def pinned_codes(self) -> Message:
        """Return the pinned code ids."""
        return await self.query("PinnedCodes", {"pagination": None})

    async def contract_by_codes(self, code_id: int) -> Message:
        """Return the contracts instantiated from ``code_id``."""
        return await self.query("ContractsByCode", {"code_id": code_id, "pagination": None})

    async def contract_raw_state(self, address: str, query_data: bytes) -> Message:
        """Return the raw value stored by a contract under a key."""
        return await self.query(
            "RawContractState", {"address": address, "query_data": bytes(query_data)}
        )

    async def params(self) -> Message:
        """Return the module parameters."""
        return await self.query("Params", {})

    async def smart_query(self, address: str, query: Any) -> Any:
        """Send a JSON smart query to a contract and decode its JSON answer."""
        query_data = json.dumps(query, separators=(",", ":")).encode()
        data = await self.contract_state(address, query_data)
        try:
            return json.loads(data)
        except ValueError as exc:
            raise DaemonError(f"could not decode smart query response: {exc}") from exc

    async def instantiate2_addr(self, code_id: int, creator: str, salt: bytes) -> str:
        """Return the address a contract instantiated with instantiate2 will have."""
        prefix, canonical_creator = bech32_decode(creator)
        checksum = await self.code_id_hash(code_id)
        address = instantiate2_address(checksum, canonical_creator, salt)
        return bech32_encode(prefix, address)