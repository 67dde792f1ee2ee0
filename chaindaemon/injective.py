"""Injective account and public key messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Iterator

ETHEREUM_COIN_TYPE = 60

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LEN = 2
_WIRE_FIXED32 = 5


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 64:
            raise ValueError("varint too long")


def _len_field(field_number: int, payload: bytes) -> bytes:
    return _encode_varint((field_number << 3) | _WIRE_LEN) + _encode_varint(len(payload)) + payload


def _iter_fields(data: bytes) -> Iterator[tuple[int, int, object]]:
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        field_number, wire_type = key >> 3, key & 0x7
        if wire_type == _WIRE_VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _WIRE_LEN:
            length, pos = _read_varint(data, pos)
            if pos + length > len(data):
                raise ValueError("truncated length-delimited field")
            value, pos = data[pos : pos + length], pos + length
        elif wire_type in (_WIRE_FIXED64, _WIRE_FIXED32):
            size = 8 if wire_type == _WIRE_FIXED64 else 4
            if pos + size > len(data):
                raise ValueError("truncated fixed-size field")
            value, pos = data[pos : pos + size], pos + size
        else:
            raise ValueError(f"unsupported wire type {wire_type}")
        yield field_number, wire_type, value


def _expect_bytes(field_number: int, wire_type: int, value: object) -> bytes:
    if wire_type != _WIRE_LEN:
        raise ValueError(f"field {field_number} must be length-delimited")
    return bytes(value)  # type: ignore[arg-type]


@dataclass
class InjectiveEthAccount:
    """An Injective account: an encoded base account plus a code hash."""

    base_account: bytes | None = None
    code_hash: bytes = b""

    def encode(self) -> bytes:
        """Return the protobuf encoding of the account."""
        out = b""
        if self.base_account is not None:
            out += _len_field(1, self.base_account)
        if self.code_hash:
            out += _len_field(2, self.code_hash)
        return out

    @classmethod
    def decode(cls, data: bytes) -> "InjectiveEthAccount":
        """Parse an account from its protobuf encoding."""
        account = cls()
        for number, wire_type, value in _iter_fields(data):
            if number == 1:
                account.base_account = _expect_bytes(number, wire_type, value)
            elif number == 2:
                account.code_hash = _expect_bytes(number, wire_type, value)
        return account


@dataclass
class InjectivePubKey:
    """An Ethereum-style secp256k1 public key as used on Injective."""

    NAME: ClassVar[str] = "PubKey"
    PACKAGE: ClassVar[str] = "/injective.crypto.v1beta1.ethsecp256k1"

    key: bytes = b""

    @classmethod
    def full_name(cls) -> str:
        """Return the fully qualified type name of the message."""
        return f"{cls.PACKAGE}.{cls.NAME}"

    def encode(self) -> bytes:
        """Return the protobuf encoding of the key."""
        return _len_field(1, self.key) if self.key else b""

    @classmethod
    def decode(cls, data: bytes) -> "InjectivePubKey":
        """Parse a key from its protobuf encoding."""
        pub_key = cls()
        for number, wire_type, value in _iter_fields(data):
            if number == 1:
                pub_key.key = _expect_bytes(number, wire_type, value)
        return pub_key