"""Queries for the IBC modules: transfer, clients, connections, channels and packets."""

from __future__ import annotations

from typing import Any, Iterator, Sequence

from chaindaemon.querier import Channel, DaemonError, IbcError, Message, ModuleQuerier

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LEN = 2
_WIRE_FIXED32 = 5

_STATE_OPEN = 3
_STATE_OPEN_NAME = "STATE_OPEN"


class _TransferService(ModuleQuerier):
    SERVICE = "ibc.applications.transfer.v1.Query"


class _ClientService(ModuleQuerier):
    SERVICE = "ibc.core.client.v1.Query"


class _ConnectionService(ModuleQuerier):
    SERVICE = "ibc.core.connection.v1.Query"


class _ChannelService(ModuleQuerier):
    SERVICE = "ibc.core.channel.v1.Query"


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


def _iter_fields(data: bytes) -> Iterator[tuple[int, int, Any]]:
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        number, wire_type = key >> 3, key & 0x7
        if number == 0:
            raise ValueError("invalid field number 0")
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
        yield number, wire_type, value


def _expect(number: int, wire_type: int, expected: int) -> None:
    if wire_type != expected:
        raise ValueError(f"field {number} has wire type {wire_type}, expected {expected}")


def _decode_height(data: bytes) -> dict[str, int]:
    height = {"revision_number": 0, "revision_height": 0}
    for number, wire_type, value in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, _WIRE_VARINT)
            height["revision_number"] = value
        elif number == 2:
            _expect(number, wire_type, _WIRE_VARINT)
            height["revision_height"] = value
    return height


def _decode_client_state(data: bytes) -> dict[str, Any]:
    """Decode a tendermint light client state.

    Durations, the trust level and proof specs are kept as their encoded bytes.
    """
    state: dict[str, Any] = {
        "chain_id": "",
        "trust_level": None,
        "trusting_period": None,
        "unbonding_period": None,
        "max_clock_drift": None,
        "frozen_height": None,
        "latest_height": None,
        "proof_specs": [],
        "upgrade_path": [],
        "allow_update_after_expiry": False,
        "allow_update_after_misbehaviour": False,
    }
    raw_fields = {2: "trust_level", 3: "trusting_period", 4: "unbonding_period", 5: "max_clock_drift"}
    for number, wire_type, value in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, _WIRE_LEN)
            state["chain_id"] = bytes(value).decode("utf-8")
        elif number in raw_fields:
            _expect(number, wire_type, _WIRE_LEN)
            state[raw_fields[number]] = bytes(value)
        elif number == 6:
            _expect(number, wire_type, _WIRE_LEN)
            state["frozen_height"] = _decode_height(value)
        elif number == 7:
            _expect(number, wire_type, _WIRE_LEN)
            state["latest_height"] = _decode_height(value)
        elif number == 8:
            _expect(number, wire_type, _WIRE_LEN)
            state["proof_specs"].append(bytes(value))
        elif number == 9:
            _expect(number, wire_type, _WIRE_LEN)
            state["upgrade_path"].append(bytes(value).decode("utf-8"))
        elif number == 10:
            _expect(number, wire_type, _WIRE_VARINT)
            state["allow_update_after_expiry"] = bool(value)
        elif number == 11:
            _expect(number, wire_type, _WIRE_VARINT)
            state["allow_update_after_misbehaviour"] = bool(value)
    return state


def _is_open(connection: Message) -> bool:
    state = connection.get("state")
    return state == _STATE_OPEN or state == _STATE_OPEN_NAME


class Ibc(ModuleQuerier):
    """Queries for the IBC transfer, client, connection and channel modules."""

    SERVICE = _TransferService.SERVICE

    def __init__(self, channel: Channel) -> None:
        super().__init__(channel)
        self._client = _ClientService(channel)
        self._connection = _ConnectionService(channel)
        self._channel = _ChannelService(channel)

    # Transfer queries

    async def denom_trace(self, hash_: str) -> Message:
        """Return the trace of the denomination with the given hash."""
        response = await self.query("DenomTrace", {"hash": hash_})
        return self._field(response, "denom_trace")

    async def denom_hash(self, trace: str) -> str:
        """Return the hash of a denomination from its trace."""
        response = await self.query("DenomHash", {"trace": trace})
        return str(response.get("hash", ""))

    # Client queries

    async def clients(self) -> list[Message]:
        """Return all IBC clients of the chain."""
        response = await self._client.query("ClientStates", {"pagination": None})
        return list(response.get("client_states", []))

    async def client_state(self, client_id: Any) -> Message:
        """Return the state of an IBC client."""
        return await self._client.query("ClientState", {"client_id": str(client_id)})

    async def consensus_states(self, client_id: Any) -> Message:
        """Return the consensus states of an IBC client."""
        return await self._client.query(
            "ConsensusStates", {"client_id": str(client_id), "pagination": None}
        )

    async def client_status(self, client_id: Any) -> Message:
        """Return the status of an IBC client."""
        return await self._client.query("ClientStatus", {"client_id": str(client_id)})

    async def client_params(self) -> Message:
        """Return the IBC client parameters."""
        return await self._client.query("ClientParams", {})

    # Connection queries

    async def connections(self) -> list[Message]:
        """Return all IBC connections of the chain."""
        response = await self._connection.query("Connections", {"pagination": None})
        return list(response.get("connections", []))

    async def open_connections(self, client_chain_id: Any) -> list[Message]:
        """Return the open connections whose client tracks the chain ``client_chain_id``."""
        wanted = str(client_chain_id)
        open_connections = [c for c in await self.connections() if _is_open(c)]
        found = []
        for connection in open_connections:
            client_state = await self.connection_client(connection.get("id", ""))
            if client_state["chain_id"] == wanted:
                found.append(connection)
        return found

    async def connection_end(self, connection_id: str) -> Message | None:
        """Return the connection with the given id, or None if there is none."""
        response = await self._connection.query(
            "Connection", {"connection_id": connection_id}
        )
        return response.get("connection")

    async def client_connections(self, client_id: str) -> list[str]:
        """Return the connection ids that use the given client."""
        response = await self._connection.query(
            "ClientConnections", {"client_id": client_id}
        )
        return list(response.get("connection_paths", []))

    async def connection_client(self, connection_id: str) -> dict[str, Any]:
        """Return the decoded tendermint client state behind a connection."""
        response = await self._connection.query(
            "ConnectionClientState", {"connection_id": connection_id}
        )
        identified = response.get("identified_client_state")
        if identified is None:
            raise IbcError(f"error identifying client for connection {connection_id}")
        any_state = self._field(identified, "client_state")
        try:
            return _decode_client_state(bytes(any_state.get("value", b"")))
        except (ValueError, TypeError) as exc:
            raise IbcError(f"error decoding client state: {exc}") from exc

    # Channel queries

    async def channel(self, port_id: str, channel_id: str) -> Message:
        """Return the channel with the given port and channel id."""
        response = await self._channel.query(
            "Channel", {"port_id": port_id, "channel_id": channel_id}
        )
        channel = response.get("channel")
        if channel is None:
            raise IbcError(f"error fetching channel {channel_id} on port {port_id}")
        return channel

    async def connection_channels(self, connection_id: str) -> list[Message]:
        """Return the channels opened over a connection."""
        response = await self._channel.query(
            "ConnectionChannels", {"connection": connection_id, "pagination": None}
        )
        return list(response.get("channels", []))

    async def channel_client_state(self, port_id: str, channel_id: str) -> Message:
        """Return the identified client state behind a channel."""
        response = await self._channel.query(
            "ChannelClientState", {"port_id": port_id, "channel_id": channel_id}
        )
        state = response.get("identified_client_state")
        if state is None:
            raise IbcError(
                f"error identifying client for channel {channel_id} on port {port_id}"
            )
        return state

    # Packet queries

    async def packet_commitments(self, port_id: str, channel_id: str) -> list[Message]:
        """Return all packet commitments of a channel."""
        response = await self._channel.query(
            "PacketCommitments",
            {"port_id": port_id, "channel_id": channel_id, "pagination": None},
        )
        return list(response.get("commitments", []))

    async def packet_commitment(self, port_id: str, channel_id: str, sequence: int) -> Message:
        """Return the packet commitment of a channel at ``sequence``."""
        return await self._channel.query(
            "PacketCommitment",
            {"port_id": port_id, "channel_id": channel_id, "sequence": sequence},
        )

    async def packet_receipt(self, port_id: str, channel_id: str, sequence: int) -> bool:
        """Return whether the packet at ``sequence`` was received."""
        response = await self._channel.query(
            "PacketReceipt",
            {"port_id": port_id, "channel_id": channel_id, "sequence": sequence},
        )
        return bool(response.get("received", False))

    async def packet_acknowledgements(
        self, port_id: str, channel_id: str, packet_commitment_sequences: Sequence[int]
    ) -> list[Message]:
        """Return the acknowledgements of a channel for the given commitment sequences."""
        response = await self._channel.query(
            "PacketAcknowledgements",
            {
                "port_id": port_id,
                "channel_id": channel_id,
                "packet_commitment_sequences": list(packet_commitment_sequences),
                "pagination": None,
            },
        )
        return list(response.get("acknowledgements", []))

    async def packet_acknowledgement(self, port_id: str, channel_id: str, sequence: int) -> bytes:
        """Return the acknowledgement of the packet at ``sequence``."""
        response = await self._channel.query(
            "PacketAcknowledgement",
            {"port_id": port_id, "channel_id": channel_id, "sequence": sequence},
        )
        return bytes(response.get("acknowledgement", b""))

    async def unreceived_packets(
        self, port_id: str, channel_id: str, packet_commitment_sequences: Sequence[int]
    ) -> list[int]:
        """Return the packet sequences that have not yet been received."""
        response = await self._channel.query(
            "UnreceivedPackets",
            {
                "port_id": port_id,
                "channel_id": channel_id,
                "packet_commitment_sequences": list(packet_commitment_sequences),
            },
        )
        return [int(s) for s in response.get("sequences", [])]

    async def unreceived_acks(
        self, port_id: str, channel_id: str, packet_ack_sequences: Sequence[int]
    ) -> list[int]:
        """Return the acknowledgement sequences that have not yet been received."""
        response = await self._channel.query(
            "UnreceivedAcks",
            {
                "port_id": port_id,
                "channel_id": channel_id,
                "packet_ack_sequences": list(packet_ack_sequences),
            },
        )
        return [int(s) for s in response.get("sequences", [])]

    async def next_sequence_receive(self, port_id: str, channel_id: str) -> int:
        """Return the next sequence the channel expects to receive."""
        response = await self._channel.query(
            "NextSequenceReceive", {"port_id": port_id, "channel_id": channel_id}
        )
        if "next_sequence_receive" not in response:
            raise DaemonError("response is missing the field 'next_sequence_receive'")
        return int(response["next_sequence_receive"])