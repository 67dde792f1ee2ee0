import pytest

from chaindaemon.ibc import Ibc
from chaindaemon.querier import Channel, DaemonError, IbcError

TRANSFER = "/ibc.applications.transfer.v1.Query/"
CLIENT = "/ibc.core.client.v1.Query/"
CONNECTION = "/ibc.core.connection.v1.Query/"
CHANNEL = "/ibc.core.channel.v1.Query/"


class FakeChannel(Channel):
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def unary(self, path, request):
        self.calls.append((path, dict(request)))
        answer = self.responses[path]
        return answer(request) if callable(answer) else answer


def _len_field(number, payload):
    return bytes([(number << 3) | 2, len(payload)]) + payload


def _client_state_bytes(chain_id):
    return _len_field(1, chain_id.encode())


def _identified(chain_id):
    return {
        "identified_client_state": {
            "client_id": "07-tendermint-0",
            "client_state": {
                "type_url": "/ibc.lightclients.tendermint.v1.ClientState",
                "value": _client_state_bytes(chain_id),
            },
        }
    }


@pytest.mark.asyncio
async def test_denom_trace_returns_trace_and_sends_hash():
    trace = {"path": "transfer/channel-0", "base_denom": "uatom"}
    channel = FakeChannel({TRANSFER + "DenomTrace": {"denom_trace": trace}})
    result = await Ibc(channel).denom_trace("ABCD")
    assert result == trace
    assert channel.calls == [(TRANSFER + "DenomTrace", {"hash": "ABCD"})]


@pytest.mark.asyncio
async def test_denom_trace_missing_raises():
    channel = FakeChannel({TRANSFER + "DenomTrace": {}})
    with pytest.raises(DaemonError):
        await Ibc(channel).denom_trace("ABCD")


@pytest.mark.asyncio
async def test_denom_hash():
    channel = FakeChannel({TRANSFER + "DenomHash": {"hash": "FFEE"}})
    assert await Ibc(channel).denom_hash("transfer/channel-0/uatom") == "FFEE"
    assert channel.calls[0][1] == {"trace": "transfer/channel-0/uatom"}


@pytest.mark.asyncio
async def test_clients_list_and_empty_default():
    states = [{"client_id": "a"}, {"client_id": "b"}]
    channel = FakeChannel({CLIENT + "ClientStates": {"client_states": states}})
    assert await Ibc(channel).clients() == states
    empty = FakeChannel({CLIENT + "ClientStates": {}})
    assert await Ibc(empty).clients() == []


@pytest.mark.asyncio
async def test_client_state_converts_id_to_string():
    channel = FakeChannel({CLIENT + "ClientState": {"proof": b"x"}})
    result = await Ibc(channel).client_state(7)
    assert result == {"proof": b"x"}
    assert channel.calls == [(CLIENT + "ClientState", {"client_id": "7"})]


@pytest.mark.asyncio
async def test_consensus_states_request_has_no_pagination():
    channel = FakeChannel({CLIENT + "ConsensusStates": {"consensus_states": []}})
    await_result = await Ibc(channel).consensus_states("c-1")
    assert await_result == {"consensus_states": []}
    assert channel.calls[0][1] == {"client_id": "c-1", "pagination": None}


@pytest.mark.asyncio
async def test_connection_client_decodes_state():
    height = bytes([0x08, 1, 0x10, 42])
    value = (
        _client_state_bytes("osmosis-1")
        + _len_field(7, height)
        + _len_field(9, b"upgrade")
        + bytes([10 << 3, 1])
    )
    response = _identified("osmosis-1")
    response["identified_client_state"]["client_state"]["value"] = value
    channel = FakeChannel({CONNECTION + "ConnectionClientState": response})
    state = await Ibc(channel).connection_client("connection-0")
    assert state["chain_id"] == "osmosis-1"
    assert state["latest_height"] == {"revision_number": 1, "revision_height": 42}
    assert state["upgrade_path"] == ["upgrade"]
    assert state["allow_update_after_expiry"] is True
    assert state["allow_update_after_misbehaviour"] is False


@pytest.mark.asyncio
async def test_connection_client_missing_identified_state():
    channel = FakeChannel({CONNECTION + "ConnectionClientState": {}})
    with pytest.raises(IbcError, match="connection-9"):
        await Ibc(channel).connection_client("connection-9")


@pytest.mark.asyncio
async def test_connection_client_bad_bytes():
    response = _identified("x")
    response["identified_client_state"]["client_state"]["value"] = b"\x0a\x10ab"
    channel = FakeChannel({CONNECTION + "ConnectionClientState": response})
    with pytest.raises(IbcError, match="error decoding client state"):
        await Ibc(channel).connection_client("connection-0")


@pytest.mark.asyncio
async def test_open_connections_filters_state_and_chain():
    connections = [
        {"id": "connection-0", "state": 3},
        {"id": "connection-1", "state": 1},
        {"id": "connection-2", "state": "STATE_OPEN"},
        {"id": "connection-3", "state": 3},
    ]
    chains = {"connection-0": "juno-1", "connection-2": "juno-1", "connection-3": "other-1"}

    def client_state(request):
        return _identified(chains[request["connection_id"]])

    channel = FakeChannel(
        {
            CONNECTION + "Connections": {"connections": connections},
            CONNECTION + "ConnectionClientState": client_state,
        }
    )
    found = await Ibc(channel).open_connections("juno-1")
    assert [c["id"] for c in found] == ["connection-0", "connection-2"]
    asked = [req["connection_id"] for path, req in channel.calls if path.endswith("ConnectionClientState")]
    assert "connection-1" not in asked


@pytest.mark.asyncio
async def test_connection_end_none_when_missing():
    channel = FakeChannel({CONNECTION + "Connection": {}})
    assert await Ibc(channel).connection_end("connection-0") is None


@pytest.mark.asyncio
async def test_client_connections():
    channel = FakeChannel(
        {CONNECTION + "ClientConnections": {"connection_paths": ["connection-0"]}}
    )
    assert await Ibc(channel).client_connections("client-0") == ["connection-0"]


@pytest.mark.asyncio
async def test_channel_client_state_missing():
    channel = FakeChannel({CHANNEL + "ChannelClientState": {}})
    with pytest.raises(IbcError, match="channel-1 on port wasm"):
        await Ibc(channel).channel_client_state("wasm", "channel-1")


@pytest.mark.asyncio
async def test_connection_channels_uses_connection_field():
    channel = FakeChannel({CHANNEL + "ConnectionChannels": {"channels": [{"id": "c"}]}})
    assert await Ibc(channel).connection_channels("connection-4") == [{"id": "c"}]
    assert channel.calls[0][1] == {"connection": "connection-4", "pagination": None}


@pytest.mark.asyncio
async def test_packet_receipt():
    channel = FakeChannel({CHANNEL + "PacketReceipt": {"received": True}})
    assert await Ibc(channel).packet_receipt("transfer", "channel-0", 4) is True
    assert channel.calls[0][1]["sequence"] == 4
    none = FakeChannel({CHANNEL + "PacketReceipt": {}})
    assert await Ibc(none).packet_receipt("transfer", "channel-0", 4) is False


@pytest.mark.asyncio
async def test_unreceived_packets_and_acks_pass_sequences():
    channel = FakeChannel(
        {
            CHANNEL + "UnreceivedPackets": lambda r: {"sequences": r["packet_commitment_sequences"][1:]},
            CHANNEL + "UnreceivedAcks": lambda r: {"sequences": r["packet_ack_sequences"][:1]},
        }
    )
    ibc = Ibc(channel)
    assert await ibc.unreceived_packets("transfer", "channel-0", (1, 2, 3)) == [2, 3]
    assert await ibc.unreceived_acks("transfer", "channel-0", [5, 6]) == [5]


@pytest.mark.asyncio
async def test_packet_acknowledgement_and_commitments():
    channel = FakeChannel(
        {
            CHANNEL + "PacketAcknowledgement": {"acknowledgement": b"ack"},
            CHANNEL + "PacketCommitments": {"commitments": [{"sequence": 1}]},
        }
    )
    ibc = Ibc(channel)
    assert await ibc.packet_acknowledgement("transfer", "channel-0", 1) == b"ack"
    assert await ibc.packet_commitments("transfer", "channel-0") == [{"sequence": 1}]


@pytest.mark.asyncio
async def test_next_sequence_receive():
    channel = FakeChannel({CHANNEL + "NextSequenceReceive": {"next_sequence_receive": 9}})
    assert await Ibc(channel).next_sequence_receive("transfer", "channel-0") == 9
    missing = FakeChannel({CHANNEL + "NextSequenceReceive": {}})
    with pytest.raises(DaemonError):
        await Ibc(missing).next_sequence_receive("transfer", "channel-0")


@pytest.mark.asyncio
async def test_transport_failure_becomes_daemon_error():
    channel = FakeChannel({})
    with pytest.raises(DaemonError):
        await Ibc(channel).client_params()