import base64
import json

import pytest

from chaindaemon.live_mock import (
    QUERIER_ERROR,
    MockDependencies,
    QuerierSystemError,
    WasmMockQuerier,
    mock_dependencies,
)
from chaindaemon.querier import Channel, DaemonError

ADDRESS = "juno1rkhrfuq7k2k68k0hctrmv8efyxul6tgn8hny6y"
BANK = "/cosmos.bank.v1beta1.Query/"
WASM = "/cosmwasm.wasm.v1.Query/"
STAKING = "/cosmos.staking.v1beta1.Query/"


class FakeChannel(Channel):
    def __init__(self, handlers):
        self.handlers = handlers
        self.calls = []

    async def unary(self, path, request):
        self.calls.append((path, dict(request)))
        handler = self.handlers[path]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(request)
        return handler


def _encode(request):
    return json.dumps(request).encode()


@pytest.mark.asyncio
async def test_bank_balance_query():
    channel = FakeChannel(
        {BANK + "Balance": lambda req: {"balance": {"denom": req["denom"], "amount": "42"}}}
    )
    querier = WasmMockQuerier(channel)
    raw = await querier.raw_query(
        _encode({"bank": {"balance": {"address": ADDRESS, "denom": "ujuno"}}})
    )
    assert json.loads(raw) == {"amount": {"denom": "ujuno", "amount": "42"}}
    assert channel.calls == [(BANK + "Balance", {"address": ADDRESS, "denom": "ujuno"})]


@pytest.mark.asyncio
async def test_bank_all_balances_query():
    balances = [{"denom": "ujuno", "amount": "1"}, {"denom": "uatom", "amount": "2"}]
    channel = FakeChannel({BANK + "AllBalances": {"balances": balances}})
    deps = mock_dependencies(channel)
    raw = await deps.querier.raw_query(
        _encode({"bank": {"all_balances": {"address": ADDRESS}}})
    )
    assert json.loads(raw) == {"amount": balances}


@pytest.mark.asyncio
async def test_wasm_smart_query_forwards_message():
    msg = b'{"config":{}}'
    answer = b'{"owner":"someone"}'
    channel = FakeChannel({WASM + "SmartContractState": {"data": answer}})
    querier = WasmMockQuerier(channel)
    raw = await querier.handle_query(
        {"wasm": {"smart": {"contract_addr": "contract", "msg": base64.b64encode(msg).decode()}}}
    )
    assert raw == answer
    assert channel.calls[0][1] == {"address": "contract", "query_data": msg}


@pytest.mark.asyncio
async def test_wasm_raw_query_returns_data():
    channel = FakeChannel({WASM + "RawContractState": {"data": b"value"}})
    querier = WasmMockQuerier(channel)
    raw = await querier.handle_query(
        {"wasm": {"raw": {"contract_addr": "contract", "key": base64.b64encode(b"k").decode()}}}
    )
    assert raw == b"value"
    assert channel.calls[0][1]["query_data"] == b"k"


@pytest.mark.asyncio
async def test_staking_bonded_denom():
    channel = FakeChannel({STAKING + "Params": {"params": {"bond_denom": "ustake"}}})
    raw = await WasmMockQuerier(channel).handle_query({"staking": {"bonded_denom": {}}})
    assert json.loads(raw) == {"denom": "ustake"}


@pytest.mark.asyncio
async def test_staking_all_delegations_skips_missing_delegation():
    responses = [
        {
            "delegation": {"delegator_address": ADDRESS, "validator_address": "val"},
            "balance": {"denom": "ustake", "amount": "7"},
        },
        {"balance": {"denom": "ustake", "amount": "9"}},
    ]
    channel = FakeChannel(
        {STAKING + "DelegatorDelegations": {"delegation_responses": responses}}
    )
    raw = await WasmMockQuerier(channel).handle_query(
        {"staking": {"all_delegations": {"delegator": ADDRESS}}}
    )
    assert json.loads(raw) == {
        "delegations": [
            {
                "delegator": ADDRESS,
                "validator": "val",
                "amount": {"denom": "ustake", "amount": "7"},
            }
        ]
    }


@pytest.mark.asyncio
async def test_invalid_json_is_a_parse_error():
    querier = WasmMockQuerier(FakeChannel({}))
    with pytest.raises(QuerierSystemError) as info:
        await querier.raw_query(b"{not json")
    assert info.value.error.startswith("Parsing query request")
    assert info.value.request == b"{not json"


@pytest.mark.asyncio
async def test_unsupported_module_query():
    request = {"distribution": {"delegator_withdraw_address": {"delegator_address": ADDRESS}}}
    querier = WasmMockQuerier(FakeChannel({}))
    with pytest.raises(QuerierSystemError) as info:
        await querier.raw_query(_encode(request))
    assert info.value.error == QUERIER_ERROR
    assert json.loads(info.value.request) == request


@pytest.mark.asyncio
async def test_unsupported_wasm_and_staking_variants():
    querier = WasmMockQuerier(FakeChannel({}))
    with pytest.raises(QuerierSystemError) as wasm_info:
        await querier.handle_query({"wasm": {"contract_info": {"contract_addr": "c"}}})
    assert wasm_info.value.error == QUERIER_ERROR
    with pytest.raises(QuerierSystemError) as staking_info:
        await querier.handle_query({"staking": {"validator": {"address": "v"}}})
    assert staking_info.value.error == QUERIER_ERROR


@pytest.mark.asyncio
async def test_missing_field_is_a_parse_error():
    querier = WasmMockQuerier(FakeChannel({}))
    with pytest.raises(QuerierSystemError) as info:
        await querier.handle_query({"bank": {"balance": {"address": ADDRESS}}})
    assert "denom" in info.value.error


@pytest.mark.asyncio
async def test_bad_base64_is_a_parse_error():
    querier = WasmMockQuerier(FakeChannel({}))
    with pytest.raises(QuerierSystemError) as info:
        await querier.handle_query(
            {"wasm": {"smart": {"contract_addr": "c", "msg": "!!not base64!!"}}}
        )
    assert info.value.error.startswith("Parsing query request")


@pytest.mark.asyncio
async def test_node_failure_propagates():
    channel = FakeChannel({WASM + "SmartContractState": RuntimeError("contract failed")})
    querier = WasmMockQuerier(channel)
    with pytest.raises(DaemonError) as info:
        await querier.handle_query(
            {"wasm": {"smart": {"contract_addr": "c", "msg": base64.b64encode(b"{}").decode()}}}
        )
    assert not isinstance(info.value, QuerierSystemError)
    assert "contract failed" in str(info.value)


def test_mock_dependencies_start_empty():
    channel = FakeChannel({})
    deps = mock_dependencies(channel)
    assert isinstance(deps, MockDependencies)
    assert deps.storage == {}
    assert deps.querier.channel is channel