import pytest

from chaindaemon.bank import Bank, coin_from_proto, coins_from_proto
from chaindaemon.querier import Channel, Coin, DaemonError


class FakeChannel(Channel):
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def unary(self, path, request):
        self.calls.append((path, request))
        return self.responses[path.rsplit("/", 1)[1]]


def test_coin_from_proto_parses_amount():
    assert coin_from_proto({"denom": "ujuno", "amount": "42"}) == Coin(42, "ujuno")


def test_coin_from_proto_rejects_bad_amount():
    with pytest.raises(ValueError):
        coin_from_proto({"denom": "ujuno", "amount": "4x2"})


def test_coins_from_proto_keeps_order():
    coins = coins_from_proto([{"denom": "a", "amount": "1"}, {"denom": "b", "amount": "2"}])
    assert coins == [Coin(1, "a"), Coin(2, "b")]
    assert coins_from_proto([]) == []


@pytest.mark.asyncio
async def test_balance_with_denom():
    channel = FakeChannel({"Balance": {"balance": {"denom": "ujuno", "amount": "42"}}})
    result = await Bank(channel).balance("addr", "ujuno")
    assert result == [Coin(42, "ujuno")]
    path, request = channel.calls[0]
    assert path.startswith("/" + Bank.SERVICE)
    assert request == {"address": "addr", "denom": "ujuno"}


@pytest.mark.asyncio
async def test_balance_without_denom_returns_all():
    balances = [{"denom": "a", "amount": "1"}, {"denom": "b", "amount": "3"}]
    channel = FakeChannel({"AllBalances": {"balances": balances}})
    result = await Bank(channel).balance("addr")
    assert result == [Coin(1, "a"), Coin(3, "b")]
    assert channel.calls[0][1] == {"address": "addr"}


@pytest.mark.asyncio
async def test_balance_missing_field_raises():
    channel = FakeChannel({"Balance": {}})
    with pytest.raises(DaemonError):
        await Bank(channel).balance("addr", "ujuno")


@pytest.mark.asyncio
async def test_spendable_and_total_supply():
    channel = FakeChannel(
        {
            "SpendableBalances": {"balances": [{"denom": "a", "amount": "5"}]},
            "TotalSupply": {"supply": [{"denom": "a", "amount": "9"}]},
        }
    )
    bank = Bank(channel)
    assert await bank.spendable_balances("addr") == [Coin(5, "a")]
    assert await bank.total_supply() == [Coin(9, "a")]
    assert channel.calls[0][1] == {"address": "addr", "pagination": None}
    assert channel.calls[1][1] == {"pagination": None}


@pytest.mark.asyncio
async def test_supply_of():
    channel = FakeChannel({"SupplyOf": {"amount": {"denom": "a", "amount": "11"}}})
    assert await Bank(channel).supply_of("a") == Coin(11, "a")
    assert channel.calls[0][1] == {"denom": "a"}


@pytest.mark.asyncio
async def test_params_and_metadata():
    params = {"default_send_enabled": True}
    meta = {"base": "a", "display": "A"}
    channel = FakeChannel(
        {
            "Params": {"params": params},
            "DenomMetadata": {"metadata": meta},
            "DenomsMetadata": {"metadatas": [meta]},
        }
    )
    bank = Bank(channel)
    assert await bank.params() == params
    assert await bank.denom_metadata("a") == meta
    page = {"limit": 10}
    assert await bank.denoms_metadata(page) == [meta]
    assert channel.calls[2][1] == {"pagination": page}