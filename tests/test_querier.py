import pytest

from chaindaemon.querier import (
    Channel,
    Coin,
    DaemonError,
    IbcError,
    ModuleQuerier,
    NotEnoughBalance,
    StateAlreadyLocked,
    StateReadOnly,
    TxFailed,
    TxNotFound,
)


class FakeChannel(Channel):
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def unary(self, path, request):
        self.calls.append((path, request))
        if self.error is not None:
            raise self.error
        return self.response


class SampleQuerier(ModuleQuerier):
    SERVICE = "sample.module.Query"


def test_coin_str_joins_amount_and_denom():
    assert str(Coin(100, "ujuno")) == "100ujuno"


def test_coin_rejects_negative_amount():
    with pytest.raises(ValueError):
        Coin(-1, "ujuno")


def test_coin_rejects_amount_beyond_uint128():
    with pytest.raises(ValueError):
        Coin(1 << 128, "ujuno")


def test_coin_rejects_non_integer_amount():
    with pytest.raises(TypeError):
        Coin("5", "ujuno")


def test_errors_are_daemon_errors_with_details():
    err = TxFailed(5, "out of gas")
    assert isinstance(err, DaemonError)
    assert (err.code, err.reason) == (5, "out of gas")
    nf = TxNotFound("ABC", 3)
    assert (nf.tx_hash, nf.retries) == ("ABC", 3)
    bal = NotEnoughBalance(Coin(10, "u"), Coin(1, "u"))
    assert bal.expected == Coin(10, "u") and bal.current == Coin(1, "u")
    assert StateReadOnly("/p").path == "/p"
    assert StateAlreadyLocked("/q").path == "/q"
    assert issubclass(IbcError, DaemonError)


@pytest.mark.asyncio
async def test_query_builds_grpc_path_and_returns_response():
    channel = FakeChannel(response={"value": 7})
    querier = SampleQuerier(channel)
    result = await ModuleQuerier.query(querier, "Thing", {"id": 1})
    assert result == {"value": 7}
    assert channel.calls == [("/sample.module.Query/Thing", {"id": 1})]


@pytest.mark.asyncio
async def test_query_wraps_transport_errors():
    channel = FakeChannel(error=RuntimeError("unavailable"))
    querier = SampleQuerier(channel)
    with pytest.raises(DaemonError) as info:
        await ModuleQuerier.query(querier, "Thing", {})
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_query_passes_daemon_errors_through():
    original = IbcError("bad channel")
    channel = FakeChannel(error=original)
    querier = SampleQuerier(channel)
    with pytest.raises(IbcError) as info:
        await ModuleQuerier.query(querier, "Thing", {})
    assert info.value is original