import pytest

from chaindaemon.feegrant import FeeGrant
from chaindaemon.querier import Channel, DaemonError


class FakeChannel(Channel):
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def unary(self, path, request):
        self.calls.append((path, request))
        return self.responses[path.rsplit("/", 1)[1]]


@pytest.mark.asyncio
async def test_allowance_returns_grant():
    grant = {"granter": "g1", "grantee": "g2"}
    channel = FakeChannel({"Allowance": {"allowance": grant}})
    assert await FeeGrant(channel).allowance("g1", "g2") == grant
    assert channel.calls[0][1] == {"granter": "g1", "grantee": "g2"}


@pytest.mark.asyncio
async def test_allowance_missing_raises():
    channel = FakeChannel({"Allowance": {}})
    with pytest.raises(DaemonError):
        await FeeGrant(channel).allowance("g1", "g2")


@pytest.mark.asyncio
async def test_allowances_lists_grants_and_defaults_to_empty():
    grant = {"granter": "g1", "grantee": "g2"}
    channel = FakeChannel({"Allowances": {"allowances": [grant]}})
    assert await FeeGrant(channel).allowances("g2") == [grant]
    assert channel.calls[0][1] == {"grantee": "g2", "pagination": None}
    empty = FakeChannel({"Allowances": {}})
    assert await FeeGrant(empty).allowances("g2") == []