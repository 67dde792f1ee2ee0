import pytest

from chaindaemon.gov import Gov, GovProposalStatus
from chaindaemon.querier import Channel, DaemonError


class FakeChannel(Channel):
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def unary(self, path, request):
        self.calls.append((path, request))
        return self.responses[path.rsplit("/", 1)[1]]


def test_proposal_status_values_follow_the_chain():
    statuses = [GovProposalStatus(value) for value in range(6)]
    assert [int(s) for s in statuses] == list(range(6))
    assert GovProposalStatus(3) is GovProposalStatus.PASSED
    with pytest.raises(ValueError):
        GovProposalStatus(6)


@pytest.mark.asyncio
async def test_proposal_and_missing_proposal():
    proposal = {"proposal_id": 4}
    gov = Gov(FakeChannel({"Proposal": {"proposal": proposal}}))
    assert await gov.proposal(4) == proposal
    with pytest.raises(DaemonError):
        await Gov(FakeChannel({"Proposal": {}})).proposal(4)


@pytest.mark.asyncio
async def test_proposals_sends_status_as_number():
    response = {"proposals": []}
    channel = FakeChannel({"Proposals": response})
    result = await Gov(channel).proposals(GovProposalStatus.VOTING_PERIOD, "v", "d")
    assert result == response
    request = channel.calls[0][1]
    assert request["proposal_status"] == int(GovProposalStatus.VOTING_PERIOD)
    assert (request["voter"], request["depositor"], request["pagination"]) == ("v", "d", None)


@pytest.mark.asyncio
async def test_vote_votes_and_params():
    vote = {"voter": "v"}
    channel = FakeChannel(
        {
            "Vote": {"vote": vote},
            "Votes": {"votes": [vote]},
            "Params": {"voting_params": {}},
        }
    )
    gov = Gov(channel)
    assert await gov.vote(1, "v") == vote
    assert await gov.votes(1) == {"votes": [vote]}
    assert await gov.params("voting") == {"voting_params": {}}
    assert channel.calls[2][1] == {"params_type": "voting"}


@pytest.mark.asyncio
async def test_deposit_deposits_and_tally():
    deposit = {"depositor": "d"}
    tally = {"yes": "1"}
    channel = FakeChannel(
        {
            "Deposit": {"deposit": deposit},
            "Deposits": {"deposits": [deposit]},
            "TallyResult": {"tally": tally},
        }
    )
    gov = Gov(channel)
    assert await gov.deposit(2, "d") == deposit
    assert await gov.deposits(2) == {"deposits": [deposit]}
    assert await gov.tally_result(2) == tally
    assert channel.calls[0][1] == {"proposal_id": 2, "depositor": "d"}