"""Queries for the Cosmos governance module."""

from __future__ import annotations

import enum

from chaindaemon.querier import Message, ModuleQuerier


class GovProposalStatus(enum.IntEnum):
    """Status of a governance proposal."""

    UNSPECIFIED = 0
    DEPOSIT_PERIOD = 1
    VOTING_PERIOD = 2
    PASSED = 3
    REJECTED = 4
    FAILED = 5


class Gov(ModuleQuerier):
    """Queries for the governance module."""

    SERVICE = "cosmos.gov.v1beta1.Query"

    async def proposal(self, proposal_id: int) -> Message:
        """Return the proposal with ``proposal_id``."""
        response = await self.query("Proposal", {"proposal_id": proposal_id})
        return self._field(response, "proposal")

    async def proposals(
        self,
        proposal_status: GovProposalStatus,
        voter: str,
        depositor: str,
        pagination: Message | None = None,
    ) -> Message:
        """Return the proposals with the given status, voter and depositor."""
        return await self.query(
            "Proposals",
            {
                "proposal_status": int(proposal_status),
                "voter": voter,
                "depositor": depositor,
                "pagination": pagination,
            },
        )

    async def vote(self, proposal_id: int, voter: str) -> Message:
        """Return the vote of ``voter`` on a proposal."""
        response = await self.query("Vote", {"proposal_id": proposal_id, "voter": voter})
        return self._field(response, "vote")

    async def votes(self, proposal_id: int, pagination: Message | None = None) -> Message:
        """Return the votes on a proposal."""
        return await self.query(
            "Votes", {"proposal_id": int(proposal_id), "pagination": pagination}
        )

    async def params(self, params_type: str) -> Message:
        """Return the governance parameters of the given type."""
        return await self.query("Params", {"params_type": params_type})

    async def deposit(self, proposal_id: int, depositor: str) -> Message:
        """Return the deposit of ``depositor`` on a proposal."""
        response = await self.query(
            "Deposit", {"proposal_id": proposal_id, "depositor": depositor}
        )
        return self._field(response, "deposit")

    async def deposits(self, proposal_id: int, pagination: Message | None = None) -> Message:
        """Return the deposits on a proposal."""
        return await self.query(
            "Deposits", {"proposal_id": proposal_id, "pagination": pagination}
        )

    async def tally_result(self, proposal_id: int) -> Message:
        """Return the vote tally of a proposal."""
        response = await self.query("TallyResult", {"proposal_id": proposal_id})
        return self._field(response, "tally")