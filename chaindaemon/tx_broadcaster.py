"""Broadcasting transactions with retry strategies for recoverable errors."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from chaindaemon.node import Node
from chaindaemon.querier import DaemonError, InsufficientFee, TxFailed

logger = logging.getLogger(__name__)

_UINT128_LIMIT = 1 << 128

TxResponse = Mapping[str, Any]
Outcome = Union[TxResponse, DaemonError]
StrategyAction = Callable[[Any, Outcome], None]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class BroadcastRetry:
    """How many times a strategy may retry; a limit of None means without end."""

    limit: Optional[int] = None

    @classmethod
    def infinite(cls) -> "BroadcastRetry":
        return cls(None)

    @classmethod
    def finite(cls, limit: int) -> "BroadcastRetry":
        if limit < 0:
            raise ValueError("retry limit must not be negative")
        return cls(limit)

    @property
    def is_infinite(self) -> bool:
        return self.limit is None


@dataclass
class RetryStrategy:
    """When and how to retry submitting a transaction.

    ``broadcast_condition`` is checked against a transaction response that came
    back; ``simulation_condition`` against an error raised while building or
    broadcasting. When one of them holds and retries remain, ``action`` may adjust
    the transaction builder before the transaction is submitted again.
    """

    broadcast_condition: Callable[[TxResponse], bool]
    simulation_condition: Callable[[DaemonError], bool]
    action: Optional[StrategyAction] = None
    max_retries: BroadcastRetry = BroadcastRetry.infinite()
    reason: str = ""
    current_retries: int = 0

    def condition_met(self, tx_response: Outcome) -> bool:
        """Return whether this strategy applies to the outcome of a submission."""
        if isinstance(tx_response, DaemonError):
            return bool(self.simulation_condition(tx_response))
        return bool(self.broadcast_condition(tx_response))

    def can_retry(self) -> bool:
        """Count one retry and return whether it is still allowed."""
        if self.max_retries.is_infinite:
            return True
        self.current_retries += 1
        return self.current_retries <= self.max_retries.limit


class TxBroadcaster:
    """Submits a transaction and retries it according to its strategies.

    Strategies are tried in the order they were added; on each pass every
    strategy whose condition holds triggers one resubmission.
    """

    def __init__(
        self, strategies: Iterable[RetryStrategy] = (), *, sleep: Sleep | None = None
    ) -> None:
        self.strategies = list(strategies)
        self._sleep: Sleep = sleep if sleep is not None else asyncio.sleep

    def add_strategy(self, strategy: RetryStrategy) -> "TxBroadcaster":
        """Append a retry strategy and return the broadcaster."""
        self.strategies.append(strategy)
        return self

    async def broadcast(self, tx_builder: Any, wallet: Any) -> TxResponse:
        """Build, sign and broadcast the transaction, retrying where a strategy allows.

        ``tx_builder`` must offer ``async build(wallet)``; ``wallet`` must offer
        ``async broadcast_tx(tx)`` and a ``channel`` to the node.
        """
        tx_response = await self._attempt(tx_builder, wallet)
        logger.info("Awaiting TX inclusion in block...")
        retry = True
        while retry:
            retry = False
            for strategy in self.strategies:
                if strategy.condition_met(tx_response) and strategy.can_retry():
                    if strategy.action is not None:
                        strategy.action(tx_builder, tx_response)
                    retry = True
                    node = Node(wallet.channel, sleep=self._sleep)
                    block_speed = await node.average_block_speed(None)
                    logger.warning(
                        "Retrying broadcasting TX in %d milliseconds because of %s",
                        int(block_speed * 1000),
                        strategy.reason,
                    )
                    await self._sleep(block_speed)
                    tx_response = await self._attempt(tx_builder, wallet)
        if isinstance(tx_response, DaemonError):
            raise tx_response
        return tx_response

    @staticmethod
    async def _attempt(tx_builder: Any, wallet: Any) -> Outcome:
        try:
            tx = await tx_builder.build(wallet)
            tx_response = await wallet.broadcast_tx(tx)
            logger.debug("TX broadcast response: %r", tx_response)
            return assert_broadcast_code_response(tx_response)
        except DaemonError as err:
            return err


def assert_broadcast_code_response(tx_response: TxResponse) -> TxResponse:
    """Return the response if its code is 0, otherwise raise TxFailed."""
    code = int(tx_response.get("code", 0))
    if code == 0:
        return tx_response
    raise TxFailed(code, str(tx_response.get("raw_log", "")))


def has_insufficient_fee(raw_log: str) -> bool:
    """Return whether a log reports an insufficient fee."""
    return "insufficient fees" in raw_log


def has_account_sequence_error(raw_log: str) -> bool:
    """Return whether a log reports a wrong account sequence."""
    return "incorrect account sequence" in raw_log


def _parse_u128(text: str) -> int | None:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    value = int(digits)
    return value if value < _UINT128_LIMIT else None


def parse_suggested_fee(raw_log: str) -> int | None:
    """Extract the required fee, in the denomination that was paid, from a node log.

    The log looks like ``insufficient fees; got: 14867ujuno required:
    17771ibc/...,444255ujuno: insufficient fee``.
    """
    parts = raw_log.split("required: ")
    if len(parts) != 2:
        return None
    got_parts = parts[0].split()
    if not got_parts:
        return None
    paid_fee_with_denom = got_parts[-1]
    start = next((i for i, c in enumerate(paid_fee_with_denom) if not c.isnumeric()), None)
    if start is None:
        return None
    denomination = paid_fee_with_denom[start:]
    logger.debug("denom: %s", denomination)

    required_fees = parts[1].split(denomination)
    logger.debug("required fees: %r", required_fees)

    first = required_fees[0]
    end = next(
        (i for i, c in reversed(list(enumerate(first))) if not c.isnumeric()), None
    )
    if end is None:
        return None
    suggested_fee = first[end:]
    logger.debug("suggested fee: %s", suggested_fee)

    parsed = _parse_u128(suggested_fee)
    if parsed is not None:
        return parsed
    # The leading character is usually a comma separating the required fees.
    return _parse_u128(suggested_fee[1:])


def _raise_fee(tx_builder: Any, tx_response: Outcome) -> None:
    if isinstance(tx_response, DaemonError):
        raise tx_response
    raw_log = str(tx_response.get("raw_log", ""))
    new_fee = parse_suggested_fee(raw_log)
    if new_fee is None:
        raise InsufficientFee(raw_log)
    tx_builder.fee_amount(new_fee)


def insufficient_fee_strategy() -> RetryStrategy:
    """Retry once with the fee the node asked for."""
    return RetryStrategy(
        broadcast_condition=lambda r: has_insufficient_fee(str(r.get("raw_log", ""))),
        simulation_condition=lambda _err: False,
        action=_raise_fee,
        max_retries=BroadcastRetry.finite(1),
        reason="an insufficient fee error",
    )


def account_sequence_strategy() -> RetryStrategy:
    """Retry as long as the node reports a wrong account sequence."""
    return RetryStrategy(
        broadcast_condition=lambda r: has_account_sequence_error(str(r.get("raw_log", ""))),
        simulation_condition=lambda err: has_account_sequence_error(str(err)),
        action=None,
        max_retries=BroadcastRetry.infinite(),
        reason="an account sequence error",
    )