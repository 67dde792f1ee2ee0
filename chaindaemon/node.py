"""Queries for the Tendermint node: blocks, simulation and transaction lookup."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from chaindaemon.querier import Channel, DaemonError, Message, ModuleQuerier, TxNotFound

logger = logging.getLogger(__name__)

TENDERMINT_SERVICE = "cosmos.base.tendermint.v1beta1.Service"
TX_SERVICE = "cosmos.tx.v1beta1.Service"

DEFAULT_MAX_TX_QUERY_RETRIES = 50
DEFAULT_MIN_BLOCK_SPEED = 1.0

_NANOS_PER_SECOND = 1_000_000_000
_AVERAGE_WINDOW = 50
_BLOCK_WAIT = 1.0
_FIND_TX_SPEED_FACTOR = 0.7
_FIND_TX_BACKOFF = 1.6
_EVENTS_RETRY_DELAY = 10.0
_EVENTS_PAGE_LIMIT = 100

Sleep = Callable[[float], Awaitable[Any]]


class OrderBy(enum.IntEnum):
    """Order in which transactions found by events are returned."""

    UNSPECIFIED = 0
    ASC = 1
    DESC = 2


@dataclass(frozen=True)
class BlockHeader:
    """The parts of a block header the daemon uses."""

    height: int
    time_ns: int
    chain_id: str


@dataclass(frozen=True)
class Block:
    """A block, reduced to its header."""

    header: BlockHeader


@dataclass(frozen=True)
class BlockInfo:
    """Height, time in nanoseconds since the epoch, and chain id of a block."""

    height: int
    time: int
    chain_id: str


def _block_from_response(response: Mapping[str, Any]) -> Block:
    block = response.get("block")
    if block is None:
        raise DaemonError("response is missing the field 'block'")
    header = block.get("header")
    if header is None:
        raise DaemonError("block has no header")
    try:
        height = int(header.get("height", 0))
        time = header.get("time") or {}
        seconds = int(time.get("seconds", 0))
        nanos = int(time.get("nanos", 0))
    except (TypeError, ValueError, AttributeError) as exc:
        raise DaemonError(f"invalid block header: {exc}") from exc
    if height < 0:
        raise DaemonError(f"invalid block height {height}")
    if not 0 <= nanos < _NANOS_PER_SECOND:
        raise DaemonError(f"invalid block time nanos {nanos}")
    return Block(
        BlockHeader(
            height=height,
            time_ns=seconds * _NANOS_PER_SECOND + nanos,
            chain_id=str(header.get("chain_id", "")),
        )
    )


def block_to_block_info(block: Block) -> BlockInfo:
    """Turn a block into its BlockInfo; blocks dated before the epoch are rejected."""
    if block.header.time_ns < 0:
        raise DaemonError("block time is before the unix epoch")
    return BlockInfo(
        height=block.header.height,
        time=block.header.time_ns,
        chain_id=block.header.chain_id,
    )


class _TxService(ModuleQuerier):
    SERVICE = TX_SERVICE


class Node(ModuleQuerier):
    """Queries for block and transaction information of a node."""

    SERVICE = TENDERMINT_SERVICE

    def __init__(
        self,
        channel: Channel,
        *,
        max_tx_query_retries: int = DEFAULT_MAX_TX_QUERY_RETRIES,
        min_block_speed: float = DEFAULT_MIN_BLOCK_SPEED,
        sleep: Sleep | None = None,
    ) -> None:
        super().__init__(channel)
        self._tx = _TxService(channel)
        self.max_tx_query_retries = max_tx_query_retries
        self.min_block_speed = min_block_speed
        self._sleep: Sleep = sleep if sleep is not None else asyncio.sleep

    async def info(self) -> Message:
        """Return information about the node."""
        return await self.query("GetNodeInfo", {})

    async def syncing(self) -> bool:
        """Return whether the node is still syncing."""
        response = await self.query("GetSyncing", {})
        return bool(response.get("syncing", False))

    async def latest_block(self) -> Block:
        """Return the latest block."""
        return _block_from_response(await self.query("GetLatestBlock", {}))

    async def block_by_height(self, height: int) -> Block:
        """Return the block at ``height``."""
        return _block_from_response(await self.query("GetBlockByHeight", {"height": height}))

    async def average_block_speed(self, multiplier: float | None = None) -> float:
        """Return the average block time in seconds over the last 50 blocks or since the start.

        The time is scaled by ``multiplier`` when one is given.
        """
        latest = await self.latest_block()
        latest_time = latest.header.time_ns
        height = latest.header.height
        while height <= 1:
            await self._sleep(_BLOCK_WAIT)
            latest = await self.latest_block()
            height = latest.header.height

        avg_period = min(height - 1, _AVERAGE_WINDOW)
        past = await self.block_by_height(height - avg_period)
        elapsed = latest_time - past.header.time_ns
        if elapsed < 0:
            raise DaemonError("latest block is older than an earlier block")
        speed = elapsed / avg_period / _NANOS_PER_SECOND
        if multiplier is not None:
            speed *= multiplier
        return speed

    async def latest_validator_set(self, pagination: Message | None = None) -> Message:
        """Return the latest validator set."""
        return await self.query("GetLatestValidatorSet", {"pagination": pagination})

    async def validator_set_by_height(
        self, height: int, pagination: Message | None = None
    ) -> Message:
        """Return the validator set at ``height``."""
        return await self.query(
            "GetValidatorSetByHeight", {"height": height, "pagination": pagination}
        )

    async def block_height(self) -> int:
        """Return the current block height."""
        return (await self.latest_block()).header.height

    async def block_time(self) -> int:
        """Return the time of the latest block in nanoseconds since the epoch."""
        return block_to_block_info(await self.latest_block()).time

    async def simulate_tx(self, tx_bytes: bytes) -> int:
        """Simulate a signed transaction and return the gas it uses."""
        response = await self._tx.query("Simulate", {"tx": None, "tx_bytes": bytes(tx_bytes)})
        gas_info = self._field(response, "gas_info")
        return int(gas_info.get("gas_used", 0))

    async def block_info(self) -> BlockInfo:
        """Return the BlockInfo of the latest block."""
        return block_to_block_info(await self.latest_block())

    async def find_tx(self, tx_hash: str, retries: int | None = None) -> Message:
        """Look a transaction up by hash, waiting longer after each miss."""
        if retries is None:
            retries = self.max_tx_query_retries
        block_speed = max(
            await self.average_block_speed(_FIND_TX_SPEED_FACTOR), self.min_block_speed
        )
        for _ in range(retries):
            try:
                response = await self._tx.query("GetTx", {"hash": tx_hash})
            except DaemonError as err:
                block_speed *= _FIND_TX_BACKOFF
                logger.debug("TX not found with error: %s", err)
                logger.debug("Waiting %d milli-seconds", int(block_speed * 1000))
                await self._sleep(block_speed)
                continue
            tx_response = self._field(response, "tx_response")
            logger.debug("TX found: %r", tx_response)
            return tx_response
        raise TxNotFound(tx_hash, retries)

    async def find_tx_by_events(
        self,
        events: Sequence[str],
        page: int | None = None,
        order_by: OrderBy | None = None,
        retry_on_empty: bool = False,
        retries: int | None = None,
    ) -> list[Message]:
        """Look transactions up by events.

        With ``retry_on_empty`` an empty answer counts as a miss, so the result is
        never empty.
        """
        if retries is None:
            retries = self.max_tx_query_retries
        events = list(events)
        request = {
            "events": events,
            "pagination": None,
            "order_by": int(order_by if order_by is not None else OrderBy.DESC),
            "page": page if page is not None else 0,
            "limit": _EVENTS_PAGE_LIMIT,
            "query": " AND ".join(events),
        }
        for _ in range(retries):
            try:
                response = await self._tx.query("GetTxsEvent", request)
            except DaemonError as err:
                logger.debug("TX not found with error: %s", err)
                logger.debug("Waiting 10s")
                await self._sleep(_EVENTS_RETRY_DELAY)
                continue
            tx_responses = list(response.get("tx_responses", []))
            if retry_on_empty and not tx_responses:
                logger.debug("No TX found with events %r", events)
                logger.debug("Waiting 10s")
                await self._sleep(_EVENTS_RETRY_DELAY)
                continue
            logger.debug(
                "TX found by events: %r", [tx.get("txhash") for tx in tx_responses]
            )
            return tx_responses
        raise TxNotFound(f"with events {events!r}", self.max_tx_query_retries)