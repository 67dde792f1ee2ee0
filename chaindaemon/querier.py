"""Shared building blocks for the module queriers: errors, coins, chain data and the channel."""

from __future__ import annotations

import abc
import enum
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

logger = logging.getLogger(__name__)

Message = Mapping[str, Any]

_UINT128_LIMIT = 1 << 128


class DaemonError(Exception):
    """Base error raised by the daemon and its queriers."""


class TxFailed(DaemonError):
    """A transaction was answered with a non-zero result code."""

    def __init__(self, code: int, reason: str) -> None:
        super().__init__(f"tx failed with code {code}: {reason}")
        self.code = code
        self.reason = reason


class InsufficientFee(DaemonError):
    """The fee paid was too low and no better fee could be worked out."""

    def __init__(self, raw_log: str) -> None:
        super().__init__(f"insufficient fee: {raw_log}")
        self.raw_log = raw_log


class TxNotFound(DaemonError):
    """A transaction could not be found within the allowed number of retries."""

    def __init__(self, tx_hash: str, retries: int) -> None:
        super().__init__(f"tx {tx_hash} not found after {retries} retries")
        self.tx_hash = tx_hash
        self.retries = retries


class NotEnoughBalance(DaemonError):
    """The wallet holds less than the expected amount."""

    def __init__(self, expected: "Coin", current: "Coin") -> None:
        super().__init__(f"not enough balance: expected {expected}, current {current}")
        self.expected = expected
        self.current = current


class StateReadOnly(DaemonError):
    """A write was attempted on a read-only state file."""

    def __init__(self, path: str) -> None:
        super().__init__(f"state file {path} is read-only")
        self.path = path


class StateAlreadyLocked(DaemonError):
    """The state file is already held by another daemon in this process."""

    def __init__(self, path: str) -> None:
        super().__init__(f"state file {path} is already locked by another daemon")
        self.path = path


class IbcError(DaemonError):
    """An IBC query returned something unusable."""


@dataclass(frozen=True)
class Coin:
    """An amount of a single denomination."""

    amount: int
    denom: str

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError("coin amount must be an integer")
        if not 0 <= self.amount < _UINT128_LIMIT:
            raise ValueError(f"coin amount {self.amount} is out of range")

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


class ChainKind(enum.Enum):
    """The kind of network a chain belongs to."""

    LOCAL = "local"
    TESTNET = "testnet"
    MAINNET = "mainnet"


@dataclass(frozen=True)
class ChainInfo:
    """What the daemon needs to know about a chain."""

    chain_id: str
    chain_name: str
    kind: ChainKind
    grpc_urls: tuple[str, ...] = ()
    gas_denom: str = ""
    gas_price: float = 0.0
    pub_address_prefix: str = ""
    coin_type: int = 118


class Channel(abc.ABC):
    """A connection to a node able to answer unary gRPC calls.

    Requests and responses are messages given as mappings of field names to values.
    """

    @abc.abstractmethod
    async def unary(self, path: str, request: Message) -> Message:
        """Send ``request`` to the method at ``path`` and return the response."""


class ModuleQuerier:
    """Base for the queriers of one Cosmos SDK module."""

    SERVICE: ClassVar[str] = ""

    def __init__(self, channel: Channel) -> None:
        self.channel = channel

    async def query(self, method: str, request: Message) -> Message:
        """Call ``method`` of this module's query service and return its response."""
        path = f"/{self.SERVICE}/{method}"
        try:
            response = await self.channel.unary(path, request)
        except DaemonError:
            raise
        except Exception as exc:
            raise DaemonError(f"query {path} failed: {exc}") from exc
        logger.debug("query %s with %r resulted in: %r", path, request, response)
        return response

    @staticmethod
    def _field(response: Message, name: str) -> Any:
        value = response.get(name)
        if value is None:
            raise DaemonError(f"response is missing the field {name!r}")
        return value