"""Signing account that simulates, funds and broadcasts transactions."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Protocol, Sequence

from chaindaemon.bank import Bank
from chaindaemon.cosmwasm import bech32_decode
from chaindaemon.node import TX_SERVICE, Node
from chaindaemon.querier import (
    Channel,
    ChainKind,
    Coin,
    DaemonError,
    Message,
    ModuleQuerier,
    NotEnoughBalance,
)
from chaindaemon.tx_broadcaster import (
    TxBroadcaster,
    account_sequence_strategy,
    assert_broadcast_code_response,
    insufficient_fee_strategy,
)

logger = logging.getLogger(__name__)

GAS_BUFFER = 1.3
BUFFER_THRESHOLD = 200_000
SMALL_GAS_BUFFER = 1.4
TIMEOUT_BLOCKS = 10

MSG_SEND_TYPE_URL = "/cosmos.bank.v1beta1.MsgSend"
MSG_EXEC_TYPE_URL = "/cosmos.authz.v1beta1.MsgExec"
BROADCAST_MODE_SYNC = 2

LOCAL_MNEMONIC_ENV_NAME = "LOCAL_MNEMONIC"
TEST_MNEMONIC_ENV_NAME = "TEST_MNEMONIC"
MAIN_MNEMONIC_ENV_NAME = "MAIN_MNEMONIC"

_MNEMONIC_ENV_NAMES = {
    "LOCAL": LOCAL_MNEMONIC_ENV_NAME,
    "TESTNET": TEST_MNEMONIC_ENV_NAME,
    "MAINNET": MAIN_MNEMONIC_ENV_NAME,
}


class TxBuilder(Protocol):
    """What the sender needs from a transaction builder."""

    async def simulate(self, sender: "Sender") -> int: ...

    async def build(self, sender: "Sender") -> bytes: ...

    def fee_amount(self, amount: int) -> None: ...


class Signer(Protocol):
    """What the sender needs from a signing key.

    ``address`` is the bech32 account address of the key; ``with_hd_index``
    derives the key at another HD index; ``tx_builder`` prepares a transaction
    with the given messages, memo and timeout height.
    """

    address: str

    def with_hd_index(self, index: int) -> "Signer": ...

    def tx_builder(
        self, msgs: Sequence[Message], memo: str | None, timeout_height: int
    ) -> TxBuilder: ...


@dataclass(frozen=True)
class SenderOptions:
    """How transactions of a sender are constructed."""

    authz_granter: str | None = None
    fee_granter: str | None = None
    hd_index: int | None = None

    def with_authz_granter(self, granter: Any) -> "SenderOptions":
        """Return options that send every message on behalf of ``granter``."""
        return replace(self, authz_granter=str(granter))

    def with_fee_granter(self, granter: Any) -> "SenderOptions":
        """Return options whose fees are paid by ``granter``."""
        return replace(self, fee_granter=str(granter))

    def with_hd_index(self, index: int) -> "SenderOptions":
        """Return options that derive the key at HD index ``index``."""
        if index < 0:
            raise ValueError("hd index must not be negative")
        return replace(self, hd_index=index)


@dataclass(frozen=True)
class GasSettings:
    """Gas and balance behaviour of a sender.

    ``gas_buffer`` replaces the default buffers when set; ``min_gas`` is a floor
    for the expected gas; ``wallet_balance_assertion`` checks the balance during
    simulation; ``manual_interaction`` asks the user to top the wallet up.
    """

    gas_buffer: float | None = None
    min_gas: int | None = None
    wallet_balance_assertion: bool = True
    manual_interaction: bool = True


class _TxService(ModuleQuerier):
    SERVICE = TX_SERVICE


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _len_field(number: int, payload: bytes) -> bytes:
    return _varint(number << 3 | 2) + _varint(len(payload)) + payload


def _encode_any(msg: Mapping[str, Any]) -> bytes:
    return _len_field(1, str(msg["type_url"]).encode()) + _len_field(2, bytes(msg["value"]))


def _encode_coin(coin: Coin) -> bytes:
    return _len_field(1, coin.denom.encode()) + _len_field(2, str(coin.amount).encode())


def _encode_msg_exec(grantee: str, msgs: Iterable[Mapping[str, Any]]) -> bytes:
    body = _len_field(1, grantee.encode())
    for msg in msgs:
        body += _len_field(2, _encode_any(msg))
    return body


def _encode_msg_send(from_address: str, to_address: str, amount: Iterable[Coin]) -> bytes:
    body = _len_field(1, from_address.encode()) + _len_field(2, to_address.encode())
    for coin in amount:
        body += _len_field(3, _encode_coin(coin))
    return body


def _check_address(address: str) -> str:
    try:
        bech32_decode(address)
    except (ValueError, TypeError, DaemonError) as exc:
        raise DaemonError(f"invalid account address {address!r}: {exc}") from exc
    return address


class Sender:
    """Signs, simulates and broadcasts transactions for one account on one chain."""

    def __init__(
        self,
        chain_info: Any,
        channel: Channel,
        signer: Signer,
        options: SenderOptions | None = None,
        gas_settings: GasSettings | None = None,
    ) -> None:
        self.chain_info = chain_info
        self.channel = channel
        self.options = options if options is not None else SenderOptions()
        self.gas_settings = gas_settings if gas_settings is not None else GasSettings()
        if self.options.hd_index is not None:
            signer = signer.with_hd_index(self.options.hd_index)
        self.signer = signer
        logger.info(
            "Interacting with %s using address: %s", chain_info.chain_id, self.address()
        )

    def set_authz_granter(self, granter: str) -> None:
        """Send every following message on behalf of ``granter``."""
        self.options = replace(self.options, authz_granter=str(granter))

    def set_fee_granter(self, granter: str) -> None:
        """Have ``granter`` pay the fees of following transactions."""
        self.options = replace(self.options, fee_granter=str(granter))

    def set_options(self, options: SenderOptions) -> None:
        """Replace the options; a new HD index derives a new key."""
        if options.hd_index is not None:
            self.signer = self.signer.with_hd_index(options.hd_index)
        self.options = options

    def address(self) -> str:
        """Return the address of the signing key."""
        return str(self.signer.address)

    def msg_sender(self) -> str:
        """Return the sender of every message: the authz granter if one is set."""
        if self.options.authz_granter is not None:
            return _check_address(self.options.authz_granter)
        return self.address()

    def fee_token(self) -> str:
        """Return the denomination fees are paid in."""
        return str(self.chain_info.gas_denom)

    def get_fee_from_gas(self, gas: int) -> tuple[int, int]:
        """Return the gas to submit with and the fee amount for ``gas`` simulated gas."""
        settings = self.gas_settings
        if settings.gas_buffer is not None:
            gas_expected = gas * settings.gas_buffer
        elif gas < BUFFER_THRESHOLD:
            gas_expected = gas * SMALL_GAS_BUFFER
        else:
            gas_expected = gas * GAS_BUFFER
        if settings.min_gas is not None:
            gas_expected = max(float(settings.min_gas), gas_expected)
        fee_amount = gas_expected * (self.chain_info.gas_price + 0.00001)
        return int(gas_expected), int(fee_amount)

    async def _timeout_height(self) -> int:
        return await Node(self.channel).block_height() + TIMEOUT_BLOCKS

    async def simulate(
        self, msgs: Sequence[Message], memo: str | None = None
    ) -> tuple[int, Coin]:
        """Simulate the messages; return the gas to submit with and the expected fee."""
        timeout_height = await self._timeout_height()
        builder = self.signer.tx_builder(list(msgs), memo, timeout_height)
        gas_needed = await builder.simulate(self)
        gas_for_submission, fee_amount = self.get_fee_from_gas(gas_needed)
        expected_fee = Coin(fee_amount, self.fee_token())
        if self.gas_settings.wallet_balance_assertion:
            await self.assert_wallet_balance(expected_fee)
        return gas_for_submission, expected_fee

    async def bank_send(self, recipient: str, coins: Iterable[Coin]) -> Message:
        """Send ``coins`` to ``recipient``."""
        msg = {
            "type_url": MSG_SEND_TYPE_URL,
            "value": _encode_msg_send(
                self.msg_sender(), _check_address(recipient), list(coins)
            ),
        }
        return await self.commit_tx_any([msg], "sending tokens")

    async def commit_tx_any(
        self, msgs: Sequence[Message], memo: str | None = None
    ) -> Message:
        """Sign and broadcast the messages and return the included transaction.

        Messages are wrapped in an authz exec when an authz granter is set.
        """
        timeout_height = await self._timeout_height()
        msgs = list(msgs)
        if self.options.authz_granter is not None:
            msgs = [
                {
                    "type_url": MSG_EXEC_TYPE_URL,
                    "value": _encode_msg_exec(self.address(), msgs),
                }
            ]
        builder = self.signer.tx_builder(msgs, memo, timeout_height)
        tx_response = await (
            TxBroadcaster()
            .add_strategy(insufficient_fee_strategy())
            .add_strategy(account_sequence_strategy())
            .broadcast(builder, self)
        )
        found = await Node(self.channel).find_tx(str(tx_response.get("txhash", "")))
        return assert_broadcast_code_response(found)

    async def broadcast_tx(self, tx: bytes) -> Message:
        """Broadcast signed transaction bytes and return the node's response."""
        service = _TxService(self.channel)
        response = await service.query(
            "BroadcastTx", {"tx_bytes": bytes(tx), "mode": BROADCAST_MODE_SYNC}
        )
        return service._field(response, "tx_response")

    async def has_enough_balance_for_gas(self, gas: int) -> None:
        """Raise NotEnoughBalance unless the fee for ``gas`` can be paid."""
        _, fee_amount = self.get_fee_from_gas(gas)
        await self.assert_wallet_balance(Coin(fee_amount, self.fee_token()))

    async def assert_wallet_balance(self, fee: Coin) -> None:
        """Raise NotEnoughBalance unless the wallet holds at least ``fee``.

        With manual interaction the user may top the wallet up and answer 'y'
        to check again.
        """
        bank = Bank(self.channel)
        while True:
            balance = (await bank.balance(self.address(), fee.denom))[0]
            logger.debug(
                "Checking balance %s on chain %s, address %s. Expecting %s%s",
                balance.amount,
                self.chain_info.chain_id,
                self.address(),
                fee,
                fee.denom,
            )
            if balance.amount >= fee.amount:
                logger.debug("The wallet has enough balance to deploy")
                return
            print(
                f"Not enough funds on chain {self.chain_info.chain_id} at address "
                f"{self.address()} to deploy the contract.\n"
                f"    Needed: {fee}{fee.denom} but only have: {balance}.\n"
                "    Press 'y' when the wallet balance has been increased to resume deployment"
            )
            if not self.gas_settings.manual_interaction:
                print("No Manual Interactions, defaulting to 'no'")
                raise NotEnoughBalance(fee, balance)
            answer = sys.stdin.readline()
            if "y" not in answer.lower():
                raise NotEnoughBalance(fee, balance)


def mnemonic_env_name(chain_kind: ChainKind) -> str:
    """Return the environment variable holding the mnemonic for a kind of chain."""
    try:
        return _MNEMONIC_ENV_NAMES[chain_kind.name.upper()]
    except KeyError:
        raise DaemonError(f"no mnemonic variable for chain kind {chain_kind!r}") from None


def get_mnemonic_env(
    chain_kind: ChainKind, environ: Mapping[str, str] | None = None
) -> str:
    """Return the mnemonic for a kind of chain from the environment."""
    env = os.environ if environ is None else environ
    name = mnemonic_env_name(chain_kind)
    value = env.get(name)
    if value is None:
        raise DaemonError(f"environment variable {name} is not present")
    return value