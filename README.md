# chaindaemon

Query clients, transaction broadcasting helpers and deployment state for
Cosmos SDK chains.

## Installation

```
pip install chaindaemon
```

The package has no runtime dependencies beyond the standard library.

## Channels

Every querier talks to a node through a `chaindaemon.querier.Channel`. A
channel is an abstract class with a single coroutine,
`unary(path, request)`, that sends a request (a mapping of field names to
values) to a gRPC method path such as `/cosmos.bank.v1beta1.Query/Balance`
and returns the response as a mapping. The package does not ship a network
transport: you supply a `Channel` subclass backed by the gRPC client of your
choice, or a fake one in tests.

```python
from chaindaemon.querier import Channel


class FakeChannel(Channel):
    def __init__(self, answers):
        self.answers = answers

    async def unary(self, path, request):
        return self.answers[path]
```

Failures raised by a channel are wrapped in `DaemonError`.

## Queriers

Each querier subclasses `ModuleQuerier`; its query methods are coroutines.

| Module | Class | Covers |
| --- | --- | --- |
| `chaindaemon.bank` | `Bank` | balances, spendable balances, supply, params, denom metadata |
| `chaindaemon.authz` | `Authz` | grants, grantee grants, granter grants |
| `chaindaemon.feegrant` | `FeeGrant` | allowance, allowances |
| `chaindaemon.gov` | `Gov` | proposals, votes, deposits, params, tally results |
| `chaindaemon.staking` | `Staking` | validators, delegations, unbonding, redelegations, pool, params |
| `chaindaemon.cosmwasm` | `CosmWasm` | code and contract info, raw and smart state, instantiate2 addresses |
| `chaindaemon.node` | `Node` | blocks, validator sets, simulation, finding transactions |
| `chaindaemon.ibc` | `Ibc` | transfer, client, connection, channel and packet queries |

```python
from chaindaemon.bank import Bank
from chaindaemon.staking import Staking, StakingBondStatus


async def show(channel):
    for coin in await Bank(channel).balance("juno1...", None):
        print(coin)  # e.g. 100ujuno

    for validator in await Staking(channel).validators(StakingBondStatus.BONDED):
        print(validator.address, validator.commission)
```

Some results are turned into typed values: `Coin`, `Validator`,
`Delegation`, `CodeInfo`, `ContractInfo`, `Block` and `BlockInfo`. Others are
returned as the response mappings.

`Node.average_block_speed` returns seconds per block over the last 50 blocks
(or since the start of the chain). `Node.find_tx` looks a transaction up by
hash, waiting longer after each miss, and `Node.find_tx_by_events` searches
by events; both raise `TxNotFound` once their retries are spent. The number
of retries, the minimum wait and the sleep function are set on the `Node`
constructor.

`chaindaemon.cosmwasm` also provides `bech32_encode`, `bech32_decode` and
`instantiate2_address`.

## Testing contracts against a live chain

`chaindaemon.live_mock.mock_dependencies(channel)` returns a
`MockDependencies` with an empty in-memory `storage` dictionary and a
`WasmMockQuerier`. The querier's coroutines `raw_query` (JSON bytes in) and
`handle_query` (parsed request in) answer bank balance and all-balances
queries, wasm smart and raw queries, and the staking bonded-denom and
all-delegations queries from the node, returning JSON bytes. Other requests
raise `QuerierSystemError`. Only the first page of delegations is returned.

## Broadcasting transactions

`chaindaemon.tx_broadcaster.TxBroadcaster` builds and broadcasts a
transaction, then retries it according to ordered `RetryStrategy` objects:

- `insufficient_fee_strategy()` retries once with the fee parsed from the
  node's log by `parse_suggested_fee`;
- `account_sequence_strategy()` retries without limit on account sequence
  errors.

A response with a non-zero code raises `TxFailed`.

`chaindaemon.sender.Sender` simulates messages, computes gas and fees with a
buffer (`get_fee_from_gas`, tuned by `GasSettings`), checks the wallet
balance, sends bank transfers and commits messages, wrapping them in an authz
exec when `SenderOptions.authz_granter` is set. `get_mnemonic_env` reads the
mnemonic for a `ChainKind` from `LOCAL_MNEMONIC`, `TEST_MNEMONIC` or
`MAIN_MNEMONIC`.

## Deployment state

`chaindaemon.state.DaemonState` keeps code ids and contract addresses per
chain and deployment id in a JSON file. On local chains the file name gets a
`_local` suffix. A state can be opened read-only; within one process a file
can be held for writing by only one state at a time, until `close()` is
called or the `with` block ends. `flush()` clears a local chain's state.

`state_file_path(env_file_path, state_folder)` resolves where the file
lives: absolute paths are kept, paths starting with `.` or `..` are taken
from the current directory, and other relative paths go into the state
folder (by default `~/.chaindaemon`, created when needed).

## Logging

The package logs through the standard `logging` module under the
`chaindaemon` logger. `chaindaemon.logcheck.print_if_log_disabled()` prints
a one-time warning when INFO logs of that logger are not enabled.

## What the package does not do

- It has no gRPC transport of its own; you provide the `Channel`.
- It does not derive keys from mnemonics or sign transactions. `Sender`
  expects a signer object that offers an `address`, `with_hd_index(index)`
  and `tx_builder(msgs, memo, timeout_height)`, whose builder simulates and
  builds signed transaction bytes.
- It has no command-line interface.

## Running the tests

```
pip install "chaindaemon[test]"
pytest
```