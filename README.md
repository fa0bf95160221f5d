# yslog

An asyncio library for a sharded, append-only log of blockchain events
(account updates and transactions) kept in a CQL database. It gives you the
row types of the log and their conversion to and from subscription messages,
a reader for one shard of the log, and storage for static consumer groups.

## Installation

    pip install .

For development and tests:

    pip install .[test]
    pytest

The package has no runtime dependencies beyond the standard library.

## Modules

- `yslog.geyser`: the subscription messages as dataclasses:
  `SubscribeUpdate`, `SubscribeUpdateAccount`, `SubscribeUpdateTransaction`
  and the structures they carry (`Message`, `MessageHeader`,
  `TransactionStatusMeta`, `CompiledInstruction`, `TokenBalance`, `Reward`,
  ...). Integer fields are checked against their wire width. A value out of
  range raises `ValueError`, and a non-integer raises `TypeError`.
- `yslog.types`: the rows of the log. `BlockchainEvent` is one row of the
  `log` table. `AccountUpdate` and `Transaction` are the two kinds of event,
  and `TransactionMeta`, `CompiledInstr`, `InnerInstrs`, `TxTokenBalance`,
  `Reward`, `ReturnData` and the others are their parts. The module also has
  the `BlockchainEventType` and `CommitmentLevel` enums, each with `from_code`,
  and the constants `SHARD_OFFSET_MODULO` (10000) and `UNDEFINED_SLOT` (-1).
- `yslog.common`: `InitialOffset`, the place where a new consumer starts.
  Build it with `InitialOffset.earliest()`, `InitialOffset.latest()` (the
  default) or `InitialOffset.slot_approx(desired_slot, min_slot)`.
- `yslog.shard_iterator`: `ShardIterator` and `ShardFilter`, which read one
  shard of one producer, plus the query helpers
  `forge_account_update_event_query` and `format_as_scylla_hexstring`.
- `yslog.repo`: `ConsumerGroupRepo`, `assign_shards` and the
  `ConsumerGroupType` enum, for static consumer groups.

## Converting events

```python
from yslog.types import AccountUpdate

update = AccountUpdate.zero_account()
event = update.as_blockchain_event(shard_id=3, producer_id=b"\x00", offset=12345)
assert event.period == 1
message = event.to_subscribe_update_account()
assert AccountUpdate.from_proto(message) == update
```

Conversion fails with `ValueError` in these cases:

- a required part of a message is missing;
- a public key is not 32 bytes;
- an event is converted to the wrong kind of message.

Unsigned 64-bit values from messages wrap into the signed columns of the
log, and they wrap back again on the way out.

## Reading a shard

The database session is duck-typed. It must provide the coroutines
`prepare(query)` and `execute(statement, values)`, and `execute` returns the
result rows. A log row may be a `BlockchainEvent` or a sequence of column
values in the order of `LOG_PROJECTION`.

```python
from yslog.shard_iterator import ShardFilter, ShardIterator
from yslog.types import BlockchainEventType

iterator = await ShardIterator.create(
    session,
    b"\x00",          # producer id
    0,                # shard id
    -1,               # last offset read; events after it are returned
    BlockchainEventType.ACCOUNT_UPDATE,
    ShardFilter(account_owners=[owner_key]),
)
await iterator.warm()
while True:
    event = await iterator.try_next()
    if event is not None:
        handle(event)
```

Each call to `try_next` moves the iterator one step. It returns an event when
one is ready and `None` otherwise. The iterator fetches micro batches of at
most 40 rows. Offsets fall into periods of 10000. The iterator moves on to
the next period only after it finds that period's commit in
`producer_period_commit_log`.

Pubkey and owner filters on account updates become part of the query.
Transaction account-key filters are applied in `filter_row`.

## Consumer groups

```python
from yslog.repo import ConsumerGroupRepo, assign_shards

assign_shards(["b", "a"], 4)   # {"a": [0, 1], "b": [2, 3]}

repo = await ConsumerGroupRepo.create(session)
info = await repo.create_static_consumer_group(["a", "b"], ["c", "d"], "10.0.0.1")
```

`assign_shards` sorts the ids and gives each one an equal run of consecutive
shards. Shards left over after the equal split are not assigned. A static
group always splits 64 shards. The two id lists must have the same length,
or `ValueError` is raised.

## What this package does not do

- It does not write events into the log.
- It does not take producer locks.
- It does not assign producers to consumers.
- It does not serve consumers over the network.
- It does not collect metrics.
- It does not open database connections. You pass in a session.