import asyncio
from dataclasses import fields

import pytest

from yslog.shard_iterator import (
    GET_LAST_SHARD_PERIOD_COMMIT,
    GET_NEW_TRANSACTION_EVENT,
    MICRO_BATCH_SIZE,
    ShardFilter,
    ShardIterator,
    forge_account_update_event_query,
    format_as_scylla_hexstring,
)
from yslog.types import (
    SHARD_OFFSET_MODULO,
    AccountUpdate,
    BlockchainEvent,
    BlockchainEventType,
)

PRODUCER = b"\x00"


class FakeSession:
    def __init__(self, events=(), committed_period=None, fail_fetch=False, as_tuples=False):
        self.events = list(events)
        self.committed_period = committed_period
        self.fail_fetch = fail_fetch
        self.as_tuples = as_tuples
        self.prepared = []

    async def prepare(self, query):
        self.prepared.append(query)
        return query

    async def execute(self, statement, values):
        if statement == GET_LAST_SHARD_PERIOD_COMMIT:
            return [] if self.committed_period is None else [[self.committed_period]]
        if self.fail_fetch:
            raise ConnectionError("down")
        producer_id, shard_id, last_offset, period = values
        wanted = (
            BlockchainEventType.NEW_TRANSACTION
            if statement == GET_NEW_TRANSACTION_EVENT
            else BlockchainEventType.ACCOUNT_UPDATE
        )
        rows = sorted(
            (
                e
                for e in self.events
                if e.producer_id == producer_id
                and e.shard_id == shard_id
                and e.offset > last_offset
                and e.period == period
                and e.event_type == wanted
            ),
            key=lambda e: e.offset,
        )[:MICRO_BATCH_SIZE]
        if self.as_tuples:
            return [
                tuple(
                    int(getattr(e, f.name)) if f.name == "event_type" else getattr(e, f.name)
                    for f in fields(e)
                )
                for e in rows
            ]
        return rows


def account_event(offset, shard_id=0):
    acc = AccountUpdate.zero_account()
    acc.slot = offset + 1
    return acc.as_blockchain_event(shard_id, PRODUCER, offset)


def tx_event(offset, keys):
    return BlockchainEvent(
        shard_id=0,
        period=offset // SHARD_OFFSET_MODULO,
        producer_id=PRODUCER,
        offset=offset,
        slot=offset,
        event_type=BlockchainEventType.NEW_TRANSACTION,
        account_keys=list(keys),
    )


async def drain(iterator, steps=60):
    out = []
    for _ in range(steps):
        row = await iterator.try_next()
        if row is not None:
            out.append(row)
        await asyncio.sleep(0)
    return out


def test_hexstring():
    assert format_as_scylla_hexstring(b"\x01\xab") == "0x01ab"


def test_hexstring_empty_raises():
    with pytest.raises(ValueError):
        format_as_scylla_hexstring(b"")


def test_forge_query_with_filters():
    query = forge_account_update_event_query(
        ShardFilter(account_pubkeys=[b"\x01", b"\x02"], account_owners=[b"\xff"])
    )
    assert "AND pubkey IN (0x01, 0x02)" in query
    assert "AND owner IN (0xff)" in query
    assert f"LIMIT {MICRO_BATCH_SIZE}" in query
    assert "AND event_type = 0" in query


def test_forge_query_without_filters():
    query = forge_account_update_event_query(ShardFilter())
    assert "pubkey IN" not in query
    assert "owner IN" not in query


@pytest.mark.asyncio
async def test_create_prepares_query_by_event_type():
    session = FakeSession()
    await ShardIterator.create(session, PRODUCER, 0, 5, BlockchainEventType.NEW_TRANSACTION)
    assert session.prepared == [GET_NEW_TRANSACTION_EVENT, GET_LAST_SHARD_PERIOD_COMMIT]
    session2 = FakeSession()
    await ShardIterator.create(session2, PRODUCER, 0, 5, BlockchainEventType.ACCOUNT_UPDATE)
    assert session2.prepared[0] == forge_account_update_event_query(ShardFilter())


@pytest.mark.asyncio
async def test_yields_events_in_order():
    session = FakeSession([account_event(o) for o in (3, 1, 2, 7)])
    it = await ShardIterator.create(session, PRODUCER, 0, 0, BlockchainEventType.ACCOUNT_UPDATE)
    assert it.last_offset() == 0
    await it.warm()
    rows = await drain(it)
    assert [r.offset for r in rows] == [1, 2, 3, 7]
    assert it.last_offset() == 7


@pytest.mark.asyncio
async def test_tuple_rows_are_converted():
    session = FakeSession([account_event(1), account_event(2)], as_tuples=True)
    it = await ShardIterator.create(session, PRODUCER, 0, 0, BlockchainEventType.ACCOUNT_UPDATE)
    rows = await drain(it)
    assert rows == [account_event(1), account_event(2)]


@pytest.mark.asyncio
async def test_waits_for_period_commit_before_next_period():
    last = SHARD_OFFSET_MODULO - 1
    session = FakeSession([account_event(last), account_event(SHARD_OFFSET_MODULO)])
    it = await ShardIterator.create(
        session, PRODUCER, 0, last - 1, BlockchainEventType.ACCOUNT_UPDATE
    )
    await it.warm()
    rows = await drain(it)
    assert [r.offset for r in rows] == [last]
    session.committed_period = 0
    rows = await drain(it)
    assert [r.offset for r in rows] == [SHARD_OFFSET_MODULO]


@pytest.mark.asyncio
async def test_skips_rest_of_committed_period():
    session = FakeSession([account_event(SHARD_OFFSET_MODULO)], committed_period=0)
    it = await ShardIterator.create(session, PRODUCER, 0, 5, BlockchainEventType.ACCOUNT_UPDATE)
    rows = await drain(it)
    assert [r.offset for r in rows] == [SHARD_OFFSET_MODULO]


@pytest.mark.asyncio
async def test_uncommitted_period_does_not_skip():
    session = FakeSession([account_event(SHARD_OFFSET_MODULO)])
    it = await ShardIterator.create(session, PRODUCER, 0, 5, BlockchainEventType.ACCOUNT_UPDATE)
    rows = await drain(it)
    assert rows == []
    assert it.last_offset() == 5


@pytest.mark.asyncio
async def test_transaction_filter():
    session = FakeSession([tx_event(1, [b"a"]), tx_event(2, [b"b", b"k"]), tx_event(3, [])])
    it = await ShardIterator.create(
        session,
        PRODUCER,
        0,
        0,
        BlockchainEventType.NEW_TRANSACTION,
        ShardFilter(tx_account_keys=[b"k"]),
    )
    rows = await drain(it)
    assert [r.offset for r in rows] == [2]
    assert it.last_offset() == 3


@pytest.mark.asyncio
async def test_filter_row_keeps_account_updates():
    session = FakeSession()
    it = await ShardIterator.create(
        session,
        PRODUCER,
        0,
        0,
        BlockchainEventType.ACCOUNT_UPDATE,
        ShardFilter(tx_account_keys=[b"k"]),
    )
    event = account_event(4)
    assert it.filter_row(event) is event
    assert it.filter_row(tx_event(5, [b"z"])) is None


@pytest.mark.asyncio
async def test_fetch_failure_raises():
    session = FakeSession(fail_fetch=True)
    it = await ShardIterator.create(session, PRODUCER, 0, 0, BlockchainEventType.ACCOUNT_UPDATE)
    with pytest.raises(RuntimeError, match="failed to receive micro batch"):
        for _ in range(20):
            await it.try_next()
            await asyncio.sleep(0)
    assert it.last_offset() == 0