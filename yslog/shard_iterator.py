"""Reading one shard of the event log, one micro batch at a time.

The session object is duck-typed. It must provide the coroutines
``prepare(query)`` and ``execute(statement, values)``. ``execute`` returns
the result rows. A log row is either a ``BlockchainEvent`` or a sequence
of column values in the order of ``LOG_PROJECTION``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Protocol, Sequence

from .types import (
    SHARD_OFFSET_MODULO,
    BlockchainEvent,
    BlockchainEventType,
    ProducerId,
    ShardId,
    ShardOffset,
    ShardPeriod,
)

log = logging.getLogger(__name__)

MICRO_BATCH_SIZE = 40

GET_NEW_TRANSACTION_EVENT = """
    SELECT
        shard_id,
        period,
        producer_id,
        offset,
        slot,
        event_type,

        pubkey,
        lamports,
        owner,
        executable,
        rent_epoch,
        write_version,
        data,
        txn_signature,

        signature,
        signatures,
        num_required_signatures,
        num_readonly_signed_accounts,
        num_readonly_unsigned_accounts,
        account_keys,
        recent_blockhash,
        instructions,
        versioned,
        address_table_lookups,
        meta,
        is_vote,
        tx_index
    FROM log
    WHERE producer_id = ? and shard_id = ? and offset > ? and period = ?
    and event_type = 1
    ORDER BY offset ASC
    ALLOW FILTERING
"""

GET_LAST_SHARD_PERIOD_COMMIT = """
    SELECT
        period
    FROM producer_period_commit_log
    WHERE
        producer_id = ?
        AND shard_id = ?
    ORDER BY period DESC
    PER PARTITION LIMIT 1
"""

LOG_PRIMARY_KEY_CONDITION = """
    producer_id = ? and shard_id = ? and offset > ? and period = ?
"""

LOG_PROJECTION = """
    shard_id,
    period,
    producer_id,
    offset,
    slot,
    event_type,
    pubkey,
    lamports,
    owner,
    executable,
    rent_epoch,
    write_version,
    data,
    txn_signature,
    signature,
    signatures,
    num_required_signatures,
    num_readonly_signed_accounts,
    num_readonly_unsigned_accounts,
    account_keys,
    recent_blockhash,
    instructions,
    versioned,
    address_table_lookups,
    meta,
    is_vote,
    tx_index
"""

_EVENT_FIELDS = [f.name for f in fields(BlockchainEvent)]


class _Session(Protocol):
    async def prepare(self, query: str) -> Any: ...

    async def execute(self, statement: Any, values: Sequence[Any]) -> Sequence[Any]: ...


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division truncated toward zero."""
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


def _to_event(row: Any) -> BlockchainEvent:
    if isinstance(row, BlockchainEvent):
        return row
    values = dict(zip(_EVENT_FIELDS, row))
    if len(values) != len(_EVENT_FIELDS):
        raise ValueError(f"log row has {len(values)} columns, expected {len(_EVENT_FIELDS)}")
    values["event_type"] = BlockchainEventType.from_code(int(values["event_type"]))
    return BlockchainEvent(**values)


class _State(enum.Enum):
    EMPTY = "Empty"
    LOADING = "Loading"
    LOADED = "Loaded"
    CONFIRMING_PERIOD = "ConfirmingPeriod"
    AVAILABLE_DATA = "Available"
    WAITING_END_OF_PERIOD = "EndOfPeriod"


@dataclass
class ShardFilter:
    """Filters on the events a shard iterator yields."""

    tx_account_keys: list[bytes] = field(default_factory=list)
    account_owners: list[bytes] = field(default_factory=list)
    account_pubkeys: list[bytes] = field(default_factory=list)


class ShardIterator:
    """Iterates over the events of one shard of one producer, by offset."""

    def __init__(
        self,
        session: _Session,
        producer_id: ProducerId,
        shard_id: ShardId,
        offset: ShardOffset,
        event_type: BlockchainEventType,
        get_events_ps: Any,
        get_last_shard_period_commit_ps: Any,
        filter: Optional[ShardFilter] = None,
    ) -> None:
        self._session = session
        self.producer_id = producer_id
        self.shard_id = shard_id
        self.event_type = event_type
        self._get_events_ps = get_events_ps
        self._get_last_shard_period_commit_ps = get_last_shard_period_commit_ps
        self._last_period_confirmed: ShardPeriod = _trunc_div(offset, SHARD_OFFSET_MODULO) - 1
        self._filter = filter if filter is not None else ShardFilter()
        self._state = _State.EMPTY
        self._offset = offset
        self._batch: deque[BlockchainEvent] = deque()
        self._pending: Optional[asyncio.Task] = None

    @classmethod
    async def create(
        cls,
        session: _Session,
        producer_id: ProducerId,
        shard_id: ShardId,
        offset: ShardOffset,
        event_type: BlockchainEventType,
        filter: Optional[ShardFilter] = None,
    ) -> "ShardIterator":
        if event_type == BlockchainEventType.ACCOUNT_UPDATE:
            query = forge_account_update_event_query(filter or ShardFilter())
        else:
            query = GET_NEW_TRANSACTION_EVENT
        get_events_ps = await session.prepare(query)
        period_commit_ps = await session.prepare(GET_LAST_SHARD_PERIOD_COMMIT)
        return cls(
            session,
            producer_id,
            shard_id,
            offset,
            event_type,
            get_events_ps,
            period_commit_ps,
            filter,
        )

    def __repr__(self) -> str:
        detail = f"{self._state.value}({self._offset}"
        if self._state in (_State.LOADED, _State.AVAILABLE_DATA):
            detail += f", micro_batch({len(self._batch)})"
        return f"ShardIterator(shard_id={self.shard_id}, {detail}))"

    def last_offset(self) -> ShardOffset:
        return self._offset

    async def warm(self) -> None:
        """Load the first micro batch if nothing has been loaded yet."""
        if self._state is not _State.EMPTY:
            return
        batch = await self._fetch_micro_batch(self._offset)
        self._batch = deque(batch)
        self._state = _State.AVAILABLE_DATA

    def _is_period_committed(self, last_offset: ShardOffset) -> asyncio.Task:
        period = _trunc_div(last_offset, SHARD_OFFSET_MODULO)

        async def check() -> bool:
            rows = list(
                await self._session.execute(
                    self._get_last_shard_period_commit_ps, (self.producer_id, self.shard_id)
                )
            )
            return bool(rows) and rows[0][0] >= period

        return asyncio.ensure_future(check())

    def _fetch_micro_batch(self, last_offset: ShardOffset) -> asyncio.Task:
        period = _trunc_div(last_offset + 1, SHARD_OFFSET_MODULO)

        async def fetch() -> list[BlockchainEvent]:
            rows = await self._session.execute(
                self._get_events_ps, (self.producer_id, self.shard_id, last_offset, period)
            )
            return [_to_event(row) for row in rows]

        return asyncio.ensure_future(fetch())

    def filter_row(self, row: BlockchainEvent) -> Optional[BlockchainEvent]:
        """Apply the filters that cannot be pushed down to the database."""
        if row.event_type == BlockchainEventType.NEW_TRANSACTION:
            wanted = self._filter.tx_account_keys
            if wanted and not any(key in wanted for key in row.account_keys or ()):
                return None
        return row

    def _take_result(self, message: str) -> Any:
        task = self._pending
        self._pending = None
        if task.cancelled():
            self._state = _State.EMPTY
            raise RuntimeError(message)
        exc = task.exception()
        if exc is not None:
            self._state = _State.EMPTY
            raise RuntimeError(message) from exc
        return task.result()

    def _pop_row(self) -> Optional[BlockchainEvent]:
        if not self._batch:
            return None
        row = self._batch.popleft()
        self._state = _State.AVAILABLE_DATA
        self._offset = row.offset
        return row

    async def try_next(self) -> Optional[BlockchainEvent]:
        """Advance the iterator by one step; return an event if one is ready."""
        if self._pending is not None and not self._pending.done():
            await asyncio.sleep(0)
        state = self._state
        offset = self._offset
        row: Optional[BlockchainEvent] = None

        if state is _State.EMPTY:
            self._pending = self._fetch_micro_batch(offset)
            self._state = _State.LOADING
        elif state is _State.LOADING:
            if self._pending.done():
                self._batch = deque(self._take_result("failed to receive micro batch"))
                self._state = _State.LOADED
        elif state is _State.LOADED:
            row = self._pop_row()
            if row is None:
                curr_period = _trunc_div(offset, SHARD_OFFSET_MODULO)
                if curr_period <= self._last_period_confirmed:
                    self._offset = (curr_period + 1) * SHARD_OFFSET_MODULO - 1
                    self._state = _State.EMPTY
                else:
                    # An empty batch means either the period is over or we are ahead of the producer.
                    self._pending = self._is_period_committed(offset)
                    self._state = _State.CONFIRMING_PERIOD
        elif state is _State.CONFIRMING_PERIOD:
            if self._pending.done():
                if self._take_result("fail"):
                    self._last_period_confirmed = _trunc_div(offset, SHARD_OFFSET_MODULO)
                self._state = _State.EMPTY
        elif state is _State.AVAILABLE_DATA:
            row = self._pop_row()
            if row is None:
                if (offset + 1) % SHARD_OFFSET_MODULO == 0:
                    self._pending = self._is_period_committed(offset)
                    self._state = _State.WAITING_END_OF_PERIOD
                else:
                    self._state = _State.EMPTY
        elif state is _State.WAITING_END_OF_PERIOD:
            if self._pending.done():
                if self._take_result("fail"):
                    self._last_period_confirmed = _trunc_div(offset, SHARD_OFFSET_MODULO)
                    self._state = _State.EMPTY
                else:
                    self._pending = self._is_period_committed(offset)

        return self.filter_row(row) if row is not None else None


def format_as_scylla_hexstring(data: bytes) -> str:
    """Format bytes as a CQL blob literal."""
    if not data:
        raise ValueError("byte slice is empty")
    return "0x" + bytes(data).hex()


def forge_account_update_event_query(filter: ShardFilter) -> str:
    """Build the account update query, pushing the key filters down to the database."""
    conds = []
    pubkeys = [format_as_scylla_hexstring(k) for k in filter.account_pubkeys]
    owners = [format_as_scylla_hexstring(o) for o in filter.account_owners]
    if pubkeys:
        conds.append(f"AND pubkey IN ({', '.join(pubkeys)})")
    if owners:
        conds.append(f"AND owner IN ({', '.join(owners)})")
    conds_string = " ".join(conds)
    return f"""
        SELECT
        {LOG_PROJECTION}
        FROM log
        WHERE {LOG_PRIMARY_KEY_CONDITION}
        AND event_type = 0
        {conds_string}
        ORDER BY offset ASC
        LIMIT {MICRO_BATCH_SIZE}
        ALLOW FILTERING
        """