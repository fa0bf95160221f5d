"""Storage of static consumer groups and their shard assignments."""

from __future__ import annotations

import ipaddress
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Protocol, Sequence, Union

from .types import ShardId

NUM_SHARDS = 64

ConsumerGroupId = uuid.UUID
InstanceId = str

CREATE_STATIC_CONSUMER_GROUP = """
    INSERT INTO consumer_groups (
        consumer_group_id,
        group_type,
        last_access_ip_address,
        instance_id_shard_assignments,
        redundant_id_shard_assignments,
        created_at,
        updated_at
    )
    VALUES (?, ?, ?, ?, ?, currentTimestamp(), currentTimestamp())
"""


class _Session(Protocol):
    async def prepare(self, query: str) -> Any: ...

    async def execute(self, statement: Any, values: Sequence[Any]) -> Any: ...


class ConsumerGroupType(IntEnum):
    """Kind of consumer group, with its column code."""

    STATIC = 0

    @classmethod
    def from_code(cls, value: int) -> "ConsumerGroupType":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown ConsumerGroupType equivalent for {value!r}") from None


def assign_shards(ids: Sequence[InstanceId], num_shards: int) -> dict[InstanceId, list[ShardId]]:
    """Split shards into equal consecutive runs, one per id in sorted order.

    Shards left over after the equal split are not assigned.
    """
    ordered = sorted(ids)
    if not ordered:
        raise ValueError("at least one instance id is required")
    per_id = num_shards // len(ordered)
    if per_id == 0:
        raise ValueError(f"cannot split {num_shards} shards between {len(ordered)} instances")
    shards = list(range(num_shards))
    chunks = (shards[start:start + per_id] for start in range(0, num_shards, per_id))
    assignments: dict[InstanceId, list[ShardId]] = {}
    for instance_id, chunk in zip(ordered, chunks):
        assignments[instance_id] = chunk
    return assignments


@dataclass
class StaticConsumerGroupInfo:
    consumer_group_id: ConsumerGroupId
    instance_id_assignments: dict[InstanceId, list[ShardId]] = field(default_factory=dict)
    redundant_instance_id_assignments: dict[InstanceId, list[ShardId]] = field(
        default_factory=dict
    )


class ConsumerGroupRepo:
    """Creates consumer groups in the database."""

    def __init__(self, session: _Session, create_static_consumer_group_ps: Any) -> None:
        self._session = session
        self._create_static_consumer_group_ps = create_static_consumer_group_ps

    @classmethod
    async def create(cls, session: _Session) -> "ConsumerGroupRepo":
        statement = await session.prepare(CREATE_STATIC_CONSUMER_GROUP)
        return cls(session, statement)

    async def create_static_consumer_group(
        self,
        instance_ids: Sequence[InstanceId],
        redundant_instance_ids: Sequence[InstanceId],
        remote_ip_addr: Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address, str]] = None,
    ) -> StaticConsumerGroupInfo:
        consumer_group_id = uuid.uuid4()
        if len(instance_ids) != len(redundant_instance_ids):
            raise ValueError("mismatch number of instance/redundant ids")
        assignments = assign_shards(instance_ids, NUM_SHARDS)
        redundant_assignments = assign_shards(redundant_instance_ids, NUM_SHARDS)
        ip_text = str(ipaddress.ip_address(remote_ip_addr)) if remote_ip_addr is not None else None
        await self._session.execute(
            self._create_static_consumer_group_ps,
            (
                consumer_group_id.bytes,
                ConsumerGroupType.STATIC,
                ip_text,
                assignments,
                redundant_assignments,
            ),
        )
        return StaticConsumerGroupInfo(
            consumer_group_id=consumer_group_id,
            instance_id_assignments=assignments,
            redundant_instance_id_assignments=redundant_assignments,
        )