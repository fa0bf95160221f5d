"""Where a new consumer starts reading the log."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .types import ShardOffset, Slot

OldShardOffset = ShardOffset


class InitialOffsetKind(Enum):
    EARLIEST = "earliest"
    LATEST = "latest"
    SLOT_APPROX = "slot_approx"


@dataclass(frozen=True)
class InitialOffset:
    """Initial position in the log; defaults to the latest offset."""

    kind: InitialOffsetKind = InitialOffsetKind.LATEST
    desired_slot: Optional[Slot] = None
    min_slot: Optional[Slot] = None

    def __post_init__(self) -> None:
        has_slots = self.desired_slot is not None or self.min_slot is not None
        if self.kind is InitialOffsetKind.SLOT_APPROX:
            if self.desired_slot is None or self.min_slot is None:
                raise ValueError("a slot-approximate offset needs desired_slot and min_slot")
        elif has_slots:
            raise ValueError(f"{self.kind.value} offset takes no slots")

    @classmethod
    def earliest(cls) -> "InitialOffset":
        return cls(InitialOffsetKind.EARLIEST)

    @classmethod
    def latest(cls) -> "InitialOffset":
        return cls(InitialOffsetKind.LATEST)

    @classmethod
    def slot_approx(cls, desired_slot: Slot, min_slot: Slot) -> "InitialOffset":
        return cls(InitialOffsetKind.SLOT_APPROX, desired_slot, min_slot)