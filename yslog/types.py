"""Rows of the event log and their conversion to and from geyser messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, TypeVar

from . import geyser

Slot = int
ShardId = int
ShardPeriod = int
ShardOffset = int
ProducerId = bytes
ConsumerId = str
Pubkey = bytes
ProgramId = bytes

SHARD_OFFSET_MODULO = 10000
MIN_PRODUCER: ProducerId = b"\x00"
MAX_PRODUCER: ProducerId = b"\xff"
UNDEFINED_SLOT: Slot = -1

_PUBKEY_LEN = 32
_I64_MIN, _I64_MAX = -(2**63), 2**63 - 1
_U64_MASK = 2**64 - 1
_U32_MASK = 2**32 - 1

_T = TypeVar("_T")


def _wrap_u64_to_i64(value: int) -> int:
    value &= _U64_MASK
    return value - 2**64 if value > _I64_MAX else value


def _wrap_i64_to_u64(value: int) -> int:
    return value & _U64_MASK


def _wrap_u32_to_i32(value: int) -> int:
    value &= _U32_MASK
    return value - 2**32 if value >= 2**31 else value


def _checked_i64(name: str, value: int) -> int:
    if not _I64_MIN <= value <= _I64_MAX:
        raise ValueError(f"{name}={value} does not fit in a signed 64-bit integer")
    return value


def _checked_pubkey(name: str, value: bytes) -> bytes:
    value = bytes(value)
    if len(value) != _PUBKEY_LEN:
        raise ValueError(f"Invalid {name}: expected {_PUBKEY_LEN} bytes, got {len(value)}")
    return value


def _require(value: Optional[_T], name: str) -> _T:
    if value is None:
        raise ValueError(f"{name} is none")
    return value


def _period_of(offset: ShardOffset) -> ShardPeriod:
    """Period of an offset, with division truncated toward zero."""
    quotient = abs(offset) // SHARD_OFFSET_MODULO
    return quotient if offset >= 0 else -quotient


class BlockchainEventType(IntEnum):
    """Kind of event stored in the log, with its column code."""

    ACCOUNT_UPDATE = 0
    NEW_TRANSACTION = 1

    @classmethod
    def from_code(cls, value: int) -> "BlockchainEventType":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown LogEntryType equivalent for {value!r}") from None


class CommitmentLevel(IntEnum):
    """Commitment level a producer streams at, with its column code."""

    PROCESSED = 0
    CONFIRMED = 1
    FINALIZED = 2

    def __str__(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_code(cls, value: int) -> "CommitmentLevel":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown CommitmentLevel equivalent for code {value!r}"
            ) from None


@dataclass
class ConsumerInfo:
    consumer_id: ConsumerId
    producer_id: ProducerId
    subscribed_blockchain_event_types: list[BlockchainEventType] = field(default_factory=list)


@dataclass
class ConsumerShardOffset:
    consumer_id: ConsumerId
    producer_id: ProducerId
    shard_id: ShardId
    event_type: BlockchainEventType
    offset: ShardOffset
    slot: Slot


@dataclass
class ProducerInfo:
    producer_id: ProducerId
    num_shards: ShardId
    commitment_level: CommitmentLevel


@dataclass
class MessageAddrTableLookup:
    account_key: bytes = b""
    writable_indexes: bytes = b""
    readonly_indexes: bytes = b""

    @classmethod
    def from_proto(cls, value: geyser.MessageAddressTableLookup) -> "MessageAddrTableLookup":
        return cls(value.account_key, value.writable_indexes, value.readonly_indexes)

    def to_proto(self) -> geyser.MessageAddressTableLookup:
        return geyser.MessageAddressTableLookup(
            self.account_key, self.writable_indexes, self.readonly_indexes
        )


@dataclass
class CompiledInstr:
    program_id_index: int = 0
    accounts: bytes = b""
    data: bytes = b""

    @classmethod
    def from_proto(cls, value: geyser.CompiledInstruction) -> "CompiledInstr":
        return cls(value.program_id_index, value.accounts, value.data)

    def to_proto(self) -> geyser.CompiledInstruction:
        return geyser.CompiledInstruction(self.program_id_index, self.accounts, self.data)


@dataclass
class InnerInstr:
    program_id_index: int = 0
    accounts: bytes = b""
    data: bytes = b""
    stack_height: Optional[int] = None

    @classmethod
    def from_proto(cls, value: geyser.InnerInstruction) -> "InnerInstr":
        return cls(value.program_id_index, value.accounts, value.data, value.stack_height)

    def to_proto(self) -> geyser.InnerInstruction:
        return geyser.InnerInstruction(
            self.program_id_index, self.accounts, self.data, self.stack_height
        )


@dataclass
class InnerInstrs:
    index: int = 0
    instructions: list[InnerInstr] = field(default_factory=list)

    @classmethod
    def from_proto(cls, value: geyser.InnerInstructions) -> "InnerInstrs":
        return cls(value.index, [InnerInstr.from_proto(i) for i in value.instructions])

    def to_proto(self) -> geyser.InnerInstructions:
        return geyser.InnerInstructions(
            self.index, [i.to_proto() for i in self.instructions]
        )


@dataclass
class UiTokenAmount:
    ui_amount: float = 0.0
    decimals: int = 0
    amount: str = ""
    ui_amount_string: str = ""

    @classmethod
    def from_proto(cls, value: geyser.UiTokenAmount) -> "UiTokenAmount":
        return cls(value.ui_amount, value.decimals, value.amount, value.ui_amount_string)

    def to_proto(self) -> geyser.UiTokenAmount:
        return geyser.UiTokenAmount(
            self.ui_amount, self.decimals, self.amount, self.ui_amount_string
        )


@dataclass
class TxTokenBalance:
    account_index: int = 0
    mint: str = ""
    ui_token_amount: Optional[UiTokenAmount] = None
    owner: str = ""
    program_id: str = ""

    @classmethod
    def from_proto(cls, value: geyser.TokenBalance) -> "TxTokenBalance":
        amount = value.ui_token_amount
        return cls(
            value.account_index,
            value.mint,
            UiTokenAmount.from_proto(amount) if amount is not None else None,
            value.owner,
            value.program_id,
        )

    def to_proto(self) -> geyser.TokenBalance:
        amount = self.ui_token_amount
        return geyser.TokenBalance(
            self.account_index,
            self.mint,
            amount.to_proto() if amount is not None else None,
            self.owner,
            self.program_id,
        )


@dataclass
class Reward:
    pubkey: str = ""
    lamports: int = 0
    post_balance: int = 0
    reward_type: int = 0
    commission: str = ""

    @classmethod
    def from_proto(cls, value: geyser.Reward) -> "Reward":
        return cls(
            value.pubkey,
            value.lamports,
            _checked_i64("post_balance", value.post_balance),
            value.reward_type,
            value.commission,
        )

    def to_proto(self) -> geyser.Reward:
        return geyser.Reward(
            self.pubkey, self.lamports, self.post_balance, self.reward_type, self.commission
        )


@dataclass
class ReturnData:
    program_id: ProgramId = bytes(_PUBKEY_LEN)
    data: bytes = b""

    def __post_init__(self) -> None:
        self.program_id = _checked_pubkey("program id", self.program_id)

    @classmethod
    def from_proto(cls, value: geyser.ReturnData) -> "ReturnData":
        return cls(_checked_pubkey("program id", value.program_id), value.data)

    def to_proto(self) -> geyser.ReturnData:
        return geyser.ReturnData(bytes(self.program_id), self.data)


@dataclass
class TransactionMeta:
    error: Optional[bytes] = None
    fee: int = 0
    pre_balances: list[int] = field(default_factory=list)
    post_balances: list[int] = field(default_factory=list)
    inner_instructions: Optional[list[InnerInstrs]] = None
    log_messages: Optional[list[str]] = None
    pre_token_balances: list[TxTokenBalance] = field(default_factory=list)
    post_token_balances: list[TxTokenBalance] = field(default_factory=list)
    rewards: list[Reward] = field(default_factory=list)
    loaded_writable_addresses: list[Pubkey] = field(default_factory=list)
    loaded_readonly_addresses: list[Pubkey] = field(default_factory=list)
    return_data: Optional[ReturnData] = None
    compute_units_consumed: Optional[int] = None

    @classmethod
    def from_proto(cls, value: geyser.TransactionStatusMeta) -> "TransactionMeta":
        inner = [InnerInstrs.from_proto(i) for i in value.inner_instructions]
        cu = value.compute_units_consumed
        return cls(
            error=value.err.err if value.err is not None else None,
            fee=_checked_i64("fee", value.fee),
            pre_balances=[_checked_i64("pre_balance", b) for b in value.pre_balances],
            post_balances=[_checked_i64("post_balance", b) for b in value.post_balances],
            # The stored column is filled only when the "none" flag is set.
            inner_instructions=inner if value.inner_instructions_none else None,
            log_messages=list(value.log_messages) if value.log_messages_none else None,
            pre_token_balances=[TxTokenBalance.from_proto(b) for b in value.pre_token_balances],
            post_token_balances=[TxTokenBalance.from_proto(b) for b in value.post_token_balances],
            rewards=[Reward.from_proto(r) for r in value.rewards],
            loaded_writable_addresses=[
                _checked_pubkey("writable address", a) for a in value.loaded_writable_addresses
            ],
            loaded_readonly_addresses=[
                _checked_pubkey("readonly address", a) for a in value.loaded_readonly_addresses
            ],
            return_data=(
                ReturnData.from_proto(value.return_data)
                if value.return_data is not None
                else None
            ),
            compute_units_consumed=(
                _checked_i64("compute_units_consumed", cu) if cu is not None else None
            ),
        )

    def to_proto(self) -> geyser.TransactionStatusMeta:
        return geyser.TransactionStatusMeta(
            err=geyser.TransactionError(self.error) if self.error is not None else None,
            fee=self.fee,
            pre_balances=list(self.pre_balances),
            post_balances=list(self.post_balances),
            inner_instructions=[i.to_proto() for i in self.inner_instructions or []],
            inner_instructions_none=self.inner_instructions is None,
            log_messages=list(self.log_messages or []),
            log_messages_none=self.log_messages is None,
            pre_token_balances=[b.to_proto() for b in self.pre_token_balances],
            post_token_balances=[b.to_proto() for b in self.post_token_balances],
            rewards=[r.to_proto() for r in self.rewards],
            loaded_writable_addresses=[bytes(a) for a in self.loaded_writable_addresses],
            loaded_readonly_addresses=[bytes(a) for a in self.loaded_readonly_addresses],
            return_data=self.return_data.to_proto() if self.return_data is not None else None,
            return_data_none=self.return_data is None,
            compute_units_consumed=self.compute_units_consumed,
        )


@dataclass
class BlockchainEvent:
    """One row of the log table: an account update or a transaction."""

    shard_id: ShardId
    period: ShardPeriod
    producer_id: ProducerId
    offset: ShardOffset
    slot: Slot
    event_type: BlockchainEventType

    pubkey: Optional[Pubkey] = None
    lamports: Optional[int] = None
    owner: Optional[Pubkey] = None
    executable: Optional[bool] = None
    rent_epoch: Optional[int] = None
    write_version: Optional[int] = None
    data: Optional[bytes] = None
    txn_signature: Optional[bytes] = None

    signature: Optional[bytes] = None
    signatures: Optional[list[bytes]] = None
    num_required_signatures: Optional[int] = None
    num_readonly_signed_accounts: Optional[int] = None
    num_readonly_unsigned_accounts: Optional[int] = None
    account_keys: Optional[list[bytes]] = None
    recent_blockhash: Optional[bytes] = None
    instructions: Optional[list[CompiledInstr]] = None
    versioned: Optional[bool] = None
    address_table_lookups: Optional[list[MessageAddrTableLookup]] = None
    meta: Optional[TransactionMeta] = None
    is_vote: Optional[bool] = None
    tx_index: Optional[int] = None

    def to_account_update(self) -> "AccountUpdate":
        return AccountUpdate(
            slot=self.slot,
            pubkey=_require(self.pubkey, "pubkey"),
            lamports=_require(self.lamports, "lamports"),
            owner=_require(self.owner, "owner"),
            executable=_require(self.executable, "executable"),
            rent_epoch=_require(self.rent_epoch, "rent_epoch"),
            write_version=_require(self.write_version, "write_version"),
            data=_require(self.data, "data"),
            txn_signature=self.txn_signature,
        )

    def to_transaction(self) -> "Transaction":
        return Transaction(slot=self.slot, **_transaction_fields(self))

    def to_subscribe_update_account(self) -> geyser.SubscribeUpdateAccount:
        if self.event_type != BlockchainEventType.ACCOUNT_UPDATE:
            raise ValueError("BlockchainEvent is not an AccountUpdate")
        return self.to_account_update().to_proto()

    def to_subscribe_update_transaction(self) -> geyser.SubscribeUpdateTransaction:
        if self.event_type != BlockchainEventType.NEW_TRANSACTION:
            raise ValueError("BlockchainEvent is not a Transaction")
        return self.to_transaction().to_proto()


def _transaction_fields(event: BlockchainEvent) -> dict:
    return {
        "signature": _require(event.signature, "signature"),
        "signatures": _require(event.signatures, "signatures"),
        "num_required_signatures": _require(
            event.num_required_signatures, "num_required_signature"
        ),
        "num_readonly_signed_accounts": _require(
            event.num_readonly_signed_accounts, "num_readonly_signed_accounts"
        ),
        "num_readonly_unsigned_accounts": _require(
            event.num_readonly_unsigned_accounts, "num_readonly_unsigned_accounts"
        ),
        "account_keys": _require(event.account_keys, "account_keys"),
        "recent_blockhash": _require(event.recent_blockhash, "recent_blockhash"),
        "instructions": _require(event.instructions, "instructions"),
        "versioned": _require(event.versioned, "versioned"),
        "address_table_lookups": _require(event.address_table_lookups, "address_table_lookups"),
        "meta": _require(event.meta, "meta"),
        "is_vote": _require(event.is_vote, "is_vote"),
        "tx_index": _require(event.tx_index, "tx_index"),
    }


@dataclass
class AccountUpdate:
    slot: Slot
    pubkey: Pubkey
    lamports: int
    owner: Pubkey
    executable: bool
    rent_epoch: int
    write_version: int
    data: bytes = b""
    txn_signature: Optional[bytes] = None

    def __post_init__(self) -> None:
        self.pubkey = _checked_pubkey("pubkey", self.pubkey)
        self.owner = _checked_pubkey("owner", self.owner)

    @classmethod
    def zero_account(cls) -> "AccountUpdate":
        zeros = bytes(_PUBKEY_LEN)
        return cls(
            slot=0,
            pubkey=zeros,
            lamports=0,
            owner=zeros,
            executable=False,
            rent_epoch=0,
            write_version=0,
            data=b"",
            txn_signature=None,
        )

    def as_tuple(self) -> tuple:
        return (
            self.slot,
            self.pubkey,
            self.lamports,
            self.owner,
            self.executable,
            self.rent_epoch,
            self.write_version,
            self.data,
            self.txn_signature,
        )

    def as_blockchain_event(
        self, shard_id: ShardId, producer_id: ProducerId, offset: ShardOffset
    ) -> BlockchainEvent:
        return BlockchainEvent(
            shard_id=shard_id,
            period=_period_of(offset),
            producer_id=producer_id,
            offset=offset,
            slot=self.slot,
            event_type=BlockchainEventType.ACCOUNT_UPDATE,
            pubkey=self.pubkey,
            lamports=self.lamports,
            owner=self.owner,
            executable=self.executable,
            rent_epoch=self.rent_epoch,
            write_version=self.write_version,
            data=self.data,
            txn_signature=self.txn_signature,
        )

    @classmethod
    def from_proto(cls, value: geyser.SubscribeUpdateAccount) -> "AccountUpdate":
        acc = value.account
        if acc is None:
            raise ValueError("Missing account update.")
        return cls(
            slot=_wrap_u64_to_i64(value.slot),
            pubkey=_checked_pubkey("pubkey", acc.pubkey),
            lamports=_wrap_u64_to_i64(acc.lamports),
            owner=_checked_pubkey("owner", acc.owner),
            executable=acc.executable,
            rent_epoch=_wrap_u64_to_i64(acc.rent_epoch),
            write_version=_wrap_u64_to_i64(acc.write_version),
            data=acc.data,
            txn_signature=acc.txn_signature,
        )

    def to_proto(self) -> geyser.SubscribeUpdateAccount:
        return geyser.SubscribeUpdateAccount(
            account=geyser.SubscribeUpdateAccountInfo(
                pubkey=bytes(self.pubkey),
                lamports=_wrap_i64_to_u64(self.lamports),
                owner=bytes(self.owner),
                executable=self.executable,
                rent_epoch=_wrap_i64_to_u64(self.rent_epoch),
                data=self.data,
                write_version=_wrap_i64_to_u64(self.write_version),
                txn_signature=self.txn_signature,
            ),
            slot=_wrap_i64_to_u64(self.slot),
            is_startup=False,
        )


@dataclass
class Transaction:
    slot: Slot
    signature: bytes
    signatures: list[bytes]
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int
    account_keys: list[bytes]
    recent_blockhash: bytes
    instructions: list[CompiledInstr]
    versioned: bool
    address_table_lookups: list[MessageAddrTableLookup]
    meta: TransactionMeta
    is_vote: bool
    tx_index: int

    def as_blockchain_event(
        self, shard_id: ShardId, producer_id: ProducerId, offset: ShardOffset
    ) -> BlockchainEvent:
        return BlockchainEvent(
            shard_id=shard_id,
            period=_period_of(offset),
            producer_id=producer_id,
            offset=offset,
            slot=self.slot,
            event_type=BlockchainEventType.NEW_TRANSACTION,
            signature=self.signature,
            signatures=self.signatures,
            num_required_signatures=self.num_required_signatures,
            num_readonly_signed_accounts=self.num_readonly_signed_accounts,
            num_readonly_unsigned_accounts=self.num_readonly_unsigned_accounts,
            account_keys=self.account_keys,
            recent_blockhash=self.recent_blockhash,
            instructions=self.instructions,
            versioned=self.versioned,
            address_table_lookups=self.address_table_lookups,
            meta=self.meta,
            is_vote=self.is_vote,
            tx_index=self.tx_index,
        )

    @classmethod
    def from_proto(cls, value: geyser.SubscribeUpdateTransaction) -> "Transaction":
        info = value.transaction
        if info is None:
            raise ValueError("missing transaction info object")
        if info.meta is None:
            raise ValueError("missing transaction status meta")
        tx = info.transaction
        if tx is None:
            raise ValueError("missing transaction object from transaction info")
        message = tx.message
        if message is None:
            raise ValueError("missing message object from transaction")
        header = message.header
        if header is None:
            raise ValueError("missing message header")
        return cls(
            slot=_wrap_u64_to_i64(value.slot),
            signature=info.signature,
            signatures=list(tx.signatures),
            num_required_signatures=_wrap_u32_to_i32(header.num_required_signatures),
            num_readonly_signed_accounts=_wrap_u32_to_i32(header.num_readonly_signed_accounts),
            num_readonly_unsigned_accounts=_wrap_u32_to_i32(
                header.num_readonly_unsigned_accounts
            ),
            account_keys=list(message.account_keys),
            recent_blockhash=message.recent_blockhash,
            instructions=[CompiledInstr.from_proto(i) for i in message.instructions],
            versioned=message.versioned,
            address_table_lookups=[
                MessageAddrTableLookup.from_proto(a) for a in message.address_table_lookups
            ],
            meta=TransactionMeta.from_proto(info.meta),
            is_vote=info.is_vote,
            tx_index=_wrap_u64_to_i64(info.index),
        )

    def to_proto(self) -> geyser.SubscribeUpdateTransaction:
        message = geyser.Message(
            header=geyser.MessageHeader(
                num_required_signatures=self.num_required_signatures,
                num_readonly_signed_accounts=self.num_readonly_signed_accounts,
                num_readonly_unsigned_accounts=self.num_readonly_unsigned_accounts,
            ),
            account_keys=list(self.account_keys),
            recent_blockhash=self.recent_blockhash,
            instructions=[i.to_proto() for i in self.instructions],
            versioned=self.versioned,
            address_table_lookups=[a.to_proto() for a in self.address_table_lookups],
        )
        info = geyser.SubscribeUpdateTransactionInfo(
            signature=self.signature,
            is_vote=self.is_vote,
            transaction=geyser.Transaction(signatures=list(self.signatures), message=message),
            meta=self.meta.to_proto(),
            index=self.tx_index,
        )
        return geyser.SubscribeUpdateTransaction(transaction=info, slot=self.slot)


@dataclass
class ShardedAccountUpdate:
    shard_id: ShardId
    period: ShardPeriod
    producer_id: ProducerId
    offset: ShardOffset
    slot: Slot
    event_type: BlockchainEventType
    pubkey: Pubkey
    lamports: int
    owner: Pubkey
    executable: bool
    rent_epoch: int
    write_version: int
    data: bytes
    txn_signature: Optional[bytes]

    @classmethod
    def from_event(cls, event: BlockchainEvent) -> "ShardedAccountUpdate":
        acc = event.to_account_update()
        return cls(
            shard_id=event.shard_id,
            period=event.period,
            producer_id=event.producer_id,
            offset=event.offset,
            slot=event.slot,
            event_type=event.event_type,
            pubkey=acc.pubkey,
            lamports=acc.lamports,
            owner=acc.owner,
            executable=acc.executable,
            rent_epoch=acc.rent_epoch,
            write_version=acc.write_version,
            data=acc.data,
            txn_signature=acc.txn_signature,
        )


@dataclass
class ShardedTransaction:
    shard_id: ShardId
    period: ShardPeriod
    producer_id: ProducerId
    offset: ShardOffset
    slot: Slot
    event_type: BlockchainEventType
    signature: bytes
    signatures: list[bytes]
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int
    account_keys: list[bytes]
    recent_blockhash: bytes
    instructions: list[CompiledInstr]
    versioned: bool
    address_table_lookups: list[MessageAddrTableLookup]
    meta: TransactionMeta
    is_vote: bool
    tx_index: int

    @classmethod
    def from_event(cls, event: BlockchainEvent) -> "ShardedTransaction":
        return cls(
            shard_id=event.shard_id,
            period=event.period,
            producer_id=event.producer_id,
            offset=event.offset,
            slot=event.slot,
            event_type=event.event_type,
            **_transaction_fields(event),
        )