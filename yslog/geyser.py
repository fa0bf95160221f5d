"""Geyser subscription messages and the block structures they carry.

Integer fields are checked against the width of the wire type they
stand for, so a value that could never be encoded raises ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

_U32 = (0, 2**32 - 1)
_U64 = (0, 2**64 - 1)
_I32 = (-(2**31), 2**31 - 1)
_I64 = (-(2**63), 2**63 - 1)


def _check_int(owner: object, name: str, value: int, bounds: tuple[int, int]) -> None:
    if not isinstance(value, int):
        raise TypeError(
            f"{type(owner).__name__}.{name} must be an int, got {type(value).__name__}"
        )
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(
            f"{type(owner).__name__}.{name}={value} is outside [{low}, {high}]"
        )


def _check_ints(owner: object, name: str, values: list[int], bounds: tuple[int, int]) -> None:
    for value in values:
        _check_int(owner, name, value, bounds)


@dataclass
class MessageAddressTableLookup:
    """An address lookup table referenced by a versioned message."""

    account_key: bytes = b""
    writable_indexes: bytes = b""
    readonly_indexes: bytes = b""


@dataclass
class CompiledInstruction:
    """An instruction with accounts given as indexes into the message keys."""

    program_id_index: int = 0
    accounts: bytes = b""
    data: bytes = b""

    def __post_init__(self) -> None:
        _check_int(self, "program_id_index", self.program_id_index, _U32)


@dataclass
class InnerInstruction:
    """An instruction invoked by another instruction."""

    program_id_index: int = 0
    accounts: bytes = b""
    data: bytes = b""
    stack_height: Optional[int] = None

    def __post_init__(self) -> None:
        _check_int(self, "program_id_index", self.program_id_index, _U32)
        if self.stack_height is not None:
            _check_int(self, "stack_height", self.stack_height, _U32)


@dataclass
class InnerInstructions:
    """The inner instructions run by the top-level instruction at ``index``."""

    index: int = 0
    instructions: list[InnerInstruction] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_int(self, "index", self.index, _U32)


@dataclass
class UiTokenAmount:
    """A token amount in raw and human-readable forms."""

    ui_amount: float = 0.0
    decimals: int = 0
    amount: str = ""
    ui_amount_string: str = ""

    def __post_init__(self) -> None:
        _check_int(self, "decimals", self.decimals, _U32)


@dataclass
class TokenBalance:
    """The balance of one token account touched by a transaction."""

    account_index: int = 0
    mint: str = ""
    ui_token_amount: Optional[UiTokenAmount] = None
    owner: str = ""
    program_id: str = ""

    def __post_init__(self) -> None:
        _check_int(self, "account_index", self.account_index, _U32)


@dataclass
class Reward:
    """A reward credited to an account."""

    pubkey: str = ""
    lamports: int = 0
    post_balance: int = 0
    reward_type: int = 0
    commission: str = ""

    def __post_init__(self) -> None:
        _check_int(self, "lamports", self.lamports, _I64)
        _check_int(self, "post_balance", self.post_balance, _U64)
        _check_int(self, "reward_type", self.reward_type, _I32)


@dataclass
class ReturnData:
    """Data returned by a program at the end of a transaction."""

    program_id: bytes = b""
    data: bytes = b""


@dataclass
class TransactionError:
    """A serialized transaction error."""

    err: bytes = b""


@dataclass
class TransactionStatusMeta:
    """The execution status and side effects of a transaction."""

    err: Optional[TransactionError] = None
    fee: int = 0
    pre_balances: list[int] = field(default_factory=list)
    post_balances: list[int] = field(default_factory=list)
    inner_instructions: list[InnerInstructions] = field(default_factory=list)
    inner_instructions_none: bool = False
    log_messages: list[str] = field(default_factory=list)
    log_messages_none: bool = False
    pre_token_balances: list[TokenBalance] = field(default_factory=list)
    post_token_balances: list[TokenBalance] = field(default_factory=list)
    rewards: list[Reward] = field(default_factory=list)
    loaded_writable_addresses: list[bytes] = field(default_factory=list)
    loaded_readonly_addresses: list[bytes] = field(default_factory=list)
    return_data: Optional[ReturnData] = None
    return_data_none: bool = False
    compute_units_consumed: Optional[int] = None

    def __post_init__(self) -> None:
        _check_int(self, "fee", self.fee, _U64)
        _check_ints(self, "pre_balances", self.pre_balances, _U64)
        _check_ints(self, "post_balances", self.post_balances, _U64)
        if self.compute_units_consumed is not None:
            _check_int(self, "compute_units_consumed", self.compute_units_consumed, _U64)


@dataclass
class MessageHeader:
    """Signature and read-only account counts of a message."""

    num_required_signatures: int = 0
    num_readonly_signed_accounts: int = 0
    num_readonly_unsigned_accounts: int = 0

    def __post_init__(self) -> None:
        _check_int(self, "num_required_signatures", self.num_required_signatures, _U32)
        _check_int(
            self, "num_readonly_signed_accounts", self.num_readonly_signed_accounts, _U32
        )
        _check_int(
            self, "num_readonly_unsigned_accounts", self.num_readonly_unsigned_accounts, _U32
        )


@dataclass
class Message:
    """The signed body of a transaction."""

    header: Optional[MessageHeader] = None
    account_keys: list[bytes] = field(default_factory=list)
    recent_blockhash: bytes = b""
    instructions: list[CompiledInstruction] = field(default_factory=list)
    versioned: bool = False
    address_table_lookups: list[MessageAddressTableLookup] = field(default_factory=list)


@dataclass
class Transaction:
    """A message together with its signatures."""

    signatures: list[bytes] = field(default_factory=list)
    message: Optional[Message] = None


@dataclass
class SubscribeUpdateTransactionInfo:
    """A transaction as streamed to subscribers."""

    signature: bytes = b""
    is_vote: bool = False
    transaction: Optional[Transaction] = None
    meta: Optional[TransactionStatusMeta] = None
    index: int = 0

    def __post_init__(self) -> None:
        _check_int(self, "index", self.index, _U64)


@dataclass
class SubscribeUpdateTransaction:
    """A transaction update for a slot."""

    transaction: Optional[SubscribeUpdateTransactionInfo] = None
    slot: int = 0

    def __post_init__(self) -> None:
        _check_int(self, "slot", self.slot, _U64)


@dataclass
class SubscribeUpdateAccountInfo:
    """The state of an account after a write."""

    pubkey: bytes = b""
    lamports: int = 0
    owner: bytes = b""
    executable: bool = False
    rent_epoch: int = 0
    data: bytes = b""
    write_version: int = 0
    txn_signature: Optional[bytes] = None

    def __post_init__(self) -> None:
        _check_int(self, "lamports", self.lamports, _U64)
        _check_int(self, "rent_epoch", self.rent_epoch, _U64)
        _check_int(self, "write_version", self.write_version, _U64)


@dataclass
class SubscribeUpdateAccount:
    """An account update for a slot."""

    account: Optional[SubscribeUpdateAccountInfo] = None
    slot: int = 0
    is_startup: bool = False

    def __post_init__(self) -> None:
        _check_int(self, "slot", self.slot, _U64)


@dataclass
class SubscribeUpdate:
    """One item of a subscription stream: an account or a transaction update."""

    filters: list[str] = field(default_factory=list)
    update_oneof: Union[SubscribeUpdateAccount, SubscribeUpdateTransaction, None] = None

    def __post_init__(self) -> None:
        if self.update_oneof is not None and not isinstance(
            self.update_oneof, (SubscribeUpdateAccount, SubscribeUpdateTransaction)
        ):
            raise TypeError(
                "update_oneof must be a SubscribeUpdateAccount or SubscribeUpdateTransaction"
            )