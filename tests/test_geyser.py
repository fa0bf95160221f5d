import pytest

from yslog.geyser import (
    CompiledInstruction,
    InnerInstruction,
    InnerInstructions,
    Message,
    MessageAddressTableLookup,
    MessageHeader,
    Reward,
    ReturnData,
    SubscribeUpdate,
    SubscribeUpdateAccount,
    SubscribeUpdateAccountInfo,
    SubscribeUpdateTransaction,
    SubscribeUpdateTransactionInfo,
    TokenBalance,
    Transaction,
    TransactionError,
    TransactionStatusMeta,
    UiTokenAmount,
)


def test_defaults_are_empty():
    meta = TransactionStatusMeta()
    assert meta.err is None
    assert meta.fee == 0
    assert meta.pre_balances == []
    assert meta.log_messages_none is False
    assert meta.compute_units_consumed is None


def test_list_defaults_are_not_shared():
    first = TransactionStatusMeta()
    second = TransactionStatusMeta()
    first.log_messages.append("hello")
    assert second.log_messages == []


def test_equality_by_value():
    a = MessageAddressTableLookup(b"\x01" * 32, b"\x00\x01", b"\x02")
    b = MessageAddressTableLookup(b"\x01" * 32, b"\x00\x01", b"\x02")
    assert a == b
    assert a != MessageAddressTableLookup(b"\x01" * 32, b"\x00", b"\x02")


def test_nested_structure_holds_values():
    header = MessageHeader(1, 0, 2)
    message = Message(
        header=header,
        account_keys=[b"\x01" * 32],
        recent_blockhash=b"\x02" * 32,
        instructions=[CompiledInstruction(0, b"\x00", b"data")],
        versioned=True,
    )
    tx = Transaction(signatures=[b"\x03" * 64], message=message)
    info = SubscribeUpdateTransactionInfo(
        signature=b"\x03" * 64, transaction=tx, meta=TransactionStatusMeta(fee=5000), index=7
    )
    update = SubscribeUpdateTransaction(transaction=info, slot=42)
    assert update.transaction.transaction.message.header.num_readonly_unsigned_accounts == 2
    assert update.transaction.meta.fee == 5000
    assert update.slot == 42


@pytest.mark.parametrize(
    "factory",
    [
        lambda: CompiledInstruction(program_id_index=-1),
        lambda: CompiledInstruction(program_id_index=2**32),
        lambda: InnerInstruction(stack_height=-1),
        lambda: InnerInstructions(index=-3),
        lambda: UiTokenAmount(decimals=-1),
        lambda: TokenBalance(account_index=2**32),
        lambda: Reward(post_balance=-1),
        lambda: Reward(reward_type=2**31),
        lambda: TransactionStatusMeta(fee=-1),
        lambda: TransactionStatusMeta(pre_balances=[1, -2]),
        lambda: TransactionStatusMeta(compute_units_consumed=2**64),
        lambda: MessageHeader(num_required_signatures=-1),
        lambda: SubscribeUpdateTransactionInfo(index=-1),
        lambda: SubscribeUpdateTransaction(slot=-1),
        lambda: SubscribeUpdateAccountInfo(lamports=-1),
        lambda: SubscribeUpdateAccountInfo(rent_epoch=2**64),
        lambda: SubscribeUpdateAccount(slot=-5),
    ],
)
def test_out_of_range_integers_are_rejected(factory):
    with pytest.raises(ValueError):
        factory()


def test_upper_bounds_are_accepted():
    account = SubscribeUpdateAccountInfo(lamports=2**64 - 1, write_version=2**64 - 1)
    assert account.lamports == 2**64 - 1
    assert CompiledInstruction(program_id_index=2**32 - 1).program_id_index == 2**32 - 1


def test_reward_lamports_may_be_negative():
    reward = Reward(pubkey="validator", lamports=-10, post_balance=0)
    assert reward.lamports == -10


def test_non_integer_rejected():
    with pytest.raises(TypeError):
        SubscribeUpdateAccount(slot="1")


def test_subscribe_update_accepts_account_and_transaction():
    acc = SubscribeUpdateAccount(account=SubscribeUpdateAccountInfo(pubkey=b"\x00" * 32), slot=1)
    assert SubscribeUpdate(update_oneof=acc).update_oneof is acc
    tx = SubscribeUpdateTransaction(slot=2)
    assert SubscribeUpdate(filters=["f"], update_oneof=tx).filters == ["f"]


def test_subscribe_update_rejects_other_payloads():
    with pytest.raises(TypeError):
        SubscribeUpdate(update_oneof=ReturnData())


def test_meta_carries_error_and_return_data():
    meta = TransactionStatusMeta(
        err=TransactionError(b"\x01"),
        return_data=ReturnData(b"\x09" * 32, b"out"),
    )
    assert meta.err.err == b"\x01"
    assert meta.return_data.data == b"out"