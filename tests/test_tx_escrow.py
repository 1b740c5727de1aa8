"""Escrow ledger state machine calls."""

from __future__ import annotations

import json

from fusion_spec.config import FactoryConfig
from fusion_spec.crypto.hashlock import secret_hash
from fusion_spec.errors import ErrorCode
from fusion_spec.events import CancellationCompleted, FundsRescued, WithdrawalCompleted
from fusion_spec.state_transition import apply_call
from fusion_spec.test_accounts import (
    ETH_MAKER,
    MAKER,
    RESOLVER,
    RESOLVER_ACCESS,
    STARTING_NATIVE,
    STARTING_TOKENS,
    STRANGER,
    TAKER,
    TOKEN,
    at,
    base_state,
    grant_access,
    make_immutables,
)
from fusion_spec.types import NATIVE_ASSET, Call, CallType, EscrowStatus, SwapState
from tools.consume import check_call_cases
from tools.fixtures_io import call_to_json, state_to_json

SECRET = b"escrow-secret-0001"
HASHLOCK = secret_hash(SECRET)

# deployed_at = 1000
SRC_WITHDRAWAL = 4600
SRC_PUBLIC_WITHDRAWAL = 8200
SRC_CANCELLATION = 87400
SRC_PUBLIC_CANCELLATION = 91000
DST_WITHDRAWAL = 2800
DST_CANCELLATION = 73000


def _src_escrow(**kw) -> tuple[SwapState, bytes]:
    """Source escrow funded by the maker at t=1000."""
    state = base_state(timestamp=1000)
    state.factory = FactoryConfig(src_rescue_delay=3600, dst_rescue_delay=3600)
    call = Call(MAKER, CallType.CREATE_SRC_ESCROW, {"immutables": make_immutables(HASHLOCK, **kw)})
    state, result = apply_call(state, call)
    assert result.ok, result.error
    return state, result.events[0].escrow_id


def _dst_escrow(**kw) -> tuple[SwapState, bytes]:
    """Destination escrow funded by the taker at t=1000."""
    state = base_state(timestamp=1000)
    state.factory = FactoryConfig(src_rescue_delay=3600, dst_rescue_delay=3600)
    call = Call(TAKER, CallType.CREATE_DST_ESCROW, {"immutables": make_immutables(HASHLOCK, **kw)})
    state, result = apply_call(state, call)
    assert result.ok, result.error
    return state, result.events[0].escrow_id


def _withdraw(caller, eid: bytes, secret: bytes = SECRET) -> Call:
    return Call(caller, CallType.WITHDRAW, {"escrow_id": eid, "secret": secret})


def _cancel(caller, eid: bytes) -> Call:
    return Call(caller, CallType.CANCEL, {"escrow_id": eid})


# --- withdraw ---


def test_withdraw_timelock_scenario(call_test_group) -> None:
    state, eid = _src_escrow()

    _, result = call_test_group("escrow/withdraw.json", "too_early", at(state, 1000), _withdraw(TAKER, eid))
    assert result.error.code == ErrorCode.OUT_OF_WINDOW

    _, result = call_test_group("escrow/withdraw.json", "too_late", at(state, 87401), _withdraw(TAKER, eid))
    assert result.error.code == ErrorCode.OUT_OF_WINDOW

    post, result = call_test_group("escrow/withdraw.json", "in_window", at(state, 4601), _withdraw(TAKER, eid))
    assert result.ok, result.error
    assert post.escrows[eid].status == EscrowStatus.WITHDRAWN
    assert result.events == [WithdrawalCompleted(escrow_id=eid, secret=SECRET)]


def test_withdraw_pays_taker_and_deposit(call_test_group) -> None:
    state, eid = _src_escrow()
    post, result = call_test_group(
        "escrow/withdraw.json", "payouts", at(state, SRC_WITHDRAWAL), _withdraw(TAKER, eid)
    )
    assert result.ok
    taker = post.accounts[TAKER]
    assert taker.balance_of(TOKEN) == STARTING_TOKENS + 1_000
    assert taker.balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50
    escrow = post.escrows[eid]
    assert (escrow.token_balance.value, escrow.safety_deposit.value) == (0, 0)


def test_withdraw_to_alternate_target(call_test_group) -> None:
    state, eid = _src_escrow()
    call = Call(TAKER, CallType.WITHDRAW_TO, {"escrow_id": eid, "secret": SECRET, "target": STRANGER})
    post, result = call_test_group("escrow/withdraw.json", "withdraw_to", at(state, SRC_WITHDRAWAL), call)
    assert result.ok
    assert post.accounts[STRANGER].balance_of(TOKEN) == STARTING_TOKENS + 1_000
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS
    assert post.accounts[TAKER].balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50


def test_withdraw_wrong_secret(call_test_group) -> None:
    state, eid = _src_escrow()
    post, result = call_test_group(
        "escrow/withdraw.json", "wrong_secret", at(state, SRC_WITHDRAWAL), _withdraw(TAKER, eid, b"nope")
    )
    assert result.error.code == ErrorCode.INVALID_SECRET
    assert post.escrows[eid].status == EscrowStatus.ACTIVE


def test_withdraw_wrong_caller(call_test_group) -> None:
    state, eid = _src_escrow()
    _, result = call_test_group(
        "escrow/withdraw.json", "wrong_caller", at(state, SRC_WITHDRAWAL), _withdraw(MAKER, eid)
    )
    assert result.error.code == ErrorCode.UNAUTHORIZED


def test_check_order_auth_time_secret(call_test_group) -> None:
    state, eid = _src_escrow()
    # wrong caller, wrong time and wrong secret: authorization wins
    _, result = call_test_group(
        "escrow/withdraw.json", "auth_first", at(state, 1000), _withdraw(STRANGER, eid, b"nope")
    )
    assert result.error.code == ErrorCode.UNAUTHORIZED
    # right caller, wrong time and wrong secret: time wins
    _, result = call_test_group(
        "escrow/withdraw.json", "time_before_secret", at(state, 1000), _withdraw(TAKER, eid, b"nope")
    )
    assert result.error.code == ErrorCode.OUT_OF_WINDOW


def test_withdraw_unknown_escrow(call_test_group) -> None:
    state, _ = _src_escrow()
    _, result = call_test_group(
        "escrow/withdraw.json", "unknown_escrow", at(state, SRC_WITHDRAWAL), _withdraw(TAKER, bytes(32))
    )
    assert result.error.code == ErrorCode.ESCROW_NOT_FOUND


# --- terminal states ---


def test_withdraw_then_anything_is_finalized(call_test_group) -> None:
    state, eid = _src_escrow()
    state, result = apply_call(at(state, SRC_WITHDRAWAL), _withdraw(TAKER, eid))
    assert result.ok

    _, result = call_test_group("escrow/finalized.json", "withdraw_twice", state, _withdraw(TAKER, eid))
    assert result.error.code == ErrorCode.ALREADY_FINALIZED

    _, result = call_test_group(
        "escrow/finalized.json", "cancel_after_withdraw", at(state, SRC_CANCELLATION), _cancel(TAKER, eid)
    )
    assert result.error.code == ErrorCode.ALREADY_FINALIZED


def test_cancel_then_withdraw_is_finalized(call_test_group) -> None:
    state, eid = _src_escrow()
    state, result = apply_call(at(state, SRC_CANCELLATION), _cancel(TAKER, eid))
    assert result.ok

    # even with a stranger calling, the terminal guard is checked first
    _, result = call_test_group(
        "escrow/finalized.json", "withdraw_after_cancel", state, _withdraw(STRANGER, eid)
    )
    assert result.error.code == ErrorCode.ALREADY_FINALIZED


# --- cancel ---


def test_cancel_refunds_maker(call_test_group) -> None:
    state, eid = _src_escrow()
    post, result = call_test_group(
        "escrow/cancel.json", "cancel_src", at(state, SRC_CANCELLATION), _cancel(TAKER, eid)
    )
    assert result.ok
    assert post.escrows[eid].status == EscrowStatus.CANCELLED
    assert post.accounts[MAKER].balance_of(TOKEN) == STARTING_TOKENS
    assert post.accounts[MAKER].balance_of(NATIVE_ASSET) == STARTING_NATIVE - 50
    assert post.accounts[TAKER].balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50
    assert result.events == [CancellationCompleted(escrow_id=eid)]


def test_cancel_before_window(call_test_group) -> None:
    state, eid = _src_escrow()
    _, result = call_test_group(
        "escrow/cancel.json", "cancel_early", at(state, SRC_CANCELLATION - 1), _cancel(TAKER, eid)
    )
    assert result.error.code == ErrorCode.OUT_OF_WINDOW


def test_cancel_wrong_caller(call_test_group) -> None:
    state, eid = _src_escrow()
    _, result = call_test_group(
        "escrow/cancel.json", "cancel_by_maker", at(state, SRC_CANCELLATION), _cancel(MAKER, eid)
    )
    assert result.error.code == ErrorCode.UNAUTHORIZED


# --- public actions ---


def _public_withdraw(caller=RESOLVER, cap=RESOLVER_ACCESS) -> tuple[SwapState, Call]:
    state, eid = _src_escrow()
    call = Call(caller, CallType.PUBLIC_WITHDRAW, {"escrow_id": eid, "secret": SECRET}, capability=cap)
    return state, call


def test_public_withdraw_pays_taker(call_test_group) -> None:
    state, call = _public_withdraw()
    post, result = call_test_group("escrow/public.json", "public_withdraw", at(state, SRC_PUBLIC_WITHDRAWAL), call)
    assert result.ok
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS + 1_000
    assert post.accounts[RESOLVER].balance_of(TOKEN) == STARTING_TOKENS
    assert post.accounts[RESOLVER].balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50


def test_public_withdraw_with_granted_access(call_test_group) -> None:
    state, eid = _src_escrow()
    cap = grant_access(state, STRANGER)
    call = Call(STRANGER, CallType.PUBLIC_WITHDRAW, {"escrow_id": eid, "secret": SECRET}, capability=cap)
    post, result = call_test_group("escrow/public.json", "granted_access", at(state, SRC_PUBLIC_WITHDRAWAL), call)
    assert result.ok
    assert post.accounts[STRANGER].balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50


def test_public_withdraw_before_public_stage(call_test_group) -> None:
    state, call = _public_withdraw()
    _, result = call_test_group("escrow/public.json", "public_withdraw_early", at(state, SRC_WITHDRAWAL), call)
    assert result.error.code == ErrorCode.OUT_OF_WINDOW


def test_public_withdraw_without_capability(call_test_group) -> None:
    state, call = _public_withdraw(cap=None)
    _, result = call_test_group("escrow/public.json", "no_capability", at(state, SRC_PUBLIC_WITHDRAWAL), call)
    assert result.error.code == ErrorCode.UNAUTHORIZED


def test_public_withdraw_empty_capability(call_test_group) -> None:
    state, call = _public_withdraw()
    state.capabilities[RESOLVER_ACCESS].balance = 0
    _, result = call_test_group("escrow/public.json", "empty_capability", at(state, SRC_PUBLIC_WITHDRAWAL), call)
    assert result.error.code == ErrorCode.UNAUTHORIZED


def test_public_withdraw_borrowed_capability(call_test_group) -> None:
    state, call = _public_withdraw(caller=STRANGER)
    _, result = call_test_group("escrow/public.json", "borrowed_capability", at(state, SRC_PUBLIC_WITHDRAWAL), call)
    assert result.error.code == ErrorCode.UNAUTHORIZED


def test_public_cancel(call_test_group) -> None:
    state, eid = _src_escrow()
    call = Call(RESOLVER, CallType.PUBLIC_CANCEL, {"escrow_id": eid}, capability=RESOLVER_ACCESS)

    _, result = call_test_group("escrow/public.json", "public_cancel_early", at(state, SRC_CANCELLATION), call)
    assert result.error.code == ErrorCode.OUT_OF_WINDOW

    post, result = call_test_group("escrow/public.json", "public_cancel", at(state, SRC_PUBLIC_CANCELLATION), call)
    assert result.ok
    assert post.accounts[MAKER].balance_of(TOKEN) == STARTING_TOKENS
    assert post.accounts[RESOLVER].balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50


def test_public_withdraw_case_replays(tmp_path) -> None:
    state, call = _public_withdraw()
    pre_state = at(state, SRC_PUBLIC_WITHDRAWAL)
    post_state, result = apply_call(pre_state, call)
    assert result.ok

    case = {
        "name": "public_withdraw",
        "pre_state": state_to_json(pre_state),
        "call": call_to_json(call),
        "expected": {"ok": True, "error": None, "post_state": state_to_json(post_state)},
    }
    path = tmp_path / "public.json"
    path.write_text(json.dumps({"cases": [case]}))
    assert check_call_cases(path) == []


# --- destination leg ---


def test_dst_withdraw_pays_maker(call_test_group) -> None:
    state, eid = _dst_escrow(maker=ETH_MAKER)
    post, result = call_test_group("escrow/dst.json", "dst_withdraw", at(state, DST_WITHDRAWAL), _withdraw(TAKER, eid))
    assert result.ok
    assert post.accounts[ETH_MAKER].balance_of(TOKEN) == 1_000
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS - 1_000
    assert post.accounts[TAKER].balance_of(NATIVE_ASSET) == STARTING_NATIVE


def test_dst_cancel_refunds_taker(call_test_group) -> None:
    state, eid = _dst_escrow()
    post, result = call_test_group("escrow/dst.json", "dst_cancel", at(state, DST_CANCELLATION), _cancel(TAKER, eid))
    assert result.ok
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS
    assert post.accounts[MAKER].balance_of(TOKEN) == STARTING_TOKENS


def test_dst_withdraw_to_not_supported(call_test_group) -> None:
    state, eid = _dst_escrow()
    call = Call(TAKER, CallType.WITHDRAW_TO, {"escrow_id": eid, "secret": SECRET, "target": STRANGER})
    _, result = call_test_group("escrow/dst.json", "dst_withdraw_to", at(state, DST_WITHDRAWAL), call)
    assert result.error.code == ErrorCode.INVALID_TYPE


# --- rescue ---


def _rescue(eid: bytes, amount: int, cap: bytes, token=TOKEN, caller=TAKER) -> Call:
    return Call(caller, CallType.RESCUE_FUNDS, {"escrow_id": eid, "token": token, "amount": amount}, capability=cap)


def test_rescue_scenario(call_test_group) -> None:
    state, eid = _dst_escrow()
    cap = state.escrows[eid].owner_capability

    _, result = call_test_group("escrow/rescue.json", "rescue_early", at(state, 4599), _rescue(eid, 1_000, cap))
    assert result.error.code == ErrorCode.OUT_OF_WINDOW

    post, result = call_test_group("escrow/rescue.json", "rescue_tokens", at(state, 4600), _rescue(eid, 1_000, cap))
    assert result.ok, result.error
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS
    assert post.escrows[eid].token_balance.value == 0
    assert result.events == [FundsRescued(escrow_id=eid, token=TOKEN, amount=1_000)]


def test_rescue_src_escrow_funded_by_maker(call_test_group) -> None:
    state, eid = _src_escrow()
    cap = state.escrows[eid].owner_capability
    assert state.capabilities[cap].holder == TAKER

    post, result = call_test_group("escrow/rescue.json", "rescue_src", at(state, 4600), _rescue(eid, 1_000, cap))
    assert result.ok, result.error
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS + 1_000
    assert post.escrows[eid].token_balance.value == 0


def test_rescue_after_withdraw_recovers_leftover(call_test_group) -> None:
    state, eid = _dst_escrow()
    cap = state.escrows[eid].owner_capability
    state, result = apply_call(at(state, DST_WITHDRAWAL), _withdraw(TAKER, eid))
    assert result.ok

    # stray tokens sent to the escrow after it was finalized
    state.escrows[eid].token_balance.value += 7
    post, result = call_test_group("escrow/rescue.json", "rescue_leftover", at(state, 4600), _rescue(eid, 7, cap))
    assert result.ok, result.error
    assert post.escrows[eid].status == EscrowStatus.WITHDRAWN
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS - 1_000 + 7


def test_rescue_after_cancel_recovers_leftover(call_test_group) -> None:
    state, eid = _src_escrow()
    cap = state.escrows[eid].owner_capability
    state, result = apply_call(at(state, SRC_CANCELLATION), _cancel(TAKER, eid))
    assert result.ok

    state.escrows[eid].token_balance.value += 5
    state.escrows[eid].safety_deposit.value += 3
    post, result = call_test_group("escrow/rescue.json", "rescue_after_cancel", state, _rescue(eid, 5, cap))
    assert result.ok, result.error
    assert post.escrows[eid].status == EscrowStatus.CANCELLED
    assert post.accounts[TAKER].balance_of(TOKEN) == STARTING_TOKENS + 5

    post, result = call_test_group(
        "escrow/rescue.json", "rescue_native_after_cancel", post, _rescue(eid, 3, cap, token=NATIVE_ASSET)
    )
    assert result.ok, result.error
    assert post.accounts[TAKER].balance_of(NATIVE_ASSET) == STARTING_NATIVE + 50 + 3


def test_rescue_safety_deposit(call_test_group) -> None:
    state, eid = _dst_escrow()
    cap = state.escrows[eid].owner_capability
    post, result = call_test_group(
        "escrow/rescue.json", "rescue_native", at(state, 4600), _rescue(eid, 50, cap, token=NATIVE_ASSET)
    )
    assert result.ok
    assert post.accounts[TAKER].balance_of(NATIVE_ASSET) == STARTING_NATIVE


def test_rescue_more_than_held(call_test_group) -> None:
    state, eid = _dst_escrow()
    cap = state.escrows[eid].owner_capability
    _, result = call_test_group("escrow/rescue.json", "rescue_too_much", at(state, 4600), _rescue(eid, 1_001, cap))
    assert result.error.code == ErrorCode.INSUFFICIENT_BALANCE


def test_rescue_requires_taker(call_test_group) -> None:
    state, eid = _src_escrow()
    cap = state.escrows[eid].owner_capability
    _, result = call_test_group(
        "escrow/rescue.json", "rescue_not_taker", at(state, 4600), _rescue(eid, 1, cap, caller=MAKER)
    )
    assert result.error.code == ErrorCode.UNAUTHORIZED


def test_rescue_requires_owner_capability(call_test_group) -> None:
    state, eid = _src_escrow()
    cap = state.escrows[eid].owner_capability
    _, result = call_test_group("escrow/rescue.json", "rescue_without_cap", at(state, 4600), _rescue(eid, 1, None))
    assert result.error.code == ErrorCode.UNAUTHORIZED

    # once the taker hands the capability away, rescue is closed to everyone
    handover = Call(TAKER, CallType.TRANSFER_CAPABILITY, {"new_holder": STRANGER}, capability=cap)
    state, result = apply_call(state, handover)
    assert result.ok

    _, result = call_test_group("escrow/rescue.json", "rescue_cap_handed_over", state, _rescue(eid, 1, cap))
    assert result.error.code == ErrorCode.UNAUTHORIZED
    _, result = call_test_group(
        "escrow/rescue.json", "rescue_cap_holder_not_taker", state, _rescue(eid, 1, cap, caller=STRANGER)
    )
    assert result.error.code == ErrorCode.UNAUTHORIZED
