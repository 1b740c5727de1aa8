"""State transition entrypoints for the fusion swap specs."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .errors import ErrorCode, SpecError
from .events import Event, EventSink
from .types import Call, CallType, ChainAddress, SwapState
from .tx import escrow as tx_escrow
from .tx import factory as tx_factory
from .tx import partial_fill as tx_partial_fill

logger = logging.getLogger(__name__)

_FACTORY_TYPES = frozenset({
    CallType.CREATE_SRC_ESCROW,
    CallType.CREATE_DST_ESCROW,
    CallType.TRANSFER_CAPABILITY,
})

_ESCROW_TYPES = frozenset({
    CallType.WITHDRAW,
    CallType.WITHDRAW_TO,
    CallType.PUBLIC_WITHDRAW,
    CallType.CANCEL,
    CallType.PUBLIC_CANCEL,
    CallType.RESCUE_FUNDS,
})

_PARTIAL_FILL_TYPES = frozenset({
    CallType.CREATE_PARTIAL_ORDER,
    CallType.EXECUTE_PARTIAL_FILL,
})


class TransitionResult:
    """Thin wrapper for verify/apply results."""

    def __init__(self, ok: bool, error: Optional[SpecError] = None, events: Optional[list[Event]] = None):
        self.ok = ok
        self.error = error
        self.events = events or []

    @classmethod
    def success(cls, events: Optional[list[Event]] = None) -> "TransitionResult":
        return cls(True, None, events)

    @classmethod
    def failure(cls, error: SpecError) -> "TransitionResult":
        return cls(False, error)


def _dispatch_verify(state: SwapState, call: Call) -> None:
    ct = call.call_type
    if ct in _FACTORY_TYPES:
        return tx_factory.verify(state, call)
    if ct in _ESCROW_TYPES:
        return tx_escrow.verify(state, call)
    if ct in _PARTIAL_FILL_TYPES:
        return tx_partial_fill.verify(state, call)

    raise SpecError(ErrorCode.NOT_IMPLEMENTED, f"verify not implemented for {call.call_type}")


def _dispatch_apply(state: SwapState, call: Call) -> tuple[SwapState, list[Event]]:
    ct = call.call_type
    if ct in _FACTORY_TYPES:
        return tx_factory.apply(state, call)
    if ct in _ESCROW_TYPES:
        return tx_escrow.apply(state, call)
    if ct in _PARTIAL_FILL_TYPES:
        return tx_partial_fill.apply(state, call)

    raise SpecError(ErrorCode.NOT_IMPLEMENTED, f"apply not implemented for {call.call_type}")


def _verify_common(call: Call) -> None:
    if not isinstance(call.call_type, CallType):
        raise SpecError(ErrorCode.INVALID_TYPE, "unknown call type")
    if not isinstance(call.caller, ChainAddress):
        raise SpecError(ErrorCode.INVALID_ADDRESS, "caller must be a ChainAddress")
    if call.capability is not None and not isinstance(call.capability, bytes):
        raise SpecError(ErrorCode.INVALID_FORMAT, "capability must be an id (bytes)")


def verify_call(state: SwapState, call: Call) -> TransitionResult:
    """Run every check of a call without touching `state`."""
    try:
        _verify_common(call)
        _dispatch_verify(state, call)
        return TransitionResult.success()
    except SpecError as exc:
        return TransitionResult.failure(exc)


def apply_call(
    state: SwapState,
    call: Call,
    sink: Optional[EventSink] = None,
) -> tuple[SwapState, TransitionResult]:
    """Apply a call to state after verification.

    On any failure the returned state is the input state, untouched, and no
    event reaches `sink`. Events are delivered only once the whole call has
    been applied.
    """
    try:
        _verify_common(call)
        _dispatch_verify(state, call)
    except SpecError as exc:
        logger.info("rejected %s from %s: %s", call.call_type, _caller_hex(call), exc)
        return state, TransitionResult.failure(exc)

    # each tx `apply` works on its own copy of `state`
    try:
        working, events = _dispatch_apply(state, call)
    except SpecError as exc:
        logger.info("execution failed %s from %s: %s", call.call_type, _caller_hex(call), exc)
        return state, TransitionResult.failure(exc)

    logger.debug("applied %s from %s (%d events)", call.call_type, _caller_hex(call), len(events))
    if sink is not None:
        for event in events:
            sink.emit(event)
    return working, TransitionResult.success(events)


def apply_batch(
    state: SwapState,
    calls: list[Call],
    sink: Optional[EventSink] = None,
) -> tuple[SwapState, TransitionResult]:
    """Apply calls in order (batch-atomic semantics).

    If any call fails, the whole batch is rejected, the state is unchanged and
    no events are delivered.
    """
    working = state
    events: list[Event] = []
    for call in calls:
        working, result = apply_call(working, call)
        if not result.ok:
            return state, result
        events.extend(result.events)

    working = replace(
        working,
        global_state=replace(
            working.global_state, block_height=working.global_state.block_height + 1
        ),
    )
    if sink is not None:
        for event in events:
            sink.emit(event)
    return working, TransitionResult.success(events)


def _caller_hex(call: Call) -> str:
    caller = call.caller
    return caller.hex() if isinstance(caller, ChainAddress) else repr(caller)
