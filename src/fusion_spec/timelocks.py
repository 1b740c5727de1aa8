"""Timelock schedule: a pure time-window oracle for escrow transitions.

Absolute stage time is `deployed_at + offset`. Offsets are taken as given;
ordering between stages is the caller's responsibility.

    ---- deployed --/-- WITHDRAWAL --/-- PUBLIC WITHDRAWAL --/--
    --/-- CANCELLATION --/-- PUBLIC CANCELLATION ----
"""

from __future__ import annotations

from dataclasses import replace

from .errors import ErrorCode, SpecError
from .types import EscrowLeg, Stage, Timelocks

_STAGE_FIELDS = {
    Stage.SRC_WITHDRAWAL: "src_withdrawal",
    Stage.SRC_PUBLIC_WITHDRAWAL: "src_public_withdrawal",
    Stage.SRC_CANCELLATION: "src_cancellation",
    Stage.SRC_PUBLIC_CANCELLATION: "src_public_cancellation",
    Stage.DST_WITHDRAWAL: "dst_withdrawal",
    Stage.DST_PUBLIC_WITHDRAWAL: "dst_public_withdrawal",
    Stage.DST_CANCELLATION: "dst_cancellation",
    Stage.DST_PUBLIC_CANCELLATION: "dst_public_cancellation",
}

# leg -> (withdrawal, public withdrawal, cancellation, public cancellation)
_LEG_STAGES = {
    EscrowLeg.SOURCE: (
        Stage.SRC_WITHDRAWAL,
        Stage.SRC_PUBLIC_WITHDRAWAL,
        Stage.SRC_CANCELLATION,
        Stage.SRC_PUBLIC_CANCELLATION,
    ),
    EscrowLeg.DESTINATION: (
        Stage.DST_WITHDRAWAL,
        Stage.DST_PUBLIC_WITHDRAWAL,
        Stage.DST_CANCELLATION,
        Stage.DST_PUBLIC_CANCELLATION,
    ),
}


def new_timelocks(
    src_withdrawal: int,
    src_public_withdrawal: int,
    src_cancellation: int,
    src_public_cancellation: int,
    dst_withdrawal: int,
    dst_public_withdrawal: int,
    dst_cancellation: int,
    dst_public_cancellation: int,
) -> Timelocks:
    offsets = (
        src_withdrawal,
        src_public_withdrawal,
        src_cancellation,
        src_public_cancellation,
        dst_withdrawal,
        dst_public_withdrawal,
        dst_cancellation,
        dst_public_cancellation,
    )
    if any(o < 0 for o in offsets):
        raise SpecError(ErrorCode.MALFORMED_IMMUTABLES, "timelock offsets must be >= 0")
    return Timelocks(*offsets)


def offset(timelocks: Timelocks, stage: Stage) -> int:
    return getattr(timelocks, _STAGE_FIELDS[stage])


def offsets(timelocks: Timelocks) -> list[int]:
    return [offset(timelocks, s) for s in Stage]


def with_deployed_at(timelocks: Timelocks, timestamp: int) -> Timelocks:
    """Stamp the deployment time. Allowed exactly once."""
    if timelocks.deployed_at is not None:
        raise SpecError(ErrorCode.SCHEDULE_ALREADY_DEPLOYED, "deployed_at already set")
    if timestamp < 0:
        raise SpecError(ErrorCode.MALFORMED_IMMUTABLES, "deployed_at must be >= 0")
    return replace(timelocks, deployed_at=timestamp)


def deployed_at(timelocks: Timelocks) -> int:
    if timelocks.deployed_at is None:
        raise SpecError(ErrorCode.SCHEDULE_NOT_DEPLOYED, "timelock schedule not deployed")
    return timelocks.deployed_at


def get(timelocks: Timelocks, stage: Stage) -> int:
    """Absolute start time of `stage`."""
    return deployed_at(timelocks) + offset(timelocks, stage)


def rescue_start(timelocks: Timelocks, rescue_delay: int) -> int:
    return deployed_at(timelocks) + rescue_delay


def leg_stages(leg: EscrowLeg) -> tuple[Stage, Stage, Stage, Stage]:
    return _LEG_STAGES[leg]


def only_after(now: int, start: int) -> None:
    if now < start:
        raise SpecError(ErrorCode.OUT_OF_WINDOW, f"too early: now={now} < {start}")


def only_before(now: int, end: int) -> None:
    if now >= end:
        raise SpecError(ErrorCode.OUT_OF_WINDOW, f"too late: now={now} >= {end}")


def require_window(timelocks: Timelocks, now: int, start: Stage, end: Stage | None = None) -> None:
    """Assert `now` lies in `[start, end)`; with no `end` the window is open-ended."""
    only_after(now, get(timelocks, start))
    if end is not None:
        only_before(now, get(timelocks, end))


def is_active(timelocks: Timelocks, now: int, stage: Stage) -> bool:
    return now >= get(timelocks, stage)
