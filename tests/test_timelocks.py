"""Timelock schedule windows."""

from __future__ import annotations

import pytest

from fusion_spec import timelocks as tl
from fusion_spec.errors import ErrorCode, SpecError
from fusion_spec.test_accounts import default_timelocks
from fusion_spec.types import EscrowLeg, Stage


def _deployed(ts: int = 1000):
    return tl.with_deployed_at(default_timelocks(), ts)


def test_absolute_stage_time() -> None:
    t = _deployed()
    assert tl.get(t, Stage.SRC_WITHDRAWAL) == 4600
    assert tl.get(t, Stage.SRC_CANCELLATION) == 87400
    assert tl.get(t, Stage.DST_PUBLIC_CANCELLATION) == 1000 + 79200


def test_unset_schedule_cannot_be_read() -> None:
    with pytest.raises(SpecError) as exc:
        tl.get(default_timelocks(), Stage.SRC_WITHDRAWAL)
    assert exc.value.code == ErrorCode.SCHEDULE_NOT_DEPLOYED


def test_deployed_at_set_once() -> None:
    t = _deployed()
    with pytest.raises(SpecError) as exc:
        tl.with_deployed_at(t, 2000)
    assert exc.value.code == ErrorCode.SCHEDULE_ALREADY_DEPLOYED
    assert t.deployed_at == 1000


def test_negative_offset_rejected() -> None:
    with pytest.raises(SpecError) as exc:
        tl.new_timelocks(-1, 0, 0, 0, 0, 0, 0, 0)
    assert exc.value.code == ErrorCode.MALFORMED_IMMUTABLES


@pytest.mark.parametrize(
    "now, ok",
    [
        (1000, False),
        (4599, False),
        (4600, True),
        (4601, True),
        (87399, True),
        (87400, False),
        (87401, False),
    ],
)
def test_withdrawal_window_is_half_open(now: int, ok: bool) -> None:
    t = _deployed()
    if ok:
        tl.require_window(t, now, Stage.SRC_WITHDRAWAL, Stage.SRC_CANCELLATION)
        return
    with pytest.raises(SpecError) as exc:
        tl.require_window(t, now, Stage.SRC_WITHDRAWAL, Stage.SRC_CANCELLATION)
    assert exc.value.code == ErrorCode.OUT_OF_WINDOW


def test_open_ended_window() -> None:
    t = _deployed()
    tl.require_window(t, 10**12, Stage.SRC_PUBLIC_CANCELLATION)


def test_rescue_start() -> None:
    assert tl.rescue_start(_deployed(), 3600) == 4600


def test_leg_stages() -> None:
    assert tl.leg_stages(EscrowLeg.DESTINATION) == (
        Stage.DST_WITHDRAWAL,
        Stage.DST_PUBLIC_WITHDRAWAL,
        Stage.DST_CANCELLATION,
        Stage.DST_PUBLIC_CANCELLATION,
    )


def test_is_active() -> None:
    t = _deployed()
    assert not tl.is_active(t, 4599, Stage.SRC_WITHDRAWAL)
    assert tl.is_active(t, 4600, Stage.SRC_WITHDRAWAL)
