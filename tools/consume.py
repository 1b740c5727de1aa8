"""Consume swap fixtures and validate them against the Python specs."""

from __future__ import annotations

import json
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT / "tools"))

from fusion_spec.state_transition import apply_call  # noqa: E402
from fixtures_io import call_from_json, state_from_json, state_to_json  # noqa: E402


def check_call_cases(path: Path) -> list[str]:
    failures: list[str] = []
    data = json.loads(path.read_text())

    for case in data.get("cases", []):
        pre_state = state_from_json(case["pre_state"])
        call = call_from_json(case["call"])
        post_state, result = apply_call(pre_state, call)

        expected = case["expected"]
        if result.ok != expected["ok"]:
            failures.append(f"{path.name}:{case['name']}: ok_mismatch")
            continue

        actual_err = result.error.code.name if result.error else None
        if actual_err != expected["error"]:
            failures.append(f"{path.name}:{case['name']}: error_mismatch")
            continue

        if state_to_json(post_state) != expected["post_state"]:
            failures.append(f"{path.name}:{case['name']}: post_state_mismatch")

    return failures


def check_fixture_dir(fixtures: Path) -> list[str]:
    failures: list[str] = []
    for path in sorted(fixtures.rglob("*.json")):
        failures.extend(check_call_cases(path))
    return failures


def main() -> None:
    failures = check_fixture_dir(ROOT / "fixtures")

    if failures:
        for f in failures:
            print("FAIL", f)
        raise SystemExit(1)

    print("All fixtures passed")


if __name__ == "__main__":
    main()
