#!/usr/bin/env python3
"""Record swap call fixtures by running the test suite, then replay them.

Every `call_test_group` case collected during the pytest run is written as
JSON under the output directory. With `--consume` the written cases are fed
back through `apply_call` and any drift is reported.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

import click

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT / "tools"))

from consume import check_fixture_dir  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def run_pytest(output: Path, select: Optional[str]) -> int:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(ROOT / "src"), str(ROOT)])

    cmd = [sys.executable, "-m", "pytest", str(ROOT / "tests"), "-q", "--output", str(output)]
    if select:
        cmd += ["-k", select]
    logger.debug("running %s", " ".join(cmd))
    return subprocess.call(cmd, env=env, cwd=str(ROOT))


@click.command()
@click.option(
    "--output", "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=ROOT / "fixtures",
    help="Output directory for JSON call fixtures",
)
@click.option("--select", "-k", default=None, help="Only record tests matching this pytest expression")
@click.option("--consume/--no-consume", default=True, help="Replay the written fixtures after recording")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def main(output: Path, select: Optional[str], consume: bool, verbose: bool) -> None:
    """Record call fixtures from the test suite."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    code = run_pytest(output, select)
    if code != 0:
        logger.error("pytest exited with %d; fixtures may be incomplete", code)
        raise SystemExit(code)

    cases = sorted(output.rglob("*.json"))
    logger.info("Wrote %d fixture files to %s", len(cases), output)
    if not consume:
        return

    failures = check_fixture_dir(output)
    for failure in failures:
        logger.error("replay mismatch: %s", failure)
    if failures:
        raise SystemExit(1)
    logger.info("Replayed all fixtures cleanly")


if __name__ == "__main__":
    main()
