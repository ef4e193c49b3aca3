import os
import sys

import pytest

from smart_scraper.process_runner import (
    SPAWN_ERROR_EXIT_CODE,
    ProcessRunner,
    TerminationCause,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="signal escalation is POSIX-specific")


@pytest.mark.asyncio
async def test_natural_exit_captures_output():
    runner = ProcessRunner()
    execution = await runner.run(
        sys.executable,
        ["-c", "import sys; print('hello'); print('oops', file=sys.stderr)"],
        timeout_ms=10000,
    )

    assert execution.exit_code == 0
    assert execution.stdout.strip() == "hello"
    assert execution.stderr.strip() == "oops"
    assert execution.termination_cause == TerminationCause.NATURAL
    assert not execution.timed_out


@pytest.mark.asyncio
async def test_non_zero_exit_is_natural():
    runner = ProcessRunner()
    execution = await runner.run(sys.executable, ["-c", "import sys; sys.exit(3)"], timeout_ms=10000)

    assert execution.exit_code == 3
    assert execution.termination_cause == TerminationCause.NATURAL


@posix_only
@pytest.mark.asyncio
async def test_soft_timeout_terminates_cooperative_child():
    runner = ProcessRunner(grace_ms=2000)
    execution = await runner.run(sys.executable, ["-c", "import time; time.sleep(30)"], timeout_ms=300)

    assert execution.termination_cause == TerminationCause.SOFT_TIMEOUT
    assert execution.timed_out
    assert execution.exit_code != 0
    assert execution.duration_ms < 2000


@posix_only
@pytest.mark.asyncio
async def test_child_ignoring_sigterm_is_killed_after_grace():
    script = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    runner = ProcessRunner(grace_ms=500)
    execution = await runner.run(sys.executable, ["-c", script], timeout_ms=500)

    assert execution.termination_cause == TerminationCause.HARD_TIMEOUT
    assert execution.timed_out
    # timeout + grace, plus slack for interpreter startup and reaping
    assert execution.duration_ms < 500 + 500 + 1500


@pytest.mark.asyncio
async def test_spawn_error_is_reported_not_raised(tmp_path):
    runner = ProcessRunner()
    missing = str(tmp_path / "no-such-binary")
    execution = await runner.run(missing, ["--version"], timeout_ms=1000)

    assert execution.exit_code == SPAWN_ERROR_EXIT_CODE
    assert execution.termination_cause == TerminationCause.SPAWN_ERROR
    assert execution.stdout == ""
    assert execution.stderr
