# ============================================================================
# SESSION TESTS
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Tests - Session state, timers, exit channel
# PURPOSE: Verify one-shot exit decisions and idempotent timer cancellation
# CREATED: 18 OCT 2026
# ============================================================================
"""
Session Tests

Run with:
    pytest tests/test_session.py -v
"""

import asyncio
import signal
from unittest.mock import MagicMock

import pytest

from foreman.session import BackendHandle, ForemanSession, TimerSet


class TestExitChannel:

    def test_first_decision_wins(self, options):
        session = ForemanSession(options)

        async def go():
            first = session.terminate(143, "backend exited")
            second = session.terminate(0, "graceful shutdown deadline")
            return first, second, await session.wait_for_exit()

        assert asyncio.run(go()) == (True, False, 143)
        assert session.exit_reason == "backend exited"
        assert session.exit_code == 143

    def test_undecided(self, options):
        session = ForemanSession(options)
        assert session.exit_decided is False
        assert session.exit_code is None


class TestRoute:

    def test_route_is_set_once(self, options):
        session = ForemanSession(options)
        session.set_route("49153")
        session.set_route("49153")

        with pytest.raises(RuntimeError):
            session.set_route("49154")


class TestTimerSet:

    def test_cancel_is_idempotent(self):
        timers = TimerSet()
        handle = MagicMock()
        timers.set(TimerSet.COOLDOWN, handle)

        assert timers.cancel(TimerSet.COOLDOWN) is True
        assert timers.cancel(TimerSet.COOLDOWN) is False
        handle.cancel.assert_called_once()

    def test_set_replaces_previous_handle(self):
        timers = TimerSet()
        old, new = MagicMock(), MagicMock()
        timers.set(TimerSet.GRACE, old)
        timers.set(TimerSet.GRACE, new)

        old.cancel.assert_called_once()
        assert timers.get(TimerSet.GRACE) is new

    def test_task_never_cancels_itself(self):
        timers = TimerSet()

        async def heartbeat():
            timers.cancel(TimerSet.HEARTBEAT)
            return "finished"

        async def go():
            task = asyncio.get_running_loop().create_task(heartbeat())
            timers.set(TimerSet.HEARTBEAT, task)
            return await task

        assert asyncio.run(go()) == "finished"
        assert timers.names() == set()

    def test_call_later_handles(self):
        timers = TimerSet()
        fired = []

        async def go():
            loop = asyncio.get_running_loop()
            timers.set(TimerSet.STARTUP, loop.call_later(0.01, fired.append, "startup"))
            active = timers.is_active(TimerSet.STARTUP)
            timers.cancel(TimerSet.STARTUP)
            await asyncio.sleep(0.05)
            return active

        assert asyncio.run(go()) is True
        assert fired == []


class TestBackendHandle:

    @pytest.mark.parametrize("returncode, status", [(0, 0), (3, 3), (-15, 143), (-9, 137), (None, 1)])
    def test_exit_status(self, returncode, status):
        process = MagicMock()
        process.returncode = returncode
        assert BackendHandle(process, "docs").exit_status() == status

    def test_signal_to_vanished_process(self):
        process = MagicMock()
        process.send_signal.side_effect = ProcessLookupError()
        assert BackendHandle(process, "docs").send_signal(signal.SIGTERM) is False
