# ============================================================================
# RECYCLE ORCHESTRATOR
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Shutdown state machine
# PURPOSE: Withdraw the route, drain, signal the backend, enforce a deadline
# CREATED: 18 OCT 2026
# ============================================================================
"""
Recycle Orchestrator

    STEADY -> RECYCLING -> COOLING_DOWN -> GRACE_PERIOD -> TERMINATED

Triggers: external SIGTERM/SIGINT (exit code 0) and heartbeat failure
(exit code 105). Re-entry once past STEADY is ignored, and so is any
trigger after the backend exit teardown has started.

Sequence on entry:
    1. graceful exit code recorded on the backend handle
    2. heartbeat cancelled
    3. ``recycling`` timestamp written (best-effort)
    4. ``port`` deleted (best-effort, awaited before any timer starts)
    5. cooldown timer -> signal the backend
       grace timer    -> last-resort cleanup, terminate with the exit code

The backend usually exits between cooldown and grace; its exit handler
then decides the exit code using the recorded override.
"""

import asyncio
import logging
import signal
from typing import Optional

from core.contracts import RecycleState
from core.errors import StoreError
from core.logging import log_context
from foreman.cleanup import LastResortCleanup
from foreman.registration import now_ms
from foreman.session import ForemanSession, TimerSet
from infrastructure.etcd import KeyValueStore

logger = logging.getLogger(__name__)


class RecycleOrchestrator:
    """Graceful shutdown for one session."""

    def __init__(
        self,
        session: ForemanSession,
        store: KeyValueStore,
        cleanup: LastResortCleanup,
    ):
        self.session = session
        self.store = store
        self.cleanup = cleanup
        self.signal: Optional[signal.Signals] = None
        self.exit_code: Optional[int] = None

    def _transition(self, state: RecycleState) -> None:
        logger.info(f"Recycle state {self.session.recycle_state.value} -> {state.value}")
        self.session.recycle_state = state

    async def recycle(self, sig: signal.Signals, exit_code: int) -> bool:
        """
        Start graceful shutdown.

        Returns:
            False if recycle was already underway (the call is ignored)
        """
        session = self.session
        if session.recycle_state.is_recycling():
            logger.info(
                f"Recycle already {session.recycle_state.value}; ignoring "
                f"{sig.name} with exit code {exit_code}"
            )
            return False
        if session.teardown_task is not None or session.exit_decided:
            # Backend exit owns the registration subtree from here on
            logger.info(f"Foreman already exiting; ignoring {sig.name} with exit code {exit_code}")
            return False

        self.signal = sig
        self.exit_code = exit_code
        self._transition(RecycleState.RECYCLING)

        with log_context(signal=sig.name, exit_code=exit_code):
            logger.info(f"Recycling {session.identity.container_name} on {sig.name}")

            if session.backend is not None:
                session.backend.graceful_exit_code = exit_code

            session.timers.cancel(TimerSet.HEARTBEAT)

            identity = session.identity
            try:
                await self.store.set(identity.key("recycling"), now_ms())
            except StoreError as e:
                logger.warning(f"Failed to write recycling marker: {e}")

            try:
                await self.store.delete(identity.key("port"))
                logger.info(f"Withdrew route {session.route}")
            except StoreError as e:
                logger.warning(f"Failed to withdraw route: {e}")

            tunables = session.tunables
            loop = asyncio.get_running_loop()
            session.timers.set(
                TimerSet.COOLDOWN,
                loop.call_later(tunables.cooldown_timeout, self._cooldown_elapsed, sig),
            )
            session.timers.set(
                TimerSet.GRACE,
                loop.call_later(tunables.graceful_shutdown_timeout, self._grace_elapsed, exit_code),
            )
            self._transition(RecycleState.COOLING_DOWN)
            logger.info(
                f"Cooldown {tunables.cooldown_timeout}s, "
                f"grace deadline {tunables.graceful_shutdown_timeout}s"
            )
        return True

    def _cooldown_elapsed(self, sig: signal.Signals) -> None:
        self.session.timers.discard(TimerSet.COOLDOWN)
        if self.session.recycle_state is RecycleState.COOLING_DOWN:
            self._transition(RecycleState.GRACE_PERIOD)

        backend = self.session.backend
        if backend is not None and backend.is_running():
            logger.info(f"Cooldown over, sending {sig.name} to backend pid={backend.pid}")
            backend.send_signal(sig)
        else:
            logger.info("Cooldown over, backend already gone")

    def _grace_elapsed(self, exit_code: int) -> None:
        self.session.timers.discard(TimerSet.GRACE)
        self._transition(RecycleState.TERMINATED)
        logger.warning(f"Graceful shutdown deadline reached, forcing exit {exit_code}")
        self.cleanup.run()
        self.session.terminate(exit_code, "graceful shutdown deadline")


__all__ = ["RecycleOrchestrator"]
