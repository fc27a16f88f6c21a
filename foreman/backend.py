# ============================================================================
# BACKEND SUPERVISOR
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Child process ownership
# PURPOSE: Spawn the backend, race readiness/exit/timeout, handle later exit
# CREATED: 18 OCT 2026
# ============================================================================
"""
Backend Supervisor

Startup race (first event wins, the rest are ignored):

    backend exits / fails to spawn  -> EXITED     (fatal: BackendStartupError)
    readiness channel fires         -> SIGNALED   (ready)
    container_registration_timeout  -> TIMED_OUT  (assumed ready)

The winner resolves a one-shot future; the losers find it already done.
Startup listeners (exit waiter, channel waiter, startup timer) are torn
down once in a ``finally`` no matter how the race ended, including
cancellation of the startup pipeline.

After a successful start a long-lived exit watch is installed. When the
backend exits at any later point the registration subtree is deleted and
the foreman terminates, with the exit code recycle asked for if recycle
is already in progress, otherwise the backend's own.
"""

import asyncio
import logging
from typing import Optional

from core.contracts import ReadinessOutcome
from core.errors import BackendStartupError, StoreError
from core.logging import log_checkpoint
from foreman.readiness import ReadinessChannel
from foreman.session import BackendHandle, ForemanSession, TimerSet
from infrastructure.etcd import KeyValueStore

logger = logging.getLogger(__name__)


class BackendSupervisor:
    """Owns the backend process for the session."""

    def __init__(
        self,
        session: ForemanSession,
        store: KeyValueStore,
        channel: ReadinessChannel,
    ):
        self.session = session
        self.store = store
        self.channel = channel

    # ------------------------------------------------------------------
    # STARTUP
    # ------------------------------------------------------------------

    async def _spawn(self) -> BackendHandle:
        options = self.session.options
        env = options.backend_env(self.session.raw_config)
        stdout = asyncio.subprocess.PIPE if self.channel.pipe_stdout else None

        try:
            process = await asyncio.create_subprocess_exec(
                options.backend_cmd,
                *options.backend_args,
                env=env,
                stdout=stdout,
            )
        except OSError as e:
            raise BackendStartupError(f"Failed to start backend {options.backend_cmd}: {e}") from e

        handle = BackendHandle(process, options.backend_cmd)
        self.session.backend = handle
        logger.info(f"Backend started: pid={handle.pid} cmd={options.backend_cmd} {options.backend_args}")
        return handle

    async def start(self) -> ReadinessOutcome:
        """
        Start the backend and wait for it to become ready.

        Returns:
            SIGNALED or TIMED_OUT

        Raises:
            BackendStartupError: Backend exited or could not be spawned
        """
        timeout = self.session.tunables.container_registration_timeout
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()

        def resolve(result: ReadinessOutcome) -> None:
            if not outcome.done():
                outcome.set_result(result)

        self.channel.prepare()
        try:
            handle = await self._spawn()
        except BackendStartupError:
            self.channel.close()
            raise

        self.channel.attach(handle)

        exit_waiter = loop.create_task(handle.process.wait(), name=f"backend-startup-exit-{handle.pid}")
        exit_waiter.add_done_callback(lambda _: resolve(ReadinessOutcome.EXITED))

        ready_waiter = loop.create_task(self.channel.wait(), name=f"backend-readiness-{handle.pid}")
        ready_waiter.add_done_callback(lambda task: self._on_ready_waiter_done(task, resolve))

        self.session.timers.set(
            TimerSet.STARTUP,
            loop.call_later(timeout, resolve, ReadinessOutcome.TIMED_OUT),
        )

        try:
            result = await outcome
        finally:
            self._finish_startup(exit_waiter, ready_waiter)

        logger.info(f"Finished waiting for backend startup: {result.value}")

        if not result.is_ready():
            status = handle.exit_status()
            self.session.backend = None
            raise BackendStartupError(
                f"Backend process terminated unexpectedly during startup (exit status {status})."
            )

        if result is ReadinessOutcome.TIMED_OUT:
            logger.warning(
                f"Backend did not signal readiness within {timeout}s; assuming it is ready"
            )

        handle.exit_watch = self.session.spawn(self._watch_exit(handle), name=f"backend-exit-{handle.pid}")
        log_checkpoint("backend_ready", {"pid": handle.pid, "outcome": result.value})
        return result

    @staticmethod
    def _on_ready_waiter_done(task: asyncio.Task, resolve) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Readiness channel failed: {exc}")
            return
        resolve(ReadinessOutcome.SIGNALED)

    def _finish_startup(self, exit_waiter: asyncio.Task, ready_waiter: asyncio.Task) -> None:
        """Tear down every startup-phase listener."""
        self.session.timers.cancel(TimerSet.STARTUP)
        self.channel.close()
        for task in (exit_waiter, ready_waiter):
            if not task.done():
                task.cancel()

    # ------------------------------------------------------------------
    # POST-STARTUP EXIT
    # ------------------------------------------------------------------

    async def _watch_exit(self, handle: BackendHandle) -> None:
        await handle.process.wait()
        await self.handle_exit(handle)

    async def handle_exit(self, handle: BackendHandle) -> None:
        """
        Backend exited after startup.

        Clears listeners, stops the heartbeat, deletes the whole
        registration subtree, then decides the exit code.
        """
        session = self.session
        session.teardown_task = asyncio.current_task()
        status = handle.exit_status()
        logger.info(f"Backend exited: pid={handle.pid} status={status}")

        handle.clear_listeners()
        graceful_exit_code: Optional[int] = handle.graceful_exit_code
        if session.backend is handle:
            session.backend = None

        session.timers.cancel(TimerSet.HEARTBEAT)

        # Claim the delete so last-resort cleanup does not repeat it
        session.config_created = False
        config_path = session.identity.config_path
        try:
            await self.store.delete(config_path, recursive=True)
            logger.info(f"Deleted routing entry {config_path}")
        except StoreError as e:
            logger.warning(f"Failed to delete routing entry {config_path}: {e}")

        exit_code = graceful_exit_code if graceful_exit_code is not None else status
        session.terminate(exit_code, "backend exited")


__all__ = ["BackendSupervisor"]
