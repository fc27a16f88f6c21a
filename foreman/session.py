# ============================================================================
# FOREMAN SESSION
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Owned lifecycle state
# PURPOSE: Single object holding every piece of mutable foreman state
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman Session

All mutable state of one foreman run lives here and is passed explicitly
to each component: the backend handle, the discovered route, the
"registration created" flag, the outstanding timers, the recycle state and
the one-shot exit channel.

Everything runs on one event loop, so there are no locks; correctness
comes from consistent nulling of handles and from the exit channel only
accepting its first writer.
"""

import asyncio
import logging
import signal
from typing import Any, Awaitable, Dict, Optional, Set, Union

from core.config import ForemanOptions, ForemanTunables
from core.contracts import ForemanPhase, RecycleState
from core.models import ForemanIdentity

logger = logging.getLogger(__name__)

TimerHandle = Union[asyncio.TimerHandle, asyncio.Task]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        # No running loop (atexit hook)
        return None


# ============================================================================
# TIMERS
# ============================================================================

class TimerSet:
    """
    Named, cancellable timers.

    Holds ``loop.call_later`` handles (startup, cooldown, grace) and the
    heartbeat task. Cancellation pops the handle first, so cancelling twice
    is a no-op.
    """

    STARTUP = "startup"
    HEARTBEAT = "heartbeat"
    COOLDOWN = "cooldown"
    GRACE = "grace"

    def __init__(self):
        self._handles: Dict[str, TimerHandle] = {}

    def set(self, name: str, handle: TimerHandle) -> None:
        """Track a timer, cancelling any previous one under the same name."""
        self.cancel(name)
        self._handles[name] = handle

    def get(self, name: str) -> Optional[TimerHandle]:
        return self._handles.get(name)

    def is_active(self, name: str) -> bool:
        handle = self._handles.get(name)
        if handle is None:
            return False
        if isinstance(handle, asyncio.Task):
            return not handle.done()
        return not handle.cancelled()

    def cancel(self, name: str) -> bool:
        """
        Cancel and forget a timer.

        A task is never cancelled from inside itself; it is only forgotten.

        Returns:
            True if a live handle was cancelled
        """
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        if handle is _current_task():
            return False
        handle.cancel()
        return True

    def discard(self, name: str) -> None:
        """Forget a timer that already fired."""
        self._handles.pop(name, None)

    def names(self) -> Set[str]:
        return set(self._handles)


# ============================================================================
# BACKEND HANDLE
# ============================================================================

class BackendHandle:
    """
    The live child process.

    At most one exists per session; the session drops its reference once
    the process has exited or been killed.
    """

    def __init__(self, process: asyncio.subprocess.Process, command: str):
        self.process = process
        self.command = command
        self.graceful_exit_code: Optional[int] = None
        self.exit_watch: Optional[asyncio.Task] = None
        self.stdout_pump: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def is_running(self) -> bool:
        return self.process.returncode is None

    def send_signal(self, sig: signal.Signals) -> bool:
        """Send a signal; returns False if the process is already gone."""
        try:
            self.process.send_signal(sig)
            return True
        except ProcessLookupError:
            logger.info(f"Backend pid={self.pid} already gone, {sig.name} not sent")
            return False

    def kill(self) -> None:
        """SIGKILL, ignoring every error."""
        try:
            self.process.kill()
        except (ProcessLookupError, OSError):
            pass

    def clear_listeners(self) -> None:
        """Stop watching for exit (never cancels the calling task)."""
        watch, self.exit_watch = self.exit_watch, None
        if watch is not None and watch is not _current_task():
            watch.cancel()

    def exit_status(self) -> int:
        """
        Exit status to propagate.

        A child killed by a signal reports ``-signum``; the shell
        convention ``128 + signum`` is used instead.
        """
        code = self.process.returncode
        if code is None:
            return 1
        if code < 0:
            return 128 - code
        return code


# ============================================================================
# SESSION
# ============================================================================

class ForemanSession:
    """State of one foreman run."""

    def __init__(
        self,
        options: ForemanOptions,
        identity: Optional[ForemanIdentity] = None,
    ):
        self.options = options
        self.identity = identity or ForemanIdentity(app_name=options.app_name, app_id=options.app_id)

        # Config
        self.tunables: Optional[ForemanTunables] = None
        self.raw_config: Dict[str, Any] = {}

        # Lifecycle
        self.phase: Optional[ForemanPhase] = None
        self.recycle_state = RecycleState.STEADY
        self.backend: Optional[BackendHandle] = None
        self.route: Optional[str] = None
        self.config_created = False
        self.timers = TimerSet()

        # Backend-exit teardown in progress (awaited before exiting)
        self.teardown_task: Optional[asyncio.Task] = None

        self._exit: Optional[asyncio.Future] = None
        self._exit_reason: Optional[str] = None
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # ROUTE
    # ------------------------------------------------------------------

    def set_route(self, route: str) -> None:
        """Record the discovered route; it never changes afterwards."""
        if self.route is not None and self.route != route:
            raise RuntimeError(f"Route already set to {self.route}, refusing {route}")
        self.route = route

    # ------------------------------------------------------------------
    # EXIT CHANNEL
    # ------------------------------------------------------------------

    def _exit_future(self) -> asyncio.Future:
        if self._exit is None:
            self._exit = asyncio.get_running_loop().create_future()
        return self._exit

    def terminate(self, exit_code: int, reason: str) -> bool:
        """
        Resolve the process outcome.

        Only the first call wins; later calls are logged and ignored.

        Returns:
            True if this call decided the exit code
        """
        future = self._exit_future()
        if future.done():
            logger.info(
                f"Exit already decided (code={future.result()}, reason={self._exit_reason}); "
                f"ignoring code={exit_code} reason={reason}"
            )
            return False

        self._exit_reason = reason
        future.set_result(exit_code)
        logger.info(f"Foreman terminating with exit code {exit_code}: {reason}")
        return True

    @property
    def exit_decided(self) -> bool:
        return self._exit is not None and self._exit.done()

    @property
    def exit_code(self) -> Optional[int]:
        if self.exit_decided:
            return self._exit.result()
        return None

    @property
    def exit_reason(self) -> Optional[str]:
        return self._exit_reason

    async def wait_for_exit(self) -> int:
        return await asyncio.shield(self._exit_future())

    # ------------------------------------------------------------------
    # BACKGROUND TASKS
    # ------------------------------------------------------------------

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        """
        Run a fire-and-forget coroutine, keeping a reference until it ends.

        Failures are reported to the loop exception handler.
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            task.get_loop().call_exception_handler({
                "message": f"Background task {task.get_name()} failed",
                "exception": exc,
                "task": task,
            })


__all__ = ["TimerSet", "BackendHandle", "ForemanSession"]
