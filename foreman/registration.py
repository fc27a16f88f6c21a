# ============================================================================
# REGISTRATION MANAGER
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Store registration and heartbeat
# PURPOSE: Publish static metadata and keep the route lease alive
# CREATED: 18 OCT 2026
# ============================================================================
"""
Registration Manager

Static registration writes ``created``, ``image`` and ``host`` under the
instance's config path, concurrently. All three are attempted exactly
once; the first failure (in completion order) fails the phase. Partial
writes are not rolled back here: the config_created flag is raised before
writing, so last-resort cleanup or recycle removes whatever landed.

The heartbeat writes ``port`` with a 60s lease and renews it every 45s.
A single failed write ends the loop and hands over to recycle with
SIGTERM / exit code 105; there is no silent retry.
"""

import asyncio
import logging
import signal
import time
from typing import Any, Awaitable, Callable, List, Optional

from core.errors import RegistrationError, StoreError
from core.logging import log_checkpoint
from core.models import RouteLease
from foreman.session import ForemanSession, TimerSet
from infrastructure.etcd import KeyValueStore

logger = logging.getLogger(__name__)

HEARTBEAT_FAILURE_EXIT_CODE = 105

FailureHandler = Callable[[signal.Signals, int], Awaitable[Any]]


def now_ms() -> int:
    return int(time.time() * 1000)


class RegistrationManager:
    """Writes this instance's entry and owns the heartbeat."""

    def __init__(
        self,
        session: ForemanSession,
        store: KeyValueStore,
        lease: Optional[RouteLease] = None,
        on_failure: Optional[FailureHandler] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.store = store
        self.lease = lease or RouteLease()
        self.on_failure = on_failure
        self._sleep = sleep
        self.renewals = 0

    # ------------------------------------------------------------------
    # STATIC METADATA
    # ------------------------------------------------------------------

    async def register_static(self) -> None:
        """
        Write created/image/host in parallel.

        Raises:
            RegistrationError: Any of the three writes failed
        """
        identity = self.session.identity
        options = self.session.options
        self.session.config_created = True

        errors: List[StoreError] = []

        async def write(name: str, value: Any) -> None:
            try:
                await self.store.set(identity.key(name), value)
            except StoreError as e:
                errors.append(e)

        await asyncio.gather(
            write("created", now_ms()),
            write("image", options.image),
            write("host", options.coreos_host),
        )

        if errors:
            raise RegistrationError(
                f"Failed to register {identity.config_path}: {errors[0]}"
            ) from errors[0]

        log_checkpoint("registration_created", {"config_path": identity.config_path})

    # ------------------------------------------------------------------
    # HEARTBEAT
    # ------------------------------------------------------------------

    def start_heartbeat(self) -> asyncio.Task:
        """Start renewing the route lease; the task is tracked as a timer."""
        task = self.session.spawn(
            self._heartbeat_loop(),
            name=f"foreman-heartbeat-{self.session.identity.container_name}",
        )
        self.session.timers.set(TimerSet.HEARTBEAT, task)
        logger.info(
            f"Starting heartbeat (ttl={self.lease.lease_ttl_sec}s, "
            f"interval={self.lease.renew_interval_sec}s, route={self.session.route})"
        )
        return task

    async def _heartbeat_loop(self) -> None:
        """Renew until a write fails or the task is cancelled."""
        key = self.session.identity.key("port")

        while True:
            try:
                await self.store.set(key, self.session.route, ttl=self.lease.lease_ttl_sec)
            except StoreError as e:
                logger.error(f"Error updating route entry {key}: {e}")
                # Recycle cancels the heartbeat timer; this task is finishing itself
                self.session.timers.discard(TimerSet.HEARTBEAT)
                if self.on_failure is not None:
                    await self.on_failure(signal.SIGTERM, HEARTBEAT_FAILURE_EXIT_CODE)
                return

            self.renewals += 1
            logger.debug(f"Route lease renewed ({self.renewals})")
            await self._sleep(self.lease.renew_interval_sec)


__all__ = ["RegistrationManager", "HEARTBEAT_FAILURE_EXIT_CODE", "now_ms"]
