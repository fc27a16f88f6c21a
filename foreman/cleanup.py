# ============================================================================
# LAST-RESORT CLEANUP
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Safety net
# PURPOSE: Kill the backend and drop the registration from any exit path
# CREATED: 18 OCT 2026
# ============================================================================
"""
Last-Resort Cleanup

Synchronous so it can run from atexit, from a loop exception handler and
from timer callbacks. Never raises. Each step leaves the session in a
state where running it again does nothing.
"""

import logging

from core.errors import StoreError
from foreman.session import ForemanSession, TimerSet
from infrastructure.etcd import KeyValueStore

logger = logging.getLogger(__name__)


class LastResortCleanup:

    def __init__(self, session: ForemanSession, store: KeyValueStore):
        self.session = session
        self.store = store

    def run(self) -> None:
        session = self.session

        try:
            backend, session.backend = session.backend, None
            if backend is not None:
                logger.warning(f"Killing backend pid={backend.pid}")
                backend.clear_listeners()
                backend.kill()

            session.timers.cancel(TimerSet.HEARTBEAT)

            if session.config_created:
                session.config_created = False
                config_path = session.identity.config_path
                try:
                    self.store.delete_sync(config_path, recursive=True)
                    logger.info(f"Deleted routing entry {config_path}")
                except StoreError as e:
                    logger.warning(f"Failed to delete routing entry {config_path}: {e}")
        except Exception as e:
            logger.error(f"Cleanup failed: {e}", exc_info=True)


__all__ = ["LastResortCleanup"]
