# ============================================================================
# FOREMAN DRIVER
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Lifecycle composition
# PURPOSE: Run the startup pipeline, then hold steady state until exit
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman Driver

Startup pipeline (run once, aborting on the first failure):

    1. CONFIG        fetch /config, validate tunables
    2. READINESS     spawn the backend, wait for its ready signal
    3. PORT_MAPPING  find the published host port (or route "default")
    4. HEALTH_CHECK  one GET against the route (only with APP_HEALTH_URL)
    5. REGISTRATION  write created/image/host
    6. STEADY        heartbeat + recycle on SIGTERM/SIGINT

Exit paths all end in ``session.terminate``; the driver waits for the
first decision, cancels whatever is still running, lets an in-flight
backend-exit teardown finish, runs last-resort cleanup and returns the
exit code.

Exit codes:
    0       shutdown requested by signal
    105     heartbeat failure
    N       backend exited on its own with status N
    1       startup failure or unhandled error
"""

import asyncio
import signal
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from __version__ import __version__
from core.config import ForemanOptions, ForemanTunables
from core.contracts import ForemanPhase
from core.errors import ConfigFetchError, ForemanError, StoreError
from core.logging import get_logger, log_checkpoint, log_context
from core.models import CONFIG_ROOT, RouteLease
from foreman.backend import BackendSupervisor
from foreman.cleanup import LastResortCleanup
from foreman.health_probe import HealthProber
from foreman.port_mapping import PortMappingPoller
from foreman.readiness import ReadinessChannel, build_readiness_channel
from foreman.recycle import RecycleOrchestrator
from foreman.registration import RegistrationManager
from foreman.session import ForemanSession
from infrastructure.docker_runtime import ContainerRuntime
from infrastructure.etcd import KeyValueStore

logger = get_logger(__name__)

DEFAULT_ROUTE = "default"
REQUESTED_SHUTDOWN_EXIT_CODE = 0
TEARDOWN_DRAIN_TIMEOUT_SEC = 5.0
SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ForemanDriver:
    """
    Composes the foreman components around one session.

    Every collaborator can be injected; by default they are built from
    the options.
    """

    def __init__(
        self,
        options: ForemanOptions,
        store: KeyValueStore,
        runtime: ContainerRuntime,
        session: Optional[ForemanSession] = None,
        channel: Optional[ReadinessChannel] = None,
        prober: Optional[HealthProber] = None,
        lease: Optional[RouteLease] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        handle_signals: bool = True,
    ):
        self.options = options
        self.store = store
        self.runtime = runtime
        self.session = session or ForemanSession(options)
        self.handle_signals = handle_signals
        self._sleep = sleep

        if prober is None and options.app_health_url:
            prober = HealthProber(
                options.coreos_host,
                options.app_health_url,
                timeout=options.health_check_timeout,
            )
        self.prober = prober

        self.cleanup = LastResortCleanup(self.session, store)
        self.supervisor = BackendSupervisor(
            self.session,
            store,
            channel or build_readiness_channel(options),
        )
        self.recycler = RecycleOrchestrator(self.session, store, self.cleanup)
        self.registration = RegistrationManager(
            self.session,
            store,
            lease=lease,
            on_failure=self.recycler.recycle,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # PIPELINE PHASES
    # ------------------------------------------------------------------

    async def _fetch_config(self) -> None:
        try:
            raw = await self.store.get_tree(CONFIG_ROOT)
        except StoreError as e:
            raise ConfigFetchError(f"Failed to fetch {CONFIG_ROOT}: {e}") from e

        try:
            tunables = ForemanTunables.model_validate(raw)
        except ValidationError as e:
            raise ConfigFetchError(f"Invalid {CONFIG_ROOT}: {e}") from e

        self.session.raw_config = raw
        self.session.tunables = tunables
        logger.info(f"Loaded {len(raw)} config values from {CONFIG_ROOT}")

    async def _wait_for_backend(self) -> None:
        await self.supervisor.start()

    async def _discover_route(self) -> None:
        options = self.options
        if options.app_port is None:
            logger.info("APP_PORT not set; skipping port mapping")
            self.session.set_route(DEFAULT_ROUTE)
            return

        poller = PortMappingPoller.from_tunables(
            self.runtime,
            self.session.identity.container_name,
            options.app_port,
            self.session.tunables,
            sleep=self._sleep,
        )
        route = await poller.poll()
        self.session.set_route(route)
        logger.info(f"Port {options.app_port}/tcp published on host port {route}")

    async def _check_health(self) -> None:
        if self.prober is None:
            logger.info("APP_HEALTH_URL not set; skipping health check")
            return
        await self.prober.probe(self.session.route)

    async def _register(self) -> None:
        await self.registration.register_static()

    async def _run_pipeline(self) -> None:
        steps = (
            (ForemanPhase.CONFIG, self._fetch_config),
            (ForemanPhase.READINESS, self._wait_for_backend),
            (ForemanPhase.PORT_MAPPING, self._discover_route),
            (ForemanPhase.HEALTH_CHECK, self._check_health),
            (ForemanPhase.REGISTRATION, self._register),
        )
        for phase, step in steps:
            self.session.phase = phase
            with log_context(phase=phase.value):
                logger.info(f"Phase {phase.value} started")
                await step()
                log_checkpoint("phase_completed", {"phase": phase.value})

        self.session.phase = ForemanPhase.STEADY
        with log_context(phase=ForemanPhase.STEADY.value):
            self.registration.start_heartbeat()
            log_checkpoint("steady_state", {"route": self.session.route})

    # ------------------------------------------------------------------
    # SIGNALS AND ERRORS
    # ------------------------------------------------------------------

    def handle_signal(self, sig: signal.Signals) -> None:
        """
        SIGTERM/SIGINT.

        During startup the pipeline is aborted; in steady state recycle
        starts (repeats are ignored by recycle itself).
        """
        logger.info(f"Received {sig.name} in phase {self.session.phase.value if self.session.phase else None}")

        if self.session.phase is ForemanPhase.STEADY:
            self.session.spawn(
                self.recycler.recycle(sig, REQUESTED_SHUTDOWN_EXIT_CODE),
                name=f"foreman-recycle-{sig.name}",
            )
            return

        self.session.terminate(REQUESTED_SHUTDOWN_EXIT_CODE, f"{sig.name} during startup")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error(
            f"Unhandled error: {context.get('message')}",
            exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
        )
        self.cleanup.run()
        self.session.terminate(1, "unhandled error")

    def _fail_startup(self, exc: BaseException) -> None:
        phase = getattr(exc, "phase", None) or self.session.phase
        phase_name = phase.value if phase is not None else "unknown"
        with log_context(phase=phase_name):
            if isinstance(exc, ForemanError):
                logger.error(f"Startup failed in phase {phase_name}: {exc}")
                exit_code = exc.exit_code
            else:
                logger.error(
                    f"Startup crashed in phase {phase_name}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__),
                )
                exit_code = 1
            self.cleanup.run()
            self.session.terminate(exit_code, f"startup failed in phase {phase_name}")

    async def _drain_teardown(self) -> None:
        """Let a backend-exit teardown finish its delete before exiting."""
        task = self.session.teardown_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        logger.info("Waiting for backend exit teardown to finish")
        _, pending = await asyncio.wait({task}, timeout=TEARDOWN_DRAIN_TIMEOUT_SEC)
        if pending:
            logger.warning(f"Backend exit teardown still running after {TEARDOWN_DRAIN_TIMEOUT_SEC}s")

    # ------------------------------------------------------------------
    # RUN
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """
        Run the foreman to completion.

        Returns:
            Process exit code
        """
        loop = asyncio.get_running_loop()
        session = self.session
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_loop_exception)
        if self.handle_signals:
            self._install_signal_handlers(loop)

        identity = session.identity
        try:
            with log_context(app_name=identity.app_name, app_id=identity.app_id):
                logger.info(
                    f"Foreman v{__version__} starting for {identity.container_name}: "
                    f"{self.options.backend_cmd} {' '.join(self.options.backend_args)}"
                )

                pipeline = loop.create_task(self._run_pipeline(), name="foreman-startup")
                exit_waiter = loop.create_task(session.wait_for_exit(), name="foreman-exit")

                done, _ = await asyncio.wait({pipeline, exit_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if pipeline in done and pipeline.exception() is not None:
                    self._fail_startup(pipeline.exception())

                exit_code = await exit_waiter

                if not pipeline.done():
                    logger.info(f"Aborting startup in phase {session.phase.value}")
                    pipeline.cancel()
                    await asyncio.gather(pipeline, return_exceptions=True)

                await self._drain_teardown()

                for name in session.timers.names():
                    session.timers.cancel(name)

                log_checkpoint("foreman_exit", {"exit_code": exit_code, "reason": session.exit_reason})
                return exit_code
        finally:
            self.cleanup.run()
            if self.handle_signals:
                self._remove_signal_handlers(loop)
            loop.set_exception_handler(previous_handler)


__all__ = ["ForemanDriver", "DEFAULT_ROUTE"]
