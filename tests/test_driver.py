# ============================================================================
# FOREMAN DRIVER TESTS
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Tests - End-to-end lifecycle scenarios
# PURPOSE: Verify the pipeline, exit codes and teardown across exit paths
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman Driver Tests

Each scenario runs the whole driver against the in-memory store, a fake
container runtime, and a real Python child process as the backend.
Signals are delivered through ``handle_signal`` rather than the OS.

Covers:
1. APP_PORT unset -> route "default", no port mapping, no health check
2. Full pipeline with port mapping and health check, then SIGTERM -> 0
3. Startup failures (config, port mapping, health) -> 1, nothing registered
4. SIGTERM during startup -> 0, backend killed
5. Backend crash in steady state -> its exit code, subtree deleted once
6. Heartbeat failure -> recycle -> 105
7. Unhandled background error -> cleanup, 1

Run with:
    pytest tests/test_driver.py -v
"""

import asyncio
import io
import signal

import httpx

from conftest import FakeInspector, InMemoryStore, port_attrs
from core.contracts import ForemanPhase, RecycleState
from foreman.driver import DEFAULT_ROUTE, ForemanDriver
from foreman.health_probe import HealthProber
from foreman.readiness import StdoutReadinessChannel


READY_BACKEND = (
    "import time\n"
    "print('LISTENING', flush=True)\n"
    "time.sleep(30)\n"
)

CRASHING_BACKEND = (
    "import sys, time\n"
    "print('LISTENING', flush=True)\n"
    "time.sleep(0.5)\n"
    "sys.exit(3)\n"
)


async def block_forever(_seconds):
    await asyncio.Event().wait()


async def no_sleep(_seconds):
    return None


async def wait_until(predicate, timeout: float = 10.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def health_prober(status: int) -> HealthProber:
    return HealthProber(
        "10.0.0.5",
        "/healthz",
        transport=httpx.MockTransport(lambda request: httpx.Response(status)),
    )


def make_driver(options, store, runtime=None, sleep=block_forever, **kwargs) -> ForemanDriver:
    kwargs.setdefault("channel", StdoutReadinessChannel(sink=io.BytesIO()))
    return ForemanDriver(
        options,
        store,
        runtime or FakeInspector(),
        sleep=sleep,
        handle_signals=False,
        **kwargs,
    )


def is_steady(driver: ForemanDriver, store: InMemoryStore):
    port_key = driver.session.identity.key("port")
    return lambda: driver.session.phase is ForemanPhase.STEADY and port_key in store.data


# ============================================================================
# STEADY STATE AND REQUESTED SHUTDOWN
# ============================================================================

class TestRequestedShutdown:

    def test_default_route_and_sigterm(self, make_options, store):
        options = make_options(READY_BACKEND)
        driver = make_driver(options, store)
        identity = driver.session.identity

        async def go():
            run = asyncio.create_task(driver.run())
            await wait_until(is_steady(driver, store))
            registered = {k: store.data[k] for k in store.keys_under(identity.config_path)}
            driver.handle_signal(signal.SIGTERM)
            return registered, await asyncio.wait_for(run, timeout=10)

        registered, exit_code = asyncio.run(go())

        assert exit_code == 0
        assert driver.session.route == DEFAULT_ROUTE
        assert registered[identity.key("port")] == DEFAULT_ROUTE
        assert registered[identity.key("host")] == "10.0.0.5"
        assert driver.runtime.calls == []
        assert driver.prober is None

        # recycling marker, then route withdrawal, then the backend exit teardown
        ops = store.ops
        recycling = ops.index(("set", identity.key("recycling")))
        withdrawn = ops.index(("delete", identity.key("port")))
        teardown = ops.index(("delete", identity.config_path))
        assert recycling < withdrawn < teardown
        assert store.keys_under(identity.config_path) == []
        assert ("delete_sync", identity.config_path) not in ops
        assert driver.session.backend is None

    def test_full_pipeline_with_port_and_health(self, make_options, store):
        options = make_options(READY_BACKEND, app_port="8080", app_health_url="/healthz")
        runtime = FakeInspector([port_attrs("8080", "49153")])
        driver = make_driver(options, store, runtime, prober=health_prober(200))
        identity = driver.session.identity

        async def go():
            run = asyncio.create_task(driver.run())
            await wait_until(is_steady(driver, store))
            port, ttl = store.data[identity.key("port")], store.ttls[identity.key("port")]
            driver.handle_signal(signal.SIGTERM)
            # Repeated signals during recycle are ignored
            driver.handle_signal(signal.SIGINT)
            return port, ttl, await asyncio.wait_for(run, timeout=10)

        port, ttl, exit_code = asyncio.run(go())

        assert exit_code == 0
        assert port == "49153"
        assert ttl == 60
        assert runtime.calls == ["docs-1"]
        assert store.ops.count(("set", identity.key("recycling"))) == 1
        assert store.keys_under(identity.config_path) == []


# ============================================================================
# STARTUP FAILURES
# ============================================================================

class TestStartupFailures:

    def test_config_unavailable(self, make_options):
        store = InMemoryStore()
        driver = make_driver(make_options(READY_BACKEND), store)

        assert asyncio.run(driver.run()) == 1
        assert driver.session.backend is None
        assert "config" in driver.session.exit_reason
        assert [op for op, _ in store.ops] == ["get"]

    def test_invalid_config(self, make_options, config_values):
        config_values["docker_port_registration_retry_count"] = "many"
        store = InMemoryStore({f"/config/{k}": v for k, v in config_values.items()})
        driver = make_driver(make_options(READY_BACKEND), store)

        assert asyncio.run(driver.run()) == 1
        assert driver.session.tunables is None

    def test_port_mapping_timeout(self, make_options, store, unmapped_inspector):
        options = make_options(READY_BACKEND, app_port="8080")
        driver = make_driver(options, store, unmapped_inspector, sleep=no_sleep)

        exit_code = asyncio.run(driver.run())

        assert exit_code == 1
        assert len(unmapped_inspector.calls) == 3
        assert "port_mapping" in driver.session.exit_reason
        assert driver.session.backend is None
        assert not any(op == "set" for op, _ in store.ops)

    def test_inspection_error(self, make_options, store, failing_inspector):
        options = make_options(READY_BACKEND, app_port="8080")
        driver = make_driver(options, store, failing_inspector, sleep=no_sleep)

        assert asyncio.run(driver.run()) == 1
        assert len(failing_inspector.calls) == 1

    def test_health_check_failure(self, make_options, store):
        options = make_options(READY_BACKEND, app_port="8080", app_health_url="/healthz")
        runtime = FakeInspector([port_attrs("8080", "49153")])
        driver = make_driver(options, store, runtime, prober=health_prober(503))

        assert asyncio.run(driver.run()) == 1
        assert "health_check" in driver.session.exit_reason
        assert not any(op == "set" for op, _ in store.ops)

    def test_registration_failure_cleans_partial_writes(self, make_options, store):
        driver = make_driver(make_options(READY_BACKEND), store)
        identity = driver.session.identity
        store.fail("set", identity.key("image"))

        assert asyncio.run(driver.run()) == 1
        assert ("delete_sync", identity.config_path) in store.ops
        assert store.keys_under(identity.config_path) == []

    def test_backend_exits_during_startup(self, make_options, store):
        driver = make_driver(make_options("import sys; sys.exit(4)"), store)

        assert asyncio.run(driver.run()) == 1
        assert "readiness" in driver.session.exit_reason

    def test_sigterm_during_startup(self, make_options, store):
        # Never signals readiness; the startup timeout is 5s
        driver = make_driver(make_options("import time; time.sleep(30)"), store)

        async def go():
            run = asyncio.create_task(driver.run())
            await wait_until(lambda: driver.session.backend is not None)
            backend = driver.session.backend
            driver.handle_signal(signal.SIGTERM)
            exit_code = await asyncio.wait_for(run, timeout=10)
            returncode = await asyncio.wait_for(backend.process.wait(), timeout=10)
            return exit_code, returncode

        exit_code, returncode = asyncio.run(go())

        assert exit_code == 0
        assert returncode == -signal.SIGKILL
        assert driver.session.phase is ForemanPhase.READINESS
        assert not any(op == "set" for op, _ in store.ops)


# ============================================================================
# STEADY-STATE FAILURES
# ============================================================================

class TestSteadyStateFailures:

    def test_backend_crash_propagates_exit_code(self, make_options, store):
        driver = make_driver(make_options(CRASHING_BACKEND), store)
        identity = driver.session.identity

        exit_code = asyncio.run(driver.run())

        assert exit_code == 3
        assert store.ops.count(("delete", identity.config_path)) == 1
        assert ("delete_sync", identity.config_path) not in store.ops
        assert store.keys_under(identity.config_path) == []
        assert driver.session.recycle_state is RecycleState.STEADY

    def test_heartbeat_failure_recycles_with_105(self, make_options, store):
        driver = make_driver(make_options(READY_BACKEND), store)
        identity = driver.session.identity
        store.fail("set", identity.key("port"))

        exit_code = asyncio.run(driver.run())

        assert exit_code == 105
        assert ("set", identity.key("recycling")) in store.ops
        assert store.keys_under(identity.config_path) == []

    def test_unhandled_background_error(self, make_options, store):
        driver = make_driver(make_options(READY_BACKEND), store)
        identity = driver.session.identity

        async def boom():
            raise RuntimeError("boom")

        async def go():
            run = asyncio.create_task(driver.run())
            await wait_until(is_steady(driver, store))
            driver.session.spawn(boom(), name="boom")
            return await asyncio.wait_for(run, timeout=10)

        assert asyncio.run(go()) == 1
        assert driver.session.exit_reason == "unhandled error"
        assert store.ops.count(("delete_sync", identity.config_path)) == 1
        assert driver.session.backend is None
