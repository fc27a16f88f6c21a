# ============================================================================
# FOREMAN MAIN ENTRY POINT
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Process entry point
# PURPOSE: Build the foreman from the environment and run it to exit
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman Main Entry Point

Runs as the container's entry process and starts the backend given on the
command line:

Usage:
    foreman /usr/bin/my-backend --listen 8080
    python main.py /usr/bin/my-backend --listen 8080

Environment Variables:
    APP_NAME: Application name (registration path segment)
    APP_ID: Instance id (registration path segment)
    COREOS_HOST: Host running etcd and the Docker remote API
    IMAGE: Image name, published in the registration entry
    APP_PORT: Backend port inside the container (optional)
    APP_HEALTH_URL: Health path probed before registering (optional)
    SIGNAL_METHOD: "file" (default) or "stdout"
    SIGNAL_FILE: Marker file for "file" mode (default /data/backend_signal)
    ETCD_PORT: etcd client port (default 4001)
    DOCKER_PORT: Docker remote API port (default 2375)
    HEALTH_CHECK_TIMEOUT: Health probe timeout in seconds (default 30)
    FOREMAN_LOG_LEVEL: Log level (default INFO)
    FOREMAN_LOG_FORMAT: "json" for structured logs
"""

import asyncio
import atexit
import sys

from core.config import ForemanOptions
from core.logging import configure_logging, get_logger
from foreman import ForemanDriver
from infrastructure import ContainerInspector, EtcdClient

logger = get_logger(__name__)


async def main(driver: ForemanDriver, store: EtcdClient, runtime: ContainerInspector) -> int:
    """Run the driver and release the clients."""
    try:
        return await driver.run()
    finally:
        await store.close()
        runtime.close()


def run() -> None:
    """Synchronous entry point."""
    options = ForemanOptions.from_env(argv=sys.argv[1:])

    configure_logging(
        level=options.log_level,
        json_output=options.log_format.lower() == "json",
    )

    store = EtcdClient(options.coreos_host, options.etcd_port)
    runtime = ContainerInspector(options.coreos_host, options.docker_port)
    driver = ForemanDriver(options, store, runtime)

    # Safety net for exits that bypass the driver
    atexit.register(driver.cleanup.run)

    try:
        exit_code = asyncio.run(main(driver, store, runtime))
    except Exception as e:
        logger.exception(f"Foreman failed: {e}")
        driver.cleanup.run()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
