# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Process options and store tunables
# PURPOSE: Environment/argv options and validated /config tunables
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Defaults

Two sources of configuration:

- ForemanOptions: fixed for the container, read from the environment and
  the command line (what to run, who we are, how the backend signals).
- ForemanTunables: process-wide knobs shared by every foreman, fetched once
  from the store's /config directory (timeouts, retry counts, backoff).

Design:
- Immutable dataclass for options (environment overrides)
- Pydantic model for tunables (values arrive as strings and are coerced)
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from core.contracts import SignalMethod
from core.errors import OptionsError

DEFAULT_SIGNAL_FILE = "/data/backend_signal"
DOCKER_LIBRARY_PATH = "/data/lib64"

REQUIRED_ENV = ("APP_NAME", "APP_ID", "COREOS_HOST", "IMAGE")


@dataclass(frozen=True)
class ForemanOptions:
    """
    Options for one foreman run.

    Required:
        APP_NAME, APP_ID, COREOS_HOST, IMAGE, backend command (argv)

    Optional:
        APP_HEALTH_URL - path that must answer HTTP 200 for the backend to be healthy
        APP_PORT - TCP port the backend listens on inside the container; when
                   absent the foreman does not wait for a port mapping
        SIGNAL_METHOD - "file" (default) or "stdout"
        SIGNAL_FILE - marker file used in "file" mode
    """
    app_name: str
    app_id: str
    coreos_host: str
    image: str
    backend_cmd: str
    backend_args: List[str] = field(default_factory=list)

    app_health_url: Optional[str] = None
    app_port: Optional[str] = None
    signal_method: SignalMethod = SignalMethod.FILE
    signal_file: str = DEFAULT_SIGNAL_FILE

    # Ambient
    etcd_port: int = 4001
    docker_port: int = 2375
    health_check_timeout: float = 30.0
    log_level: str = "INFO"
    log_format: str = ""

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        argv: Optional[Sequence[str]] = None,
    ) -> "ForemanOptions":
        """
        Build options from environment variables and backend argv.

        Args:
            environ: Environment mapping (defaults to os.environ)
            argv: Backend command followed by its arguments

        Raises:
            OptionsError: A required variable or the backend command is missing
        """
        env = os.environ if environ is None else environ

        for name in REQUIRED_ENV:
            if env.get(name) is None:
                raise OptionsError(f"{name} environment variable not set.")

        args = list(argv or [])
        if not args or not args[0]:
            raise OptionsError(
                "The command and arguments to start the backend must be "
                "specified as command line parameters."
            )

        method = env.get("SIGNAL_METHOD") or SignalMethod.FILE.value
        try:
            signal_method = SignalMethod(method)
        except ValueError:
            raise OptionsError(
                "SIGNAL_METHOD environment variable must be either `file` or `stdout`."
            ) from None

        return cls(
            app_name=env["APP_NAME"],
            app_id=env["APP_ID"],
            coreos_host=env["COREOS_HOST"],
            image=env["IMAGE"],
            backend_cmd=args[0],
            backend_args=args[1:],
            app_health_url=env.get("APP_HEALTH_URL") or None,
            app_port=env.get("APP_PORT") or None,
            signal_method=signal_method,
            signal_file=env.get("SIGNAL_FILE") or DEFAULT_SIGNAL_FILE,
            etcd_port=int(env.get("ETCD_PORT", 4001)),
            docker_port=int(env.get("DOCKER_PORT", 2375)),
            health_check_timeout=float(env.get("HEALTH_CHECK_TIMEOUT", 30.0)),
            log_level=env.get("FOREMAN_LOG_LEVEL", "INFO"),
            log_format=env.get("FOREMAN_LOG_FORMAT", ""),
        )

    def backend_env(
        self,
        config: Mapping[str, Any],
        base: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """
        Environment handed to the backend process.

        The process environment, plus the resolved signal settings and the
        fetched /config serialized as JSON_CONFIG with upper-cased keys.
        """
        env = dict(os.environ if base is None else base)
        env["SIGNAL_METHOD"] = self.signal_method.value
        env["SIGNAL_FILE"] = self.signal_file
        env["JSON_CONFIG"] = json.dumps({str(k).upper(): v for k, v in config.items()})
        if "docker" in self.backend_cmd:
            env["LD_LIBRARY_PATH"] = DOCKER_LIBRARY_PATH
        return env


class ForemanTunables(BaseModel):
    """
    Tunables fetched from the store's /config directory.

    The store hands back strings; pydantic coerces them. Unknown keys are
    kept so they still reach the backend through JSON_CONFIG.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    container_registration_timeout: float = Field(
        ..., ge=0, description="Seconds to wait for the backend readiness signal"
    )
    docker_port_registration_retry_count: int = Field(
        ..., ge=1, description="Container inspections before giving up on a port mapping"
    )
    docker_port_registration_retry_delay: float = Field(
        ..., ge=0, description="Initial delay between inspections (ms)"
    )
    docker_port_registration_retry_backoff: float = Field(
        ..., ge=0, description="Delay growth factor"
    )
    cooldown_timeout: float = Field(
        ..., ge=0, description="Seconds between route withdrawal and signaling the backend"
    )
    graceful_shutdown_timeout: float = Field(
        ..., ge=0, description="Seconds from recycle start until the foreman exits regardless"
    )


__all__ = [
    "DEFAULT_SIGNAL_FILE",
    "ForemanOptions",
    "ForemanTunables",
]
