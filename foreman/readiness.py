# ============================================================================
# READINESS DETECTION
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Backend readiness channels
# PURPOSE: Detect the backend's "ready" signal via marker file or stdout
# CREATED: 18 OCT 2026
# ============================================================================
"""
Readiness Detection

Two ways for a backend to say it is ready:

- file (default): the foreman creates/empties SIGNAL_FILE before spawning
  the backend; any later change to it (write, touch, replace) is the signal.
- stdout: the backend prints ``LISTENING``. Its stdout is piped through the
  foreman, forwarded to the foreman's own stdout for its whole lifetime,
  and scanned for the token until startup is over.

Lifecycle per channel: prepare() before spawn, attach() after spawn,
wait() raced against exit and timeout, close() exactly once afterwards.
"""

import asyncio
import logging
import os
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from core.config import ForemanOptions
from core.contracts import SignalMethod
from foreman.session import BackendHandle

logger = logging.getLogger(__name__)

READINESS_TOKEN = "LISTENING"
FILE_POLL_INTERVAL_SEC = 0.1
STDOUT_CHUNK_SIZE = 4096


class ReadinessChannel(ABC):
    """Base class for readiness channels."""

    method: SignalMethod
    pipe_stdout: bool = False

    def prepare(self) -> None:
        """Set up the channel before the backend is spawned."""

    def attach(self, handle: BackendHandle) -> None:
        """Bind the channel to the spawned backend."""

    @abstractmethod
    async def wait(self) -> None:
        """Return once the backend signaled readiness."""

    @abstractmethod
    def close(self) -> None:
        """Stop listening. Idempotent."""


# ============================================================================
# FILE CHANNEL
# ============================================================================

class FileReadinessChannel(ReadinessChannel):
    """Marker-file channel, watched by polling its stat stamp."""

    method = SignalMethod.FILE

    def __init__(self, path: str, poll_interval: float = FILE_POLL_INTERVAL_SEC):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self._baseline: Optional[Tuple[int, int, int]] = None
        self._closed = False

    def _stamp(self) -> Optional[Tuple[int, int, int]]:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def prepare(self) -> None:
        """Create or truncate the marker file and remember its stamp."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self._baseline = self._stamp()
        logger.info(f"Watching signal file {self.path}")

    async def wait(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.poll_interval)
            stamp = self._stamp()
            # A removed file is not a change event; keep waiting for it to reappear
            if stamp is not None and stamp != self._baseline:
                logger.info(f"Signal file {self.path} changed")
                return
        # Closed while waiting: never resolve
        await asyncio.Event().wait()

    def close(self) -> None:
        self._closed = True


# ============================================================================
# STDOUT CHANNEL
# ============================================================================

class StdoutReadinessChannel(ReadinessChannel):
    """
    Token scan on the backend's stdout.

    The pump keeps forwarding output after close(); only the scan stops.
    """

    method = SignalMethod.STDOUT
    pipe_stdout = True

    def __init__(self, token: str = READINESS_TOKEN, sink: Optional[BinaryIO] = None):
        self.token = token.encode("utf-8")
        self._sink = sink
        self._ready = asyncio.Event()
        self._scanning = True
        self._tail = b""

    @property
    def sink(self) -> BinaryIO:
        return self._sink if self._sink is not None else sys.stdout.buffer

    def attach(self, handle: BackendHandle) -> None:
        stream = handle.process.stdout
        if stream is None:
            raise RuntimeError("stdout readiness requires the backend stdout to be piped")
        handle.stdout_pump = asyncio.get_running_loop().create_task(
            self._pump(stream),
            name=f"backend-stdout-{handle.pid}",
        )

    def feed(self, chunk: bytes) -> bool:
        """
        Scan one chunk; returns True when the token is seen.

        The token may straddle two chunks, so the tail of the previous
        chunk is kept.
        """
        if not self._scanning:
            return False
        window = self._tail + chunk
        if self.token in window:
            self._scanning = False
            self._tail = b""
            self._ready.set()
            return True
        keep = len(self.token) - 1
        self._tail = window[-keep:] if keep > 0 else b""
        return False

    async def _pump(self, stream: asyncio.StreamReader) -> None:
        sink = self.sink
        while True:
            chunk = await stream.read(STDOUT_CHUNK_SIZE)
            if not chunk:
                return
            try:
                sink.write(chunk)
                sink.flush()
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to forward backend stdout: {e}")
            if self.feed(chunk):
                logger.info(f"Backend printed readiness token {self.token.decode()}")

    async def wait(self) -> None:
        await self._ready.wait()

    def close(self) -> None:
        self._scanning = False
        self._tail = b""


def build_readiness_channel(options: ForemanOptions) -> ReadinessChannel:
    """Channel selected by SIGNAL_METHOD."""
    if options.signal_method is SignalMethod.STDOUT:
        return StdoutReadinessChannel()
    return FileReadinessChannel(options.signal_file)


__all__ = [
    "READINESS_TOKEN",
    "ReadinessChannel",
    "FileReadinessChannel",
    "StdoutReadinessChannel",
    "build_readiness_channel",
]
