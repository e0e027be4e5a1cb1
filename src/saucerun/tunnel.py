import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from .exceptions import TunnelStartError
from .notifications import NotificationSink, TunnelClosing, TunnelLog, TunnelOpened, TunnelOpening
from .schemas import RunConfiguration

logger = logging.getLogger(__name__)

LOG_CHANNELS = ("write", "writeln", "error", "ok", "debug")

LogCallback = Callable[[str, str, bool], None]


class TunnelDriver(Protocol):
    def on_log(self, callback: LogCallback) -> None:
        ...

    async def start(self) -> bool:
        ...

    async def stop(self) -> None:
        ...


class SauceConnectTunnel:
    """Runs the Sauce Connect binary as a child process.

    The tunnel counts as ready once ``sc`` prints its "you may start your
    tests" banner; if the process exits (or the start timeout passes)
    before that, ``start`` reports failure.
    """

    READY_MARKER = "you may start your tests"

    def __init__(
        self,
        username: str,
        access_key: str,
        identifier: str,
        extra_args: Sequence[str] = (),
        binary: str = "sc",
        start_timeout: float = 120.0,
        stop_timeout: float = 30.0,
    ):
        self.username = username
        self._access_key = access_key
        self.identifier = identifier
        self.extra_args = list(extra_args)
        self.binary = binary
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout
        self._listeners: List[LogCallback] = []
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None

    def on_log(self, callback: LogCallback) -> None:
        self._listeners.append(callback)

    def _emit(self, channel: str, text: str, verbose: bool = False) -> None:
        for listener in self._listeners:
            listener(channel, text, verbose)

    def command(self) -> List[str]:
        return [
            self.binary,
            "-u", self.username,
            "-k", self._access_key,
            "-i", self.identifier,
            "-P", "0",
            *self.extra_args,
        ]

    async def _read_line(self) -> Optional[str]:
        raw = await self._process.stdout.readline()
        if not raw:
            return None
        return raw.decode("utf-8", errors="replace").rstrip()

    async def _wait_until_ready(self) -> bool:
        while True:
            line = await self._read_line()
            if line is None:
                return False
            self._emit("writeln", line, True)
            if self.READY_MARKER in line:
                return True

    async def _drain(self) -> None:
        while True:
            line = await self._read_line()
            if line is None:
                return
            self._emit("writeln", line, True)

    async def start(self) -> bool:
        self._emit("writeln", f"Opening Sauce Connect tunnel {self.identifier}", False)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            self._emit("error", f"Could not launch {self.binary}: {e}", False)
            return False

        try:
            ready = await asyncio.wait_for(self._wait_until_ready(), timeout=self.start_timeout)
        except asyncio.TimeoutError:
            self._emit("error", f"Sauce Connect was not ready after {self.start_timeout}s", False)
            return False

        if not ready:
            code = await self._process.wait()
            self._emit("error", f"Sauce Connect exited with status {code} before the tunnel was ready", False)
            return False

        self._emit("ok", f"Sauce Connect tunnel {self.identifier} is up", False)
        self._reader = asyncio.create_task(self._drain())
        return True

    async def stop(self) -> None:
        if self._process is None:
            return

        if self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass  # already exited
            try:
                await asyncio.wait_for(self._process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                self._emit("error", "Sauce Connect did not stop in time, killing it", False)
                self._process.kill()
                await self._process.wait()

        if self._reader is not None:
            await self._reader
            self._reader = None

        self._emit("ok", "Sauce Connect tunnel closed", False)


def sauce_connect_driver(config: RunConfiguration) -> TunnelDriver:
    return SauceConnectTunnel(
        config.username,
        config.access_key.get_secret_value(),
        config.tunnel_identifier,
        extra_args=config.tunnel_args,
    )


@dataclass
class TunnelHandle:
    identifier: str
    driver: TunnelDriver
    closed: bool = False


class TunnelManager:
    """Opens and closes the Sauce Connect tunnel for one run.

    When the configuration is not tunneled both operations are no-ops and
    nothing is emitted.
    """

    def __init__(
        self,
        config: RunConfiguration,
        sink: NotificationSink,
        driver_factory: Callable[[RunConfiguration], TunnelDriver] = sauce_connect_driver,
    ):
        self.config = config
        self.sink = sink
        self.driver_factory = driver_factory

    def _forward(self, channel: str, text: str, verbose: bool) -> None:
        if channel not in LOG_CHANNELS:
            channel = "writeln"
        self.sink(TunnelLog(channel=channel, text=text, verbose=verbose))

    async def open(self) -> Optional[TunnelHandle]:
        if not self.config.tunneled:
            return None

        self.sink(TunnelOpening())
        driver = self.driver_factory(self.config)
        driver.on_log(self._forward)

        logger.info(f"Starting tunnel {self.config.tunnel_identifier}")
        try:
            started = await driver.start()
        except BaseException:
            await driver.stop()
            raise

        if not started:
            logger.error(f"Tunnel {self.config.tunnel_identifier} failed to start")
            await driver.stop()
            raise TunnelStartError("Could not create tunnel to Sauce Labs")

        self.sink(TunnelOpened())
        return TunnelHandle(identifier=self.config.tunnel_identifier, driver=driver)

    async def close(self, handle: Optional[TunnelHandle]) -> None:
        if handle is None or handle.closed:
            return

        self.sink(TunnelClosing())
        logger.info(f"Stopping tunnel {handle.identifier}")
        handle.closed = True
        await handle.driver.stop()
