"""Progress notifications emitted while a run is in flight.

Each variant is a small frozen dataclass with a ``kind`` tag and a
``describe()`` that renders it without any other context. A sink is any
callable accepting a notification; the core never reads from it.
"""
from dataclasses import dataclass
from typing import Callable, ClassVar, Optional

from .models import Platform, format_platform


@dataclass(frozen=True)
class Notification:
    kind: ClassVar[str] = "notification"

    def describe(self) -> str:
        return self.kind


@dataclass(frozen=True)
class TunnelOpening(Notification):
    kind: ClassVar[str] = "tunnel-open"

    def describe(self) -> str:
        return "=> Starting Tunnel to Sauce Labs"


@dataclass(frozen=True)
class TunnelOpened(Notification):
    kind: ClassVar[str] = "tunnel-opened"

    def describe(self) -> str:
        return "Connected to Sauce Labs"


@dataclass(frozen=True)
class TunnelClosing(Notification):
    kind: ClassVar[str] = "tunnel-close"

    def describe(self) -> str:
        return "=> Stopping Tunnel to Sauce Labs"


@dataclass(frozen=True)
class TunnelLog(Notification):
    kind: ClassVar[str] = "tunnel-log"

    channel: str
    text: str
    verbose: bool = False

    def describe(self) -> str:
        return self.text


@dataclass(frozen=True)
class JobStarted(Notification):
    kind: ClassVar[str] = "job-started"

    started: int
    total: int

    def describe(self) -> str:
        return f"{self.started} / {self.total} tests started"


@dataclass(frozen=True)
class JobCompleted(Notification):
    kind: ClassVar[str] = "job-completed"

    url: str
    platform: Platform
    passed: bool
    job_url: Optional[str] = None
    port_warning: bool = False

    def describe(self) -> str:
        lines = [f"Tested {self.url}", f"Platform: {format_platform(self.platform)}"]
        if self.port_warning:
            lines.append("Warning: This url might use a port that is not proxied by Sauce Connect.")
        lines.append(f"Passed: {self.passed}")
        lines.append(f"Url {self.job_url}")
        return "\n".join(lines)


@dataclass(frozen=True)
class JobErrored(Notification):
    kind: ClassVar[str] = "job-error"

    url: str
    platform: Platform
    error: str

    def describe(self) -> str:
        return f"Error testing {self.url} on {format_platform(self.platform)}: {self.error}"


@dataclass(frozen=True)
class TestRunCompleted(Notification):
    __test__ = False
    kind: ClassVar[str] = "test-run-completed"

    passed: bool

    def describe(self) -> str:
        return f"All tests completed with status {self.passed}"


@dataclass(frozen=True)
class Retrying(Notification):
    kind: ClassVar[str] = "retrying"

    url: str
    platform: Platform
    attempt: int

    def describe(self) -> str:
        return f"Retrying URL {self.url} on browser {format_platform(self.platform)} (attempt {self.attempt})"


NotificationSink = Callable[[Notification], None]


def discard(notification: Notification) -> None:
    pass
