import asyncio
import os
import stat

import pytest

from conftest import make_config
from saucerun.exceptions import TunnelStartError
from saucerun.notifications import TunnelClosing, TunnelLog, TunnelOpened, TunnelOpening
from saucerun.tunnel import SauceConnectTunnel, TunnelManager


class FakeDriver:
    def __init__(self, succeeds=True):
        self.succeeds = succeeds
        self.listeners = []
        self.started = 0
        self.stopped = 0

    def on_log(self, callback):
        self.listeners.append(callback)

    async def start(self):
        self.started += 1
        for listener in self.listeners:
            listener("writeln", "Starting Sauce Connect", False)
            listener("debug", "connecting to maki.saucelabs.com", True)
            listener("bogus", "odd channel", False)
        return self.succeeds

    async def stop(self):
        self.stopped += 1


def make_manager(driver, notifications, **overrides):
    overrides.setdefault("tunneled", True)
    return TunnelManager(make_config(**overrides), notifications.append, lambda config: driver)


def test_disabled_tunnel_is_a_no_op():
    notifications = []
    driver = FakeDriver()
    manager = make_manager(driver, notifications, tunneled=False)

    async def scenario():
        handle = await manager.open()
        await manager.close(handle)
        return handle

    assert asyncio.run(scenario()) is None
    assert notifications == []
    assert driver.started == 0


def test_open_and_close_emit_notifications_in_order():
    notifications = []
    driver = FakeDriver()
    manager = make_manager(driver, notifications, tunnel_identifier="42")

    async def scenario():
        handle = await manager.open()
        assert handle.identifier == "42"
        await manager.close(handle)
        await manager.close(handle)

    asyncio.run(scenario())

    assert notifications == [
        TunnelOpening(),
        TunnelLog(channel="writeln", text="Starting Sauce Connect", verbose=False),
        TunnelLog(channel="debug", text="connecting to maki.saucelabs.com", verbose=True),
        TunnelLog(channel="writeln", text="odd channel", verbose=False),
        TunnelOpened(),
        TunnelClosing(),
    ]
    assert driver.stopped == 1


def test_failed_start_raises_and_cleans_up():
    notifications = []
    driver = FakeDriver(succeeds=False)
    manager = make_manager(driver, notifications)

    with pytest.raises(TunnelStartError):
        asyncio.run(manager.open())

    assert TunnelOpened() not in notifications
    assert TunnelClosing() not in notifications
    assert driver.stopped == 1


def test_sauce_connect_command():
    tunnel = SauceConnectTunnel("jdoe", "key", "99", extra_args=["--verbose"], binary="/opt/sc/bin/sc")
    assert tunnel.command() == ["/opt/sc/bin/sc", "-u", "jdoe", "-k", "key", "-i", "99", "-P", "0", "--verbose"]


def _script(tmp_path, body):
    path = tmp_path / "sc"
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


@pytest.mark.skipif(os.name != "posix", reason="needs a POSIX shell")
def test_sauce_connect_ready_then_stopped(tmp_path):
    binary = _script(tmp_path, 'echo "Starting up"\necho "Sauce Connect is up, you may start your tests."\nexec sleep 30\n')
    tunnel = SauceConnectTunnel("jdoe", "key", "99", binary=binary, stop_timeout=5)
    lines = []
    tunnel.on_log(lambda channel, text, verbose: lines.append((channel, text, verbose)))

    async def scenario():
        ready = await tunnel.start()
        await tunnel.stop()
        return ready

    assert asyncio.run(scenario()) is True
    assert ("writeln", "Starting up", True) in lines
    assert lines[-1][0] == "ok"


@pytest.mark.skipif(os.name != "posix", reason="needs a POSIX shell")
def test_sauce_connect_exit_before_ready(tmp_path):
    binary = _script(tmp_path, 'echo "Invalid credentials"\nexit 3\n')
    tunnel = SauceConnectTunnel("jdoe", "key", "99", binary=binary)
    lines = []
    tunnel.on_log(lambda channel, text, verbose: lines.append((channel, text, verbose)))

    async def scenario():
        ready = await tunnel.start()
        await tunnel.stop()
        return ready

    assert asyncio.run(scenario()) is False
    assert any(channel == "error" and "status 3" in text for channel, text, _ in lines)


def test_sauce_connect_missing_binary(tmp_path):
    tunnel = SauceConnectTunnel("jdoe", "key", "99", binary=str(tmp_path / "missing-sc"))
    lines = []
    tunnel.on_log(lambda channel, text, verbose: lines.append(channel))

    assert asyncio.run(tunnel.start()) is False
    assert "error" in lines
