import logging
from typing import Callable, Optional

from .notifications import NotificationSink, discard
from .runner import TestCompleteHook, TestRunner
from .sauce_client import SauceClient
from .schemas import RunConfiguration
from .tunnel import TunnelDriver, TunnelManager, sauce_connect_driver

logger = logging.getLogger(__name__)


async def run_task(
    config: RunConfiguration,
    sink: NotificationSink = discard,
    client=None,
    driver_factory: Callable[[RunConfiguration], TunnelDriver] = sauce_connect_driver,
    on_test_complete: Optional[TestCompleteHook] = None,
) -> bool:
    """Open the tunnel if configured, run the tests once, always close the tunnel.

    Returns the final verdict. Errors from the tunnel or the runner are
    re-raised after the tunnel has been closed.
    """
    owns_client = client is None
    if owns_client:
        client = SauceClient.from_config(config)

    tunnels = TunnelManager(config, sink, driver_factory)
    handle = None
    try:
        handle = await tunnels.open()
        runner = TestRunner(config, client, sink, on_test_complete=on_test_complete)
        passed = await runner.run_tests()
        logger.info(f"Run finished with passed={passed}")
        return passed
    except Exception as e:
        logger.error(f"Run aborted: {type(e).__name__}: {e}")
        raise
    finally:
        try:
            await tunnels.close(handle)
        finally:
            if owns_client:
                client.close()
