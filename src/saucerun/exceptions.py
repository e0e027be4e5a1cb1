from typing import Any, Optional


class SaucerunError(Exception):
    """Base class for every error raised by saucerun."""


class SauceApiError(SaucerunError):
    def __init__(self, status_code: int, body: Any = None, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"Sauce Labs API returned HTTP {status_code}: {body}")


class SubmissionError(SaucerunError):
    """The js-tests endpoint accepted the request but returned no task id."""


class PollTimeoutError(SaucerunError):
    def __init__(self, attempts: int, poll_interval: float):
        self.attempts = attempts
        self.poll_interval = poll_interval
        super().__init__(
            f"After trying {attempts} times with a delay of {poll_interval}s, "
            "this job never reached 'complete' status."
        )


class TestError(SaucerunError):
    """The remote test harness reported an internal error; the result is not trusted."""

    __test__ = False


class TunnelStartError(SaucerunError):
    pass


class UnknownFramework(SaucerunError, ValueError):
    def __init__(self, framework: Any):
        self.framework = framework
        super().__init__(f"Unsupported test framework: {framework!r}")
