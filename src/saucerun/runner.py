import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union
from urllib.parse import urlparse

from .job import Job
from .models import JobResult, RunVerdict
from .notifications import (
    JobCompleted,
    JobErrored,
    JobStarted,
    NotificationSink,
    Retrying,
    TestRunCompleted,
    discard,
)
from .schemas import RunConfiguration

logger = logging.getLogger(__name__)

# Ports proxied by Sauce Connect, see https://saucelabs.com/docs/connect#localhost
SUPPORTED_TUNNEL_PORTS = frozenset([
    80, 443, 888, 2000, 2001, 2020, 2109, 2222, 2310, 3000, 3001, 3030,
    3210, 3333, 4000, 4001, 4040, 4321, 4502, 4503, 4567, 5000, 5001, 5050, 5555, 5432, 6000,
    6001, 6060, 6666, 6543, 7000, 7070, 7774, 7777, 8000, 8001, 8003, 8031, 8080, 8081, 8765,
    8888, 9000, 9001, 9080, 9090, 9876, 9877, 9999, 49221, 55001,
])

TestCompleteHook = Callable[[JobResult, Job], Union[Optional[bool], Awaitable[Optional[bool]]]]


def unsupported_port(url: str) -> bool:
    """True if ``url`` names an explicit port that Sauce Connect does not proxy."""
    try:
        port = urlparse(url).port
    except ValueError:
        return False
    return port is not None and port not in SUPPORTED_TUNNEL_PORTS


class TestRunner:
    """Runs every url/browser combination of a configuration as Sauce Labs jobs.

    All jobs of a batch run concurrently (optionally capped by
    ``throttled``) and the batch passes only if every job passed. A failing
    batch is resubmitted whole, up to ``max_retries`` more times.
    """

    __test__ = False

    def __init__(
        self,
        config: RunConfiguration,
        client,
        sink: NotificationSink = discard,
        on_test_complete: Optional[TestCompleteHook] = None,
    ):
        self.config = config
        self.client = client
        self.sink = sink
        self.on_test_complete = on_test_complete
        self.verdicts: List[RunVerdict] = []
        self._started = 0

    @property
    def last_verdict(self) -> Optional[RunVerdict]:
        return self.verdicts[-1] if self.verdicts else None

    def create_jobs(self) -> List[Job]:
        return [Job(self.client, self.config, url, browser) for url, browser in self.config.matrix]

    async def _apply_hook(self, result: JobResult, job: Job) -> None:
        if self.on_test_complete is None:
            return
        verdict = self.on_test_complete(result, job)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        if verdict is not None:
            result.passed = bool(verdict)

    async def _run_job(self, job: Job, total: int, throttle: asyncio.Semaphore) -> JobResult:
        async with throttle:
            try:
                await job.start()
                self._started += 1
                self.sink(JobStarted(started=self._started, total=total))

                result = await job.get_result()
                await self._apply_hook(result, job)
            except Exception as e:  # noqa: BLE001
                error = f"{type(e).__name__}: {e}"
                logger.error(f"Job for {job.url} on {job.describe_platform()} failed: {error}")
                self.sink(JobErrored(url=job.url, platform=job.platform, error=error))
                return JobResult(url=job.url, platform=job.platform, passed=False, job_id=job.id, error=error)

        logger.info(f"Job {result.job_id} for {job.url} on {job.describe_platform()} passed={result.passed}")
        self.sink(JobCompleted(
            url=result.url,
            platform=result.platform,
            passed=result.passed,
            job_url=result.job_url,
            port_warning=self.config.tunneled and unsupported_port(result.url),
        ))
        return result

    async def run_batch(self, attempt: int = 1) -> RunVerdict:
        jobs = self.create_jobs()
        self._started = 0
        throttle = asyncio.Semaphore(self.config.throttled or max(len(jobs), 1))

        logger.info(f"Attempt {attempt}: running {len(jobs)} job(s)")
        results = await asyncio.gather(*(self._run_job(job, len(jobs), throttle) for job in jobs))
        return RunVerdict(attempt=attempt, results=list(results))

    async def run_tests(self) -> bool:
        attempts = self.config.max_retries + 1

        for attempt in range(1, attempts + 1):
            verdict = await self.run_batch(attempt)
            self.verdicts.append(verdict)

            if verdict.passed or attempt == attempts:
                break

            logger.warning(
                f"Attempt {attempt} failed ({verdict.failed_count} of {len(verdict.results)} job(s)), retrying"
            )
            for url, browser in self.config.matrix:
                self.sink(Retrying(url=url, platform=browser.platform_triple, attempt=attempt + 1))

        passed = self.last_verdict.passed
        self.sink(TestRunCompleted(passed=passed))
        return passed
