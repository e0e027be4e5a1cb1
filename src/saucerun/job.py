import asyncio
import logging
import re
from typing import Any, Dict, Optional

from .exceptions import PollTimeoutError, SubmissionError, TestError
from .models import JobResult, JobState, format_platform
from .result_parsers import interpret
from .schemas import BrowserSpec, RunConfiguration

logger = logging.getLogger(__name__)

JOB_ID_RE = re.compile(r"[a-z0-9]{32}")

JOB_URL_TEMPLATE = "https://saucelabs.com/jobs/{job_id}"


class Job:
    """One Sauce Labs js-tests run of a single page on a single platform.

    Lifecycle: created -> submitted -> polling -> resolved -> interpreted.
    ``start`` submits the job, ``complete`` polls until Sauce Labs reports a
    finished job with a well-formed id, and ``get_result`` turns the status
    record into a verdict.
    """

    def __init__(self, client, config: RunConfiguration, url: str, browser: BrowserSpec):
        self.client = client
        self.framework = config.framework
        self.url = url
        self.platform = browser.platform_triple
        self.build = config.build
        self.public = browser.public or config.public
        self.tags = browser.tags if browser.tags is not None else list(config.tags)
        self.test_name = browser.name or config.test_name
        self.poll_interval = config.poll_interval
        self.status_check_attempts = config.status_check_attempts
        self.sauce_config = dict(config.sauce_config)
        self.tunneled = config.tunneled
        self.tunnel_identifier = config.tunnel_identifier

        self.state = JobState.CREATED
        self.task_id: Optional[str] = None
        self.id: Optional[str] = None

        if self.status_check_attempts <= 0:
            logger.warning(f"Job for {self.url} on {self.describe_platform()} will poll without an attempt limit")

    def describe_platform(self) -> str:
        return format_platform(self.platform)

    @property
    def job_url(self) -> Optional[str]:
        if self.id is None:
            return None
        return JOB_URL_TEMPLATE.format(job_id=self.id)

    def build_payload(self) -> Dict[str, Any]:
        payload = {
            "platforms": [list(self.platform)],
            "url": self.url,
            "framework": self.framework.value,
            "build": self.build,
            "public": self.public,
            "tags": self.tags,
            "name": self.test_name,
        }
        _deep_merge(payload, self.sauce_config)

        if self.tunneled:
            payload["tunnel-identifier"] = self.tunnel_identifier

        return payload

    async def start(self) -> str:
        body = await self.client.start_js_tests(self.build_payload())
        task_ids = (body or {}).get("js tests")

        if not task_ids:
            self.state = JobState.FAILED
            raise SubmissionError("Error starting tests through Sauce API.")

        self.task_id = task_ids[0]
        self.state = JobState.SUBMITTED
        logger.info(f"Submitted {self.url} on {self.describe_platform()} as task {self.task_id}")
        return self.task_id

    async def complete(self) -> Dict[str, Any]:
        """Poll the status endpoint until the job finishes.

        A poll counts as unsuccessful while the response is not marked
        completed or carries no valid 32 character job id. A non-positive
        ``status_check_attempts`` polls without limit.

        Raises:
            PollTimeoutError: once every attempt was unsuccessful.
        """
        self.state = JobState.POLLING
        attempt = 0

        while True:
            attempt += 1
            body = await self.client.js_tests_status([self.task_id]) or {}
            records = body.get("js tests") or [{}]
            record = records[0] or {}
            job_id = record.get("job_id")

            if body.get("completed") and isinstance(job_id, str) and JOB_ID_RE.fullmatch(job_id):
                self.id = job_id
                self.state = JobState.RESOLVED
                logger.debug(f"Task {self.task_id} resolved to job {job_id} after {attempt} poll(s)")
                return record

            if 0 < self.status_check_attempts <= attempt:
                self.state = JobState.FAILED
                raise PollTimeoutError(self.status_check_attempts, self.poll_interval)

            logger.debug(f"Task {self.task_id} not complete (attempt {attempt}), waiting {self.poll_interval}s")
            await asyncio.sleep(self.poll_interval)

    async def get_result(self) -> JobResult:
        record = await self.complete()

        if record.get("status") == "test error":
            self.state = JobState.FAILED
            raise TestError(f"Test Error reported for {self.url} on {self.describe_platform()}")

        raw_result = record.get("result")
        # Sauce Labs nulls the result when it cannot store it (e.g. very large payloads).
        if not raw_result:
            passed = False
        else:
            passed = interpret(self.framework, raw_result)

        self.state = JobState.INTERPRETED
        return JobResult(
            url=self.url,
            platform=self.platform,
            passed=passed,
            job_id=self.id,
            job_url=record.get("url") or self.job_url,
            raw=record,
        )

    async def stop(self) -> Dict[str, Any]:
        return await self.client.stop_job(self.id)

    async def delete(self) -> Dict[str, Any]:
        return await self.client.delete_job(self.id)

    async def override_verdict(self, passed: bool) -> Dict[str, Any]:
        """Overwrite the pass/fail status Sauce Labs shows for this job."""
        if self.id is None:
            raise RuntimeError("Cannot override the verdict of a job that has not resolved")
        logger.info(f"Overriding verdict of job {self.id} to passed={passed}")
        return await self.client.update_job(self.id, {"passed": passed})


async def negate_result(result: JobResult, job: Job) -> bool:
    """``on_test_complete`` hook for negative tests: flips the job's verdict."""
    inverted = not result.passed
    await job.override_verdict(inverted)
    return inverted


def _deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value
