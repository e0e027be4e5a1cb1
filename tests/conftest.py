import pytest

from saucerun.schemas import RunConfiguration

VALID_JOB_ID = "0123456789abcdef0123456789abcdef"


class FakeSauceClient:
    """In-memory stand-in for SauceClient.

    ``status_script`` maps a task id to a list of status bodies returned in
    order; the last body repeats once the list is exhausted.
    """

    def __init__(self, status_script=None, results=None, start_bodies=None):
        self.status_script = status_script or {}
        self.results = results or {}
        self.start_bodies = start_bodies or {}
        self.calls = []
        self._polls = {}

    async def start_js_tests(self, payload):
        self.calls.append(("start", payload))
        url = payload["url"]
        browser = payload["platforms"][0][1]
        task_id = f"task-{url}-{browser}"
        return self.start_bodies.get(task_id, {"js tests": [task_id]})

    async def js_tests_status(self, task_ids):
        task_id = task_ids[0]
        self.calls.append(("status", task_id))
        count = self._polls.get(task_id, 0)
        self._polls[task_id] = count + 1
        script = self.status_script.get(task_id)
        if script:
            return script[min(count, len(script) - 1)]
        return completed_status(task_id, self.results.get(task_id, {"failed": 0}))

    async def stop_job(self, job_id):
        self.calls.append(("stop", job_id))
        return {}

    async def delete_job(self, job_id):
        self.calls.append(("delete", job_id))
        return {}

    async def update_job(self, job_id, data):
        self.calls.append(("update", job_id, data))
        return {"id": job_id, **data}

    def polls(self, task_id):
        return self._polls.get(task_id, 0)


def completed_status(task_id, result, job_id=VALID_JOB_ID, status=None):
    record = {"id": task_id, "job_id": job_id, "result": result, "url": f"https://saucelabs.com/jobs/{job_id}"}
    if status is not None:
        record["status"] = status
    return {"completed": True, "js tests": [record]}


def make_config(**overrides):
    values = {
        "username": "jdoe",
        "access_key": "s3cr3t-key",
        "framework": "custom",
        "urls": ["http://localhost:9999/tests.html"],
        "browsers": [["Windows 10", "chrome", "latest"]],
        "tunneled": False,
        "poll_interval": 0,
        "status_check_attempts": 3,
    }
    values.update(overrides)
    return RunConfiguration(**values)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def notifications():
    return []
