import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from retrying import Retrying

from .exceptions import SauceApiError
from .schemas import RunConfiguration

logger = logging.getLogger(__name__)

TIMEOUT = 30


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    return isinstance(exc, SauceApiError) and exc.status_code >= 500


class SauceClient:
    """Authenticated access to the Sauce Labs REST API.

    Requests go through a blocking ``requests.Session``; ``request`` hands
    each call to a worker thread so many jobs can poll on one event loop.
    """

    def __init__(
        self,
        username: str,
        access_key: str,
        api_url: str = "https://saucelabs.com/rest/v1",
        session: Optional[requests.Session] = None,
        max_attempts: int = 3,
        retry_wait_ms: int = 2000,
    ):
        if not username or not access_key:
            raise ValueError("Sauce Labs credentials are None")

        self.username = username
        self._access_key = access_key
        self.api_url = api_url.rstrip("/")
        self.max_attempts = max_attempts
        self.retry_wait_ms = retry_wait_ms
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    @classmethod
    def from_config(cls, config: RunConfiguration, **kwargs: Any) -> "SauceClient":
        return cls(
            config.username,
            config.access_key.get_secret_value(),
            api_url=config.api_url,
            **kwargs,
        )

    def get_auth_tuple(self):
        return (self.username, self._access_key)

    def url_for(self, path: str) -> str:
        return f"{self.api_url}/{self.username}/{path.lstrip('/')}"

    def _send(self, method: str, url: str, json: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        response = self._session.request(
            method,
            url,
            json=json,
            auth=self.get_auth_tuple(),
            timeout=TIMEOUT,
        )

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise SauceApiError(response.status_code, body)

        if not response.content:
            return {}
        return response.json()

    def request_sync(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.url_for(path)
        logger.debug(f"{method} {url}")
        retrying = Retrying(
            stop_max_attempt_number=self.max_attempts,
            wait_fixed=self.retry_wait_ms,
            retry_on_exception=_is_transient,
        )
        return retrying.call(self._send, method, url, json)

    async def request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self.request_sync, method, path, json)

    async def start_js_tests(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", "js-tests", json=payload)

    async def js_tests_status(self, task_ids: List[str]) -> Dict[str, Any]:
        return await self.request("POST", "js-tests/status", json={"js tests": task_ids})

    async def stop_job(self, job_id: str) -> Dict[str, Any]:
        return await self.request("PUT", f"jobs/{job_id}/stop")

    async def delete_job(self, job_id: str) -> Dict[str, Any]:
        return await self.request("DELETE", f"jobs/{job_id}")

    async def update_job(self, job_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("PUT", f"jobs/{job_id}", json=data)

    def close(self) -> None:
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
