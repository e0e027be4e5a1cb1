import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from .models import Framework, Platform

# Sauce Connect tunnel identifiers are seconds since 2009-01-01 UTC.
TUNNEL_EPOCH = 1230768000

DEFAULT_API_URL = "https://saucelabs.com/rest/v1"


def default_tunnel_identifier() -> str:
    return str(int(time.time() - TUNNEL_EPOCH))


class BrowserSpec(BaseModel):
    """One entry of the browser matrix.

    Accepts either a positional ``[os, browser, version]`` triple or a
    record using the Sauce Labs field names (``platform``, ``browserName``,
    ``version``) plus optional per-entry ``name``, ``tags`` and ``public``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    platform: str = ""
    browser_name: str = Field("", alias="browserName")
    version: str = ""
    name: Optional[str] = None
    tags: Optional[List[str]] = None
    public: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _expand_triple(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            if len(value) != 3:
                raise ValueError(f"Browser triple must have 3 entries (os, browser, version), got {list(value)}")
            platform, browser_name, version = value
            return {"platform": platform, "browserName": browser_name, "version": version}
        return value

    @field_validator("platform", "browser_name", "version", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def platform_triple(self) -> Platform:
        return (self.platform, self.browser_name, self.version)


class RunConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    access_key: SecretStr
    framework: Framework
    urls: List[str] = Field(default_factory=list)
    browsers: List[BrowserSpec] = Field(default_factory=list)
    build: Optional[str] = None
    public: str = "team"
    tags: List[str] = Field(default_factory=list)
    test_name: str = ""
    poll_interval: float = Field(2.0, ge=0)
    status_check_attempts: int = 90
    tunneled: bool = True
    tunnel_identifier: str = Field(default_factory=default_tunnel_identifier)
    tunnel_args: List[str] = Field(default_factory=list)
    sauce_config: Dict[str, Any] = Field(default_factory=dict)
    max_retries: int = Field(0, ge=0)
    throttled: Optional[int] = Field(None, ge=1)
    api_url: str = DEFAULT_API_URL

    @field_validator("api_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def matrix(self) -> List[Tuple[str, BrowserSpec]]:
        """Every (url, browser) pair, url-major."""
        return [(url, browser) for url in self.urls for browser in self.browsers]
