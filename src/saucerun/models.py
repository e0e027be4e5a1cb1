from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Framework(str, Enum):
    JASMINE = "jasmine"
    QUNIT = "qunit"
    MOCHA = "mocha"
    YUI = "YUI Test"
    CUSTOM = "custom"


class JobState(str, Enum):
    CREATED = "created"
    SUBMITTED = "submitted"
    POLLING = "polling"
    RESOLVED = "resolved"
    INTERPRETED = "interpreted"
    FAILED = "failed"


Platform = Tuple[str, str, str]


def format_platform(platform: Platform) -> str:
    return " ".join(part for part in platform if part) or "default platform"


@dataclass
class JobResult:
    """Outcome of one job, whether it resolved or failed along the way."""
    url: str
    platform: Platform
    passed: bool = False
    job_id: Optional[str] = None
    job_url: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def errored(self) -> bool:
        return self.error is not None


@dataclass
class RunVerdict:
    attempt: int
    results: List[JobResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        # all() over an empty batch is True
        return all(r.passed and not r.errored for r in self.results)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.passed_count
