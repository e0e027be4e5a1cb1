import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from dotenv import find_dotenv, load_dotenv

from .result_parsers import resolve_framework
from .schemas import BrowserSpec, RunConfiguration

logger = logging.getLogger(__name__)


def _is_placeholder(value: str) -> bool:
    return "your_" in value.lower()


def load_credentials(username: Optional[str] = None, access_key: Optional[str] = None) -> Tuple[str, str]:
    """Return (username, access_key), falling back to the environment.

    Raises:
        ValueError: if credentials are missing or still placeholders.
    """
    load_dotenv(find_dotenv(usecwd=True))

    username = username or os.getenv("SAUCE_USERNAME")
    access_key = access_key or os.getenv("SAUCE_ACCESS_KEY")

    if not username or not access_key:
        raise ValueError("Sauce Labs credentials not found. Set SAUCE_USERNAME and SAUCE_ACCESS_KEY")

    if _is_placeholder(username) or _is_placeholder(access_key):
        raise ValueError("Sauce Labs credentials contain placeholder values. Please set actual credentials.")

    return username, access_key


def load_config(**overrides: Any) -> RunConfiguration:
    """Build a RunConfiguration from the environment plus explicit overrides.

    Credentials come from ``SAUCE_USERNAME`` / ``SAUCE_ACCESS_KEY`` (a
    ``.env`` file in the working directory is honoured) unless passed in.
    Overrides set to None fall back to the model defaults.

    Raises:
        ValueError: if credentials are missing or still placeholders.
        UnknownFramework: if ``framework`` is not supported.
    """
    username, access_key = load_credentials(overrides.pop("username", None), overrides.pop("access_key", None))
    framework = resolve_framework(overrides.pop("framework", None))
    values = {key: value for key, value in overrides.items() if value is not None}

    config = RunConfiguration(username=username, access_key=access_key, framework=framework, **values)
    logger.debug(f"Resolved run configuration: {config!r}")
    return config


def load_browsers(path: Union[str, Path]) -> List[BrowserSpec]:
    """Read a JSON list of browser specs (triples or records)."""
    with open(path, "r", encoding="utf-8") as fh:
        entries = json.load(fh)

    if not isinstance(entries, list):
        raise ValueError(f"Browsers file {path} must contain a JSON list")

    return [BrowserSpec.model_validate(entry) for entry in entries]


def parse_browser(value: str) -> BrowserSpec:
    """Parse an ``OS,browser,version`` string as given on the command line."""
    parts = [part.strip() for part in value.split(",")]
    if len(parts) == 2:
        parts.append("")
    return BrowserSpec.model_validate(parts)


def load_sauce_config(value: str) -> Dict[str, Any]:
    """Parse passthrough job settings given as a JSON object or a path to a JSON file."""
    if os.path.isfile(value):
        with open(value, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    else:
        data = json.loads(value)

    if not isinstance(data, dict):
        raise ValueError(f"Sauce config must be a JSON object, got {type(data).__name__}")

    return data
