"""Result parsers for the supported test frameworks.

Each parser receives the ``result`` record reported by the framework's
Sauce Labs integration and returns True when every test passed.
"""
from typing import Any, Callable, Dict, Mapping, Union

from .exceptions import UnknownFramework
from .models import Framework


def _jasmine(result: Dict[str, Any]) -> bool:
    return result.get("passed") is True


def _qunit(result: Dict[str, Any]) -> bool:
    total = result.get("total")
    return total is not None and result.get("passed") == total


def _mocha(result: Dict[str, Any]) -> bool:
    return result.get("failures") == 0


def _yui(result: Dict[str, Any]) -> bool:
    total = result.get("total")
    return total is not None and result.get("passed") == total


def _custom(result: Dict[str, Any]) -> bool:
    return result.get("failed") == 0


RESULT_PARSERS: Dict[Framework, Callable[[Dict[str, Any]], bool]] = {
    Framework.JASMINE: _jasmine,
    Framework.QUNIT: _qunit,
    Framework.MOCHA: _mocha,
    Framework.YUI: _yui,
    Framework.CUSTOM: _custom,
}


def resolve_framework(framework: Union[Framework, str]) -> Framework:
    try:
        return Framework(framework)
    except ValueError:
        raise UnknownFramework(framework) from None


def interpret(framework: Union[Framework, str], result: Any) -> bool:
    """Return True if ``result`` reports that all tests passed.

    Payloads that are not records (lists, strings, numbers) never pass.

    Raises:
        UnknownFramework: if ``framework`` is not one of the supported ids.
    """
    parser = RESULT_PARSERS[resolve_framework(framework)]
    if not isinstance(result, Mapping):
        return False
    return parser(result)
