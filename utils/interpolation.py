"""
{{variable}} interpolation against session vars.

    "Hello {{name}}"                    → "Hello Ada"
    "Order {{order.id}}"                → dot notation into nested dicts
    "{{items | join: ', '}}"            → filters, applied left to right
    "{{nickname | default: 'friend'}}"

A variable that is not set renders as the empty string. This is deliberate
and matches how a missing key reads in a prompt, but it means a typo in a
placeholder name fails silently; a ``missing_template_variable`` debug event
is logged for every miss.
"""
from __future__ import annotations

import re
import structlog
from typing import Any, Callable, Mapping, Optional

from utils.conditions import get_nested_value

logger = structlog.get_logger()

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")
_MISSING = object()


def _join(value: Any, sep: str = ", ") -> str:
    if isinstance(value, (list, tuple, set)):
        return sep.join(str(v) for v in value)
    return _stringify(value)


def _numbered_list(value: Any, _arg: Optional[str] = None) -> str:
    if not isinstance(value, (list, tuple)):
        return _stringify(value)
    return "\n".join(f"{i}. {v}" for i, v in enumerate(value, start=1))


def _bullet_list(value: Any, _arg: Optional[str] = None) -> str:
    if not isinstance(value, (list, tuple)):
        return _stringify(value)
    return "\n".join(f"- {v}" for v in value)


def _truncate(value: Any, length: str = "100") -> str:
    text = _stringify(value)
    limit = int(length)
    if len(text) <= limit:
        return text
    return text[:max(limit - 3, 0)] + "..."


def _length(value: Any, _arg: Optional[str] = None) -> str:
    if value is None:
        return "0"
    try:
        return str(len(value))
    except TypeError:
        return "0"


def _default(value: Any, fallback: str = "") -> Any:
    return fallback if value is None or value == "" else value


FILTERS: dict[str, Callable[..., Any]] = {
    "join": _join,
    "numbered_list": _numbered_list,
    "bullet_list": _bullet_list,
    "truncate": _truncate,
    "length": _length,
    "default": _default,
    "upper": lambda v, _a=None: _stringify(v).upper(),
    "lower": lambda v, _a=None: _stringify(v).lower(),
    "trim": lambda v, _a=None: _stringify(v).strip(),
}


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _parse_filter(spec: str) -> tuple[str, Optional[str]]:
    name, colon, arg = spec.partition(":")
    arg = arg.strip()
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in ("'", '"'):
        arg = arg[1:-1]
    return name.strip(), (arg if colon else None)


def _lookup(variables: Mapping[str, Any], key: str) -> Any:
    if key in variables:
        return variables[key]
    if "." in key:
        value = get_nested_value(dict(variables), key)
        if value is not None:
            return value
    return _MISSING


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """Replace {{variable}} placeholders with values from ``variables``."""
    if not template:
        return ""

    def replacer(match: re.Match) -> str:
        expression, *filters = match.group(1).split("|")
        key = expression.strip()
        value = _lookup(variables, key)
        if value is _MISSING:
            logger.debug("missing_template_variable", variable=key)
            value = None

        for spec in filters:
            name, arg = _parse_filter(spec)
            fn = FILTERS.get(name)
            if fn is None:
                logger.warning("unknown_template_filter", filter=name, variable=key)
                continue
            try:
                value = fn(value) if arg is None else fn(value, arg)
            except (TypeError, ValueError) as e:
                logger.warning(
                    "invalid_template_filter_arg", filter=name, arg=arg, variable=key, error=str(e)
                )

        return _stringify(value)

    return _PLACEHOLDER.sub(replacer, template)
