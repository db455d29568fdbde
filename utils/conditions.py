"""
Shared condition evaluator — used by Conditional and Loop templates.

Evaluates RuleCondition objects against session vars and turns the
different condition forms a template accepts into one async predicate.
Supports nested dot-notation field access and type coercion.
"""
from __future__ import annotations

import inspect
import re
import operator as op
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from models.schemas import RuleCondition

if TYPE_CHECKING:
    from context.session import Session


OPERATORS: dict[str, Any] = {
    "eq": op.eq,
    "neq": op.ne,
    "gt": op.gt,
    "gte": op.ge,
    "lt": op.lt,
    "lte": op.le,
    "in": lambda a, b: a in b,
    "contains": lambda a, b: b in str(a),
    "regex": lambda a, b: bool(re.search(str(b), str(a))),
    "exists": lambda a, b: a is not None,
    "not_exists": lambda a, b: a is None,
}

Predicate = Callable[["Session"], Union[bool, Awaitable[bool]]]
ConditionLike = Union[bool, RuleCondition, list[RuleCondition], Predicate]


def get_nested_value(data: dict, field: str) -> Any:
    """Get a value from nested dict using dot notation. e.g. 'order.status'"""
    current = data
    for part in field.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def evaluate_condition(condition: RuleCondition, data: dict[str, Any]) -> bool:
    """Evaluate a single condition against data."""
    val = get_nested_value(data, condition.field)
    fn = OPERATORS.get(condition.operator)
    if fn is None:
        return False
    try:
        if isinstance(condition.value, (int, float)) and not isinstance(condition.value, bool) and isinstance(val, str):
            val = float(val)
        return fn(val, condition.value)
    except (TypeError, ValueError):
        return False


def evaluate_conditions(conditions: list[RuleCondition], data: dict[str, Any]) -> bool:
    """Evaluate all conditions (AND logic). Returns True if all pass."""
    if not conditions:
        return True
    return all(evaluate_condition(c, data) for c in conditions)


def as_predicate(condition: ConditionLike) -> Callable[["Session"], Awaitable[bool]]:
    """
    Normalize a template condition into ``async (session) -> bool``.

    Accepted forms:
      - bool                      constant
      - RuleCondition / list      evaluated against session vars (AND)
      - callable(session)         sync or async, result coerced to bool
    """
    if isinstance(condition, bool):
        async def constant(session: "Session") -> bool:
            return condition
        return constant

    if isinstance(condition, RuleCondition):
        condition = [condition]

    if isinstance(condition, list):
        if not all(isinstance(c, RuleCondition) for c in condition):
            raise TypeError("condition lists may only contain RuleCondition objects")
        rules = list(condition)

        async def rule_based(session: "Session") -> bool:
            return evaluate_conditions(rules, session.vars.to_dict())
        return rule_based

    if callable(condition):
        async def call(session: "Session") -> bool:
            result = condition(session)
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        return call

    raise TypeError(
        f"condition must be a bool, RuleCondition, list of RuleCondition or callable, "
        f"got {type(condition).__name__}"
    )
