"""Validator backed by a user function."""
from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from models.schemas import ValidationResult
from validation.base import Validator

if TYPE_CHECKING:
    from context.session import Session

CheckResult = Union[bool, ValidationResult]
CheckFn = Callable[[str, Optional["Session"]], Union[CheckResult, Awaitable[CheckResult]]]


class CustomValidator(Validator):
    """
    Wrap ``fn(content, session)``. The function may be sync or async and may
    return a bool or a full ValidationResult; a bare False uses the
    description as the instruction.
    """

    def __init__(self, fn: CheckFn, description: str = "Custom validation"):
        self._fn = fn
        super().__init__(description)

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        result: Any = self._fn(content, session)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ValidationResult):
            return result
        return ValidationResult.valid() if result else ValidationResult.invalid(self.description)
