"""
Validator contract.

A validator is a stateless rule over produced content. It never raises for
bad content; it returns ``ValidationResult.invalid(instruction)`` where the
instruction tells a generator (or a person) how to fix the content.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from models.schemas import ValidationResult

if TYPE_CHECKING:
    from context.session import Session


class Validator(ABC):

    def __init__(self, description: Optional[str] = None):
        self._description = description

    @property
    def description(self) -> str:
        return self._description or self.default_description()

    def default_description(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        ...

    def error_message(self) -> str:
        return f"Validation failed: {self.description}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"
