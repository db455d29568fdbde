"""
AND / OR combinators.

AllValidator stops at the first failure unless ``collect_all`` is set, in
which case it runs every child and joins all failing instructions.
AnyValidator stops at the first pass; if nothing passes, its instruction
lists every child's instruction so a generator can satisfy any one of them.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from models.schemas import ValidationResult
from validation.base import Validator

if TYPE_CHECKING:
    from context.session import Session


class AllValidator(Validator):

    def __init__(
        self,
        validators: list[Validator],
        description: Optional[str] = None,
        collect_all: bool = False,
    ):
        if not validators:
            raise ValueError("AllValidator needs at least one validator")
        self.validators = list(validators)
        self.collect_all = collect_all
        super().__init__(description)

    def default_description(self) -> str:
        return "All of: " + "; ".join(v.description for v in self.validators)

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        failures: list[str] = []
        for validator in self.validators:
            result = await validator.validate(content, session)
            if result.is_valid:
                continue
            failures.append(result.instruction or validator.description)
            if not self.collect_all:
                break

        if failures:
            return ValidationResult.invalid("\n".join(failures))
        return ValidationResult.valid()


class AnyValidator(Validator):

    def __init__(self, validators: list[Validator], description: Optional[str] = None):
        if not validators:
            raise ValueError("AnyValidator needs at least one validator")
        self.validators = list(validators)
        super().__init__(description)

    def default_description(self) -> str:
        return "Any of: " + "; ".join(v.description for v in self.validators)

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        instructions: list[str] = []
        for validator in self.validators:
            result = await validator.validate(content, session)
            if result.is_valid:
                return ValidationResult.valid()
            instructions.append(result.instruction or validator.description)

        return ValidationResult.invalid(
            "None of the following validators passed. "
            "Any of the following instructions should be followed:\n"
            + "\n".join(instructions)
        )
