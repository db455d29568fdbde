"""Text validators: regex, keyword, length and JSON checks."""
from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Optional, Pattern, Union

from models.schemas import ValidationResult
from validation.base import Validator

if TYPE_CHECKING:
    from context.session import Session


def _compile(pattern: Union[str, Pattern[str]], flags: int = 0) -> Pattern[str]:
    return pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)


class RegexMatchValidator(Validator):
    """Content must contain a match for ``pattern``."""

    def __init__(self, pattern: Union[str, Pattern[str]], description: Optional[str] = None, flags: int = 0):
        self.pattern = _compile(pattern, flags)
        super().__init__(description)

    def default_description(self) -> str:
        return f"Result must match {self.pattern.pattern}"

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        if self.pattern.search(content):
            return ValidationResult.valid()
        return ValidationResult.invalid(self.description)


class RegexNoMatchValidator(Validator):
    """Content must not contain any match for ``pattern``."""

    def __init__(self, pattern: Union[str, Pattern[str]], description: Optional[str] = None, flags: int = 0):
        self.pattern = _compile(pattern, flags)
        super().__init__(description)

    def default_description(self) -> str:
        return f"Result must not match {self.pattern.pattern}"

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        if self.pattern.search(content):
            return ValidationResult.invalid(self.description)
        return ValidationResult.valid()


class KeywordValidator(Validator):
    """
    include mode: at least one keyword must appear.
    exclude mode: none of the keywords may appear.
    """

    def __init__(
        self,
        keywords: Union[str, list[str]],
        mode: str = "include",
        case_sensitive: bool = False,
        description: Optional[str] = None,
    ):
        if mode not in ("include", "exclude"):
            raise ValueError(f"mode must be 'include' or 'exclude', got {mode!r}")
        self.keywords = [keywords] if isinstance(keywords, str) else list(keywords)
        self.mode = mode
        self.case_sensitive = case_sensitive
        super().__init__(description)

    def default_description(self) -> str:
        action = "must include" if self.mode == "include" else "must not include"
        return f"Result {action} one of these keywords: {', '.join(self.keywords)}"

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        if self.case_sensitive:
            haystack, needles = content, self.keywords
        else:
            haystack, needles = content.lower(), [k.lower() for k in self.keywords]

        found = any(k in haystack for k in needles)
        passed = found if self.mode == "include" else not found
        return ValidationResult.valid() if passed else ValidationResult.invalid(self.description)


class LengthValidator(Validator):

    def __init__(
        self,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        description: Optional[str] = None,
    ):
        if min_length is None and max_length is None:
            raise ValueError("LengthValidator needs min_length, max_length or both")
        self.min_length = min_length
        self.max_length = max_length
        super().__init__(description)

    def default_description(self) -> str:
        if self.min_length is not None and self.max_length is not None:
            constraint = f"between {self.min_length} and {self.max_length}"
        elif self.min_length is not None:
            constraint = f"at least {self.min_length}"
        else:
            constraint = f"at most {self.max_length}"
        return f"Content length must be {constraint} characters"

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        length = len(content)
        too_short = self.min_length is not None and length < self.min_length
        too_long = self.max_length is not None and length > self.max_length
        if too_short or too_long:
            return ValidationResult.invalid(f"{self.description} (current: {length})")
        return ValidationResult.valid()


class JsonValidator(Validator):
    """Content must parse as JSON."""

    def default_description(self) -> str:
        return "Result must be valid JSON"

    async def validate(self, content: str, session: Optional["Session"] = None) -> ValidationResult:
        try:
            json.loads(content)
        except ValueError as e:
            return ValidationResult.invalid(f"{self.description}: {e}")
        return ValidationResult.valid()
