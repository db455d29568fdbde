"""
Content Source — the retry / validation envelope shared by every source.

    get_content(session)
      → attempt 1: _produce(session)      → validator → ok? return
      → attempt 2: _produce(session + hint) → validator → ok? return
      → …
      → exhausted: raise ValidationError   (raise_error=True)
                   or return last content  (raise_error=False, warning logged)

The validator's instruction reaches the next attempt through a transient
session with a trailing guidance message. That session is only handed to
the producer; the caller's session and the returned transcript never
contain it.

Retries are driven by tenacity, the same library the generation engine
uses for transport retries.
"""
from __future__ import annotations

import copy
import structlog
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from core.errors import ValidationError
from models.schemas import Message, ModelOutput, ValidationResult

if TYPE_CHECKING:
    from context.session import Session
    from validation.base import Validator

logger = structlog.get_logger()

Content = Union[str, ModelOutput]


class _ContentRejected(Exception):
    """Raised inside an attempt when the validator rejects the content."""

    def __init__(self, content: Content, result: ValidationResult):
        super().__init__(result.instruction or "content rejected")
        self.content = content
        self.result = result


def content_text(content: Content) -> str:
    return content.content if isinstance(content, ModelOutput) else content


class Source(ABC):
    """
    Produces a string or a ModelOutput for the current session.

    Subclasses implement ``_produce``. The envelope around it is configured
    with ``validator``, ``max_attempts`` (default 1) and ``raise_error``
    (default True).
    """

    # Exceptions that consume an attempt instead of propagating at once
    retry_on: tuple[type[BaseException], ...] = (_ContentRejected,)

    def __init__(
        self,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.validator = validator
        self.max_attempts = max_attempts
        self.raise_error = raise_error

    @abstractmethod
    async def _produce(self, session: "Session") -> Content:
        ...

    # ── Configuration (returns configured copies) ─────

    def _clone(self, **changes: Any):
        clone = copy.copy(self)
        clone.__dict__.update(changes)
        return clone

    def with_validator(self, validator: "Validator"):
        return self._clone(validator=validator)

    def with_max_attempts(self, max_attempts: int):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        return self._clone(max_attempts=max_attempts)

    def with_raise_error(self, raise_error: bool):
        return self._clone(raise_error=raise_error)

    # ── Envelope ──────────────────────────────────────

    async def get_content(self, session: "Session") -> Content:
        source_name = type(self).__name__
        producer_session = session
        attempt_number = 0
        content: Content = ""

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                retry=retry_if_exception_type(self.retry_on),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    content = await self._produce(producer_session)
                    result = await self._check(content, session)
                    if not result.is_valid:
                        logger.warning(
                            "content_validation_failed",
                            source=source_name,
                            attempt=attempt_number,
                            max_attempts=self.max_attempts,
                            instruction=result.instruction,
                        )
                        producer_session = _with_feedback(session, result.instruction)
                        raise _ContentRejected(content, result)
        except _ContentRejected as rejected:
            return self._exhausted(rejected, attempt_number)

        return content

    async def _check(self, content: Content, session: "Session") -> ValidationResult:
        if self.validator is None:
            return ValidationResult.valid()
        return await self.validator.validate(content_text(content), session)

    def _exhausted(self, rejected: _ContentRejected, attempts: int) -> Content:
        instruction = rejected.result.instruction
        description = self.validator.description if self.validator else ""

        if self.raise_error:
            logger.error(
                "content_validation_exhausted",
                source=type(self).__name__,
                attempts=attempts,
                description=description,
            )
            raise ValidationError(
                f"{self.validator.error_message()} after {attempts} attempt(s)"
                + (f": {instruction}" if instruction else ""),
                instruction=instruction,
                attempts=attempts,
                description=description,
            )

        logger.warning(
            "validation_failed_returning_last",
            source=type(self).__name__,
            attempts=attempts,
            instruction=instruction,
        )
        return rejected.content


def _with_feedback(session: "Session", instruction: Optional[str]) -> "Session":
    """Session seen by the next attempt: the original plus a correction hint."""
    if not instruction:
        return session
    hint = Message.system(
        f"The previous response was rejected. {instruction}",
        attrs={"validation_feedback": True},
    )
    return session.model_copy(update={"messages": session.messages + (hint,)})
