"""
Error taxonomy for template execution.

  TrailError
    ├── StateError        session invariant violated (never recoverable)
    ├── ValidationError   content failed its validator after all attempts
    ├── ExhaustionError   a list source ran out of items
    ├── GovernorError     debug call-count ceiling exceeded
    └── GenerationError   the generation collaborator failed
"""
from __future__ import annotations

from typing import Optional


class TrailError(Exception):
    """Base class for every error raised by the engine."""


class StateError(TrailError):
    """A session failed validation."""


class ValidationError(TrailError):
    def __init__(
        self,
        message: str,
        instruction: Optional[str] = None,
        attempts: int = 0,
        description: str = "",
    ):
        super().__init__(message)
        self.instruction = instruction
        self.attempts = attempts
        self.description = description


class ExhaustionError(TrailError):
    """A ListSource has no more items and is not configured to cycle."""


class GovernorError(TrailError):
    def __init__(self, calls: int, limit: int):
        super().__init__(
            f"LlmSource call limit exceeded: {calls} calls made, limit is {limit}. "
            f"This usually means a loop never terminates. Raise the limit with "
            f"max_calls() or TRAILKIT_MAX_LLM_CALLS, or turn off debug mode."
        )
        self.calls = calls
        self.limit = limit


class GenerationError(TrailError):
    """The generation backend failed or returned something that is not an assistant reply."""
