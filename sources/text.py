"""Sources that produce text without a model: static, random, list and callback."""
from __future__ import annotations

import inspect
import random
import structlog
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from core.errors import ExhaustionError
from models.schemas import ModelOutput
from sources.base import Content, Source
from utils.interpolation import interpolate

if TYPE_CHECKING:
    from context.session import Session
    from validation.base import Validator

logger = structlog.get_logger()


class StaticSource(Source):
    """A fixed string, interpolated against session vars on every call."""

    def __init__(
        self,
        content: str,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        super().__init__(validator=validator, max_attempts=max_attempts, raise_error=raise_error)
        self.content = content

    async def _produce(self, session: "Session") -> str:
        return interpolate(self.content, session.vars)


class RandomSource(Source):
    """Picks one of ``contents`` at random on every call."""

    def __init__(
        self,
        contents: list[str],
        rng: Optional[random.Random] = None,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        if not contents:
            raise ValueError("RandomSource needs at least one entry")
        super().__init__(validator=validator, max_attempts=max_attempts, raise_error=raise_error)
        self.contents = list(contents)
        self._rng = rng or random.Random()

    async def _produce(self, session: "Session") -> str:
        return interpolate(self._rng.choice(self.contents), session.vars)


class ListSource(Source):
    """
    Returns the next item of ``contents`` on every call.

    Once every item has been returned:
      - cycle=True      start again from the first item
      - sentinel set    return the sentinel on every further call
      - otherwise       raise ExhaustionError
    """

    def __init__(
        self,
        contents: list[str],
        cycle: bool = False,
        sentinel: Optional[str] = None,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        if not contents:
            raise ValueError("ListSource needs at least one entry")
        if cycle and sentinel is not None:
            raise ValueError("ListSource cannot both cycle and return a sentinel")
        super().__init__(validator=validator, max_attempts=max_attempts, raise_error=raise_error)
        self.contents = list(contents)
        self.cycle = cycle
        self.sentinel = sentinel
        self._index = 0

    @property
    def index(self) -> int:
        return self._index

    def at_end(self) -> bool:
        return not self.cycle and self._index >= len(self.contents)

    def reset(self) -> None:
        self._index = 0

    async def _produce(self, session: "Session") -> str:
        if self._index >= len(self.contents):
            if self.cycle:
                self._index = 0
            elif self.sentinel is not None:
                return self.sentinel
            else:
                logger.error("list_source_exhausted", size=len(self.contents))
                raise ExhaustionError(
                    f"ListSource exhausted: all {len(self.contents)} items have been used"
                )

        item = self.contents[self._index]
        self._index += 1
        return interpolate(item, session.vars)


CallbackFn = Callable[["Session"], Union[Content, Awaitable[Content]]]


class CallbackSource(Source):
    """Delegates to ``fn(session)``; sync or async, returning str or ModelOutput."""

    def __init__(
        self,
        fn: CallbackFn,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        super().__init__(validator=validator, max_attempts=max_attempts, raise_error=raise_error)
        self._fn = fn

    async def _produce(self, session: "Session") -> Content:
        result: Any = self._fn(session)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, (str, ModelOutput)):
            raise TypeError(
                f"CallbackSource callback must return str or ModelOutput, got {type(result).__name__}"
            )
        return result
