"""
Composite templates — Sequence, Loop and Subroutine.

Loop convention: ``loop_if`` answers "run the body again?". True means
continue, false means stop. It is evaluated before every iteration,
including the first, so a loop whose condition starts false never runs its
body. ``max_iterations`` (default 100) bounds runaway loops.

Subroutine runs its body on a child session and folds the result back:

    parent ──init_with──▶ child ──body──▶ child' ──squash_with(parent, child')──▶ parent'

Defaults:
  init_with     child = parent's messages + vars   (empty when isolated_context)
  squash_with   append child's new messages        (only when retain_messages)
                merge child's vars into parent's   (only when not isolated_context)
"""
from __future__ import annotations

import inspect
import structlog
from typing import Any, Awaitable, Callable, Optional, Union

from context.session import Session
from templates.base import Template
from utils.conditions import ConditionLike, as_predicate

logger = structlog.get_logger()

DEFAULT_MAX_ITERATIONS = 100

InitFn = Callable[[Session], Union[Session, Awaitable[Session]]]
SquashFn = Callable[[Session, Session], Union[Session, Awaitable[Session]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def as_body(body: Union[Template, list[Template]]) -> Template:
    if isinstance(body, Template):
        return body
    if isinstance(body, list):
        return Sequence(body)
    raise TypeError(f"body must be a Template or a list of Templates, got {type(body).__name__}")


# ──────────────────────────────────────────────────────
#  Sequence
# ──────────────────────────────────────────────────────

class Sequence(Template):
    """Run children in order, threading the session through."""

    def __init__(self, templates: Optional[list[Template]] = None):
        self.templates: list[Template] = []
        for template in templates or []:
            self.add(template)

    def add(self, template: Template) -> "Sequence":
        if not isinstance(template, Template):
            raise TypeError(f"expected a Template, got {type(template).__name__}")
        self.templates.append(template)
        return self

    def __len__(self) -> int:
        return len(self.templates)

    async def _run(self, session: Session) -> Session:
        for template in self.templates:
            session = await template.execute(session)
        return session

    def __repr__(self) -> str:
        return f"Sequence({self.templates!r})"


# ──────────────────────────────────────────────────────
#  Loop
# ──────────────────────────────────────────────────────

class Loop(Template):

    def __init__(
        self,
        body: Union[Template, list[Template]],
        loop_if: ConditionLike,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.body = as_body(body)
        self._loop_if = as_predicate(loop_if)
        self.max_iterations = max_iterations

    async def _run(self, session: Session) -> Session:
        iterations = 0
        while iterations < self.max_iterations:
            if not await self._loop_if(session):
                logger.debug("loop_condition_false", iterations=iterations)
                return session
            session = await self.body.execute(session)
            iterations += 1

        logger.warning("loop_max_iterations_reached", max_iterations=self.max_iterations)
        return session


# ──────────────────────────────────────────────────────
#  Subroutine
# ──────────────────────────────────────────────────────

class Subroutine(Template):

    def __init__(
        self,
        body: Union[Template, list[Template]],
        init_with: Optional[InitFn] = None,
        squash_with: Optional[SquashFn] = None,
        retain_messages: bool = True,
        isolated_context: bool = False,
        id: Optional[str] = None,
    ):
        self.body = as_body(body)
        self._init_with = init_with
        self._squash_with = squash_with
        self.retain_messages = retain_messages
        self.isolated_context = isolated_context
        self.id = id

    def _default_init(self, parent: Session) -> Session:
        if self.isolated_context:
            return Session.create(print=parent.print)
        return Session(messages=parent.messages, vars=parent.vars, print=parent.print)

    def _default_squash(self, parent: Session, child: Session) -> Session:
        result = parent
        if self.retain_messages:
            # Children start from the parent's message objects; anything else is new
            inherited = {id(m) for m in parent.messages}
            new_messages = tuple(m for m in child.messages if id(m) not in inherited)
            result = result.model_copy(update={"messages": result.messages + new_messages})
        if not self.isolated_context:
            result = result.with_vars(child.vars)
        return result

    async def _run(self, session: Session) -> Session:
        init = self._init_with or self._default_init
        child = await _maybe_await(init(session))

        child = await self.body.execute(child)

        squash = self._squash_with or self._default_squash
        result = await _maybe_await(squash(session, child))
        logger.debug(
            "subroutine_completed",
            subroutine_id=self.id,
            messages_added=len(result.messages) - len(session.messages),
        )
        return result
