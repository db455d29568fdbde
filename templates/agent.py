"""
Agent — fluent builder for template trees.

Every call appends one node to an internal Sequence and returns the same
Agent, so a conversation reads top to bottom:

    agent = (
        Agent.create()
        .system("You are a helpful assistant.")
        .loop(
            lambda a: a.user().assistant(),
            loop_if=lambda s: s.get_last_message().content != "bye",
        )
    )
    session = await agent.execute()

Nested bodies (loop, conditional branches, subroutine, sequence) are given
as a Template, a list of Templates, or a function that receives a fresh
Agent and returns it.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Union

from context.session import Session
from sources.base import Source
from templates.base import Template
from templates.composite import DEFAULT_MAX_ITERATIONS, Loop, Sequence, Subroutine
from templates.parallel import Parallel
from templates.primitives import Assistant, Conditional, SessionFn, System, Transform, User
from utils.conditions import ConditionLike

Body = Union[Template, list[Template], Callable[["Agent"], Any]]


class Agent(Template):

    def __init__(self, templates: Optional[list[Template]] = None):
        self._root = Sequence(templates)

    @classmethod
    def create(cls) -> "Agent":
        return cls()

    # ── Building ──────────────────────────────────────

    def add(self, template: Template) -> "Agent":
        self._root.add(template)
        return self

    def system(self, content: str) -> "Agent":
        return self.add(System(content))

    def user(self, content: Union[str, Source, None] = None, **options: Any) -> "Agent":
        return self.add(User(content, **options))

    def assistant(self, content: Union[str, Source, None] = None, **options: Any) -> "Agent":
        return self.add(Assistant(content, **options))

    def transform(self, fn: Union[SessionFn, list[SessionFn]]) -> "Agent":
        return self.add(Transform(fn))

    def conditional(
        self,
        condition: ConditionLike,
        then_branch: Body,
        else_branch: Optional[Body] = None,
    ) -> "Agent":
        return self.add(Conditional(
            condition,
            _build_body(then_branch),
            _build_body(else_branch) if else_branch is not None else None,
        ))

    def loop(
        self,
        body: Body,
        loop_if: ConditionLike,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> "Agent":
        """Repeat ``body`` while ``loop_if`` is true (checked before each pass)."""
        return self.add(Loop(_build_body(body), loop_if, max_iterations=max_iterations))

    def loop_forever(self, body: Body, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> "Agent":
        return self.add(Loop(_build_body(body), True, max_iterations=max_iterations))

    def subroutine(self, body: Body, **options: Any) -> "Agent":
        return self.add(Subroutine(_build_body(body), **options))

    def sequence(self, body: Body) -> "Agent":
        return self.add(_build_body(body))

    def parallel(self, parallel: Union[Parallel, Callable[[Parallel], Parallel]]) -> "Agent":
        if isinstance(parallel, Parallel):
            return self.add(parallel)
        built = parallel(Parallel())
        if not isinstance(built, Parallel):
            raise TypeError("parallel builder function must return the Parallel it was given")
        return self.add(built)

    def build(self) -> Template:
        return self._root

    def __len__(self) -> int:
        return len(self._root)

    # ── Execution ─────────────────────────────────────

    async def _run(self, session: Session) -> Session:
        return await self._root.execute(session)


def _build_body(body: Body) -> Template:
    if isinstance(body, Agent):
        return body.build()
    if isinstance(body, Template):
        return body
    if isinstance(body, list):
        return Sequence(body)
    if callable(body):
        built = body(Agent())
        if isinstance(built, Agent):
            return built.build()
        if isinstance(built, Template):
            return built
        raise TypeError(
            f"builder function must return an Agent or Template, got {type(built).__name__}"
        )
    raise TypeError(f"body must be a Template, list, Agent or builder function, got {type(body).__name__}")
