"""
Parallel — concurrent generation with a selectable fan-in.

Fan-out
    Every (source × repetition) runs concurrently via asyncio.gather against
    the same input session. Each branch yields one assistant message on its
    own branch session; branches never see each other's output.

Fan-in (``strategy``)
    "keep_all"   append every successful branch's message, declaration order
    "best"       append only the highest-scoring message; ``scoring`` is
                 required, ties keep the earliest branch
    callable     ``strategy(session, branch_sessions) -> Session``

Partial failure
    fail_fast=False  failed branches are logged and dropped; if every branch
                     fails, the first error is raised
    fail_fast=True   the first branch error propagates and the remaining
                     branches are cancelled

A GovernorError from any branch is always raised.
"""
from __future__ import annotations

import asyncio
import inspect
import structlog
from typing import Awaitable, Callable, Optional, Union

from context.session import Session
from core.errors import GovernorError
from models.schemas import Message, ModelOutput
from sources.base import Source
from templates.base import Template

logger = structlog.get_logger()

ScoringFn = Callable[[Message, Session], Union[float, Awaitable[float]]]
AggregateFn = Callable[[Session, list[Session]], Union[Session, Awaitable[Session]]]
Strategy = Union[str, AggregateFn]

STRATEGIES = ("keep_all", "best")


class Parallel(Template):

    def __init__(
        self,
        sources: Optional[list[Source]] = None,
        strategy: Strategy = "keep_all",
        scoring: Optional[ScoringFn] = None,
        fail_fast: bool = False,
    ):
        self._sources: list[tuple[Source, int]] = []
        for source in sources or []:
            self.add_source(source)
        self.fail_fast = fail_fast
        self.strategy = strategy
        self.scoring = scoring
        self._check_strategy()

    def _check_strategy(self) -> None:
        if callable(self.strategy):
            return
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES} or a callable, got {self.strategy!r}")
        if self.strategy == "best" and self.scoring is None:
            raise ValueError("the 'best' strategy needs a scoring function")

    def add_source(self, source: Source, repetitions: int = 1) -> "Parallel":
        if not isinstance(source, Source):
            raise TypeError(f"expected a Source, got {type(source).__name__}")
        if repetitions < 1:
            raise ValueError(f"repetitions must be at least 1, got {repetitions}")
        self._sources.append((source, repetitions))
        return self

    def set_strategy(self, strategy: Strategy, scoring: Optional[ScoringFn] = None) -> "Parallel":
        self.strategy = strategy
        if scoring is not None:
            self.scoring = scoring
        self._check_strategy()
        return self

    @property
    def branch_count(self) -> int:
        return sum(reps for _, reps in self._sources)

    # ── Fan-out ───────────────────────────────────────

    async def _branch(self, source: Source, session: Session) -> Session:
        result = await source.get_content(session)
        output = result if isinstance(result, ModelOutput) else ModelOutput(content=result)
        message = Message.assistant(
            output.content,
            tool_calls=output.tool_calls,
            structured_content=output.structured_output,
        )
        # Built without add_message so only the kept branches are echoed
        branch = session.model_copy(update={"messages": session.messages + (message,)})
        return branch.with_vars(output.metadata) if output.metadata else branch

    async def _run(self, session: Session) -> Session:
        jobs = [source for source, reps in self._sources for _ in range(reps)]
        if not jobs:
            return session

        tasks = [asyncio.ensure_future(self._branch(source, session)) for source in jobs]
        if self.fail_fast:
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                pending = [task for task in tasks if not task.done()]
                for task in pending:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                logger.error("parallel_fail_fast", branches=len(jobs), cancelled=len(pending))
                raise
        results = await asyncio.gather(*tasks, return_exceptions=True)

        # The call governor stops the whole run, never just one branch
        for item in results:
            if isinstance(item, GovernorError):
                raise item

        branches: list[Session] = []
        errors: list[BaseException] = []
        for index, item in enumerate(results):
            if isinstance(item, BaseException):
                logger.error(
                    "parallel_branch_failed",
                    branch=index,
                    source=type(jobs[index]).__name__,
                    error=str(item),
                )
                errors.append(item)
            else:
                branches.append(item)

        if not branches:
            raise errors[0]

        logger.info("parallel_completed", branches=len(jobs), succeeded=len(branches))
        return await self._aggregate(session, branches)

    # ── Fan-in ────────────────────────────────────────

    async def _aggregate(self, session: Session, branches: list[Session]) -> Session:
        if callable(self.strategy):
            result = self.strategy(session, branches)
            if inspect.isawaitable(result):
                result = await result
            return result

        if self.strategy == "keep_all":
            for branch in branches:
                session = session.add_message(branch.messages[-1]).with_vars(branch.vars)
            return session

        best_branch: Optional[Session] = None
        best_score = float("-inf")
        for branch in branches:
            score = self.scoring(branch.messages[-1], session)
            if inspect.isawaitable(score):
                score = await score
            if best_branch is None or score > best_score:
                best_branch, best_score = branch, score
        logger.debug("parallel_best_selected", score=best_score)
        return session.add_message(best_branch.messages[-1]).with_vars(best_branch.vars)
