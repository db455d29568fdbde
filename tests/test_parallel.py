"""Tests for the Parallel fan-out / fan-in template."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from context.session import Session
from core.errors import GenerationError, GovernorError
from models.schemas import Message, ModelOutput
from sources import CallbackSource, ListSource, LlmSource, StaticSource
from templates import Parallel


def failing_source(message: str = "branch failed") -> CallbackSource:
    def fail(session):
        raise GenerationError(message)
    return CallbackSource(fail)


@pytest.mark.asyncio
class TestParallelKeepAll:
    async def test_appends_every_branch_in_order(self, ada_session):
        parallel = Parallel([StaticSource("a"), StaticSource("b")])
        result = await parallel.execute(ada_session)
        assert [m.content for m in result.messages[-2:]] == ["a", "b"]
        assert len(result) == len(ada_session) + 2

    async def test_repetitions(self, empty_session):
        parallel = Parallel().add_source(ListSource(["x", "y", "z"]), repetitions=3)
        assert parallel.branch_count == 3
        result = await parallel.execute(empty_session)
        assert sorted(m.content for m in result.messages) == ["x", "y", "z"]

    async def test_branches_see_same_input(self, ada_session):
        seen = []

        async def record(session):
            seen.append(len(session))
            await asyncio.sleep(0)
            return "ok"

        await Parallel([CallbackSource(record), CallbackSource(record)]).execute(ada_session)
        assert seen == [2, 2]

    async def test_metadata_merged(self, empty_session):
        parallel = Parallel([CallbackSource(lambda s: ModelOutput(content="r", metadata={"score": 1}))])
        result = await parallel.execute(empty_session)
        assert result.get_var("score") == 1

    async def test_no_sources_is_identity(self, ada_session):
        assert await Parallel().execute(ada_session) is ada_session


@pytest.mark.asyncio
class TestParallelBest:
    async def test_highest_score_wins(self, empty_session):
        parallel = Parallel(
            [StaticSource("short"), StaticSource("much longer reply"), StaticSource("mid size")],
            strategy="best",
            scoring=lambda message, session: len(message.content),
        )
        result = await parallel.execute(empty_session)
        assert [m.content for m in result.messages] == ["much longer reply"]

    async def test_tie_keeps_first(self, empty_session):
        parallel = Parallel(
            [StaticSource("first"), StaticSource("second")],
            strategy="best",
            scoring=lambda message, session: 1.0,
        )
        result = await parallel.execute(empty_session)
        assert result.get_last_message().content == "first"

    async def test_async_scoring(self, empty_session):
        async def score(message, session):
            return -len(message.content)

        parallel = Parallel([StaticSource("tiny"), StaticSource("enormous")], strategy="best", scoring=score)
        result = await parallel.execute(empty_session)
        assert result.get_last_message().content == "tiny"


@pytest.mark.asyncio
class TestParallelCustomStrategy:
    async def test_custom_aggregate(self, empty_session):
        def join_all(session, branches):
            text = " | ".join(b.get_last_message().content for b in branches)
            return session.add_message(Message.assistant(text))

        parallel = Parallel([StaticSource("a"), StaticSource("b")], strategy=join_all)
        result = await parallel.execute(empty_session)
        assert result.get_last_message().content == "a | b"
        assert len(result) == 1


@pytest.mark.asyncio
class TestParallelFailures:
    async def test_failed_branch_dropped(self, empty_session):
        parallel = Parallel([StaticSource("good"), failing_source()])
        result = await parallel.execute(empty_session)
        assert [m.content for m in result.messages] == ["good"]

    async def test_all_failed_raises(self, empty_session):
        parallel = Parallel([failing_source("one"), failing_source("two")])
        with pytest.raises(GenerationError, match="one"):
            await parallel.execute(empty_session)

    async def test_fail_fast_propagates(self, empty_session):
        finished = []

        async def slow(session):
            await asyncio.sleep(0.05)
            finished.append("slow")
            return "late"

        parallel = Parallel([failing_source(), CallbackSource(slow)], fail_fast=True)
        with pytest.raises(GenerationError):
            await parallel.execute(empty_session)
        await asyncio.sleep(0.1)
        assert finished == []

    async def test_call_limit_is_fatal_without_fail_fast(self, debug_mode, empty_session):
        generate = AsyncMock(return_value=ModelOutput(content="reply"))
        parallel = Parallel().add_source(LlmSource(generate=generate).max_calls(1), repetitions=2)
        with pytest.raises(GovernorError):
            await parallel.execute(empty_session)


class TestParallelConstruction:
    def test_best_needs_scoring(self):
        with pytest.raises(ValueError):
            Parallel(strategy="best")

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            Parallel(strategy="vote")

    def test_set_strategy(self):
        parallel = Parallel().set_strategy("best", scoring=lambda m, s: 0)
        assert parallel.strategy == "best"

    def test_add_source_validation(self):
        with pytest.raises(TypeError):
            Parallel().add_source("text")
        with pytest.raises(ValueError):
            Parallel().add_source(StaticSource("x"), repetitions=0)
