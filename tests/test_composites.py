"""Tests for Sequence, Loop and Subroutine."""
import pytest

from context.session import Session
from core.errors import ExhaustionError
from models.schemas import Message, MessageRole, RuleCondition
from sources import ListSource
from templates import Assistant, Loop, Sequence, Subroutine, System, Transform, User


def bump(key: str = "count"):
    return Transform(lambda s: s.with_var(key, s.get_var(key, 0) + 1))


@pytest.mark.asyncio
class TestSequence:
    async def test_scenario_system_user_assistant(self, empty_session):
        session = await Sequence([System("S"), User("hi"), Assistant("ok")]).execute(empty_session)
        assert [(m.role, m.content) for m in session.messages] == [
            (MessageRole.SYSTEM, "S"),
            (MessageRole.USER, "hi"),
            (MessageRole.ASSISTANT, "ok"),
        ]
        session.validate()

    async def test_empty_sequence_is_identity(self, ada_session):
        assert await Sequence().execute(ada_session) is ada_session

    async def test_add_chains(self, empty_session):
        seq = Sequence().add(User("a")).add(User("b"))
        assert len(seq) == 2
        session = await seq.execute(empty_session)
        assert [m.content for m in session.messages] == ["a", "b"]

    async def test_add_rejects_non_templates(self):
        with pytest.raises(TypeError):
            Sequence().add("not a template")

    async def test_input_session_untouched(self, empty_session):
        await Sequence([User("a"), bump()]).execute(empty_session)
        assert len(empty_session) == 0
        assert empty_session.vars == {}


@pytest.mark.asyncio
class TestLoop:
    async def test_stops_when_condition_turns_false(self, empty_session):
        loop = Loop(bump(), loop_if=lambda s: s.get_var("count", 0) < 3, max_iterations=10)
        session = await loop.execute(empty_session)
        assert session.get_var("count") == 3

    async def test_never_false_runs_max_iterations(self, empty_session):
        loop = Loop(bump(), loop_if=lambda s: True, max_iterations=7)
        session = await loop.execute(empty_session)
        assert session.get_var("count") == 7

    async def test_condition_checked_before_first_iteration(self, empty_session):
        session = await Loop(bump(), loop_if=False).execute(empty_session)
        assert session is empty_session

    async def test_default_max_iterations(self, empty_session):
        session = await Loop(bump(), loop_if=True).execute(empty_session)
        assert session.get_var("count") == 100

    async def test_rule_condition(self):
        loop = Loop(bump("turns"), loop_if=RuleCondition(field="turns", operator="lt", value=4))
        session = await loop.execute(Session.create(vars={"turns": 1}))
        assert session.get_var("turns") == 4

    async def test_list_body_and_conversation(self, empty_session):
        replies = ListSource(["one", "two", "bye"])
        loop = Loop(
            [User(replies), Assistant("noted")],
            loop_if=lambda s: s.get_last_message() is None or "bye" not in _last_user(s),
        )
        session = await loop.execute(empty_session)
        assert [m.content for m in session.get_messages_by_type("user")] == ["one", "two", "bye"]
        assert len(session.get_messages_by_type("assistant")) == 3

    async def test_body_error_aborts(self, empty_session):
        loop = Loop(User(ListSource(["only"])), loop_if=True, max_iterations=5)
        with pytest.raises(ExhaustionError):
            await loop.execute(empty_session)


def _last_user(session: Session) -> str:
    users = session.get_messages_by_type("user")
    return users[-1].content if users else ""


class TestLoopConstruction:
    def test_max_iterations_positive(self):
        with pytest.raises(ValueError):
            Loop(bump(), loop_if=True, max_iterations=0)

    def test_loop_if_is_required(self):
        with pytest.raises(TypeError):
            Loop(bump())


@pytest.mark.asyncio
class TestSubroutine:
    async def test_default_inherits_and_merges(self, ada_session):
        body = Sequence([Assistant("inner reply"), Transform(lambda s: s.with_var("topic", "math"))])
        result = await Subroutine(body).execute(ada_session)

        assert [m.content for m in result.messages] == [
            "You are a helpful tutor.", "Hi, I'm Ada.", "inner reply",
        ]
        assert result.get_var("topic") == "math"
        assert result.get_var("name") == "Ada"

    async def test_child_sees_parent_vars(self, ada_session):
        result = await Subroutine(Assistant("Hi {{name}}")).execute(ada_session)
        assert result.get_last_message().content == "Hi Ada"

    async def test_isolated_without_retention_leaves_parent_unchanged(self, ada_session):
        body = Sequence([
            System("inner system"),
            User("inner question"),
            Transform(lambda s: s.with_var("name", "Grace").with_var("secret", 1)),
        ])
        result = await Subroutine(body, isolated_context=True, retain_messages=False).execute(ada_session)

        assert result.messages == ada_session.messages
        assert result.vars == ada_session.vars

    async def test_isolated_child_starts_empty(self, ada_session):
        seen = {}

        def record(session):
            seen["messages"] = len(session)
            seen["vars"] = session.vars.to_dict()
            return session

        await Subroutine(Transform(record), isolated_context=True).execute(ada_session)
        assert seen == {"messages": 0, "vars": {}}

    async def test_isolated_retains_messages_but_not_vars(self, ada_session):
        body = Sequence([Assistant("from child"), bump()])
        result = await Subroutine(body, isolated_context=True).execute(ada_session)
        assert result.get_last_message().content == "from child"
        assert len(result) == 3
        assert not result.has_var("count")

    async def test_no_retention_keeps_vars_only(self, ada_session):
        body = Sequence([Assistant("hidden"), bump()])
        result = await Subroutine(body, retain_messages=False).execute(ada_session)
        assert len(result) == len(ada_session)
        assert result.get_var("count") == 1

    async def test_custom_init_and_squash(self, ada_session):
        def init(parent):
            return Session.create(vars={"question": parent.get_last_message().content})

        async def squash(parent, child):
            return parent.add_message(Message.assistant(f"summary: {child.get_last_message().content}"))

        body = Assistant("answered {{question}}")
        result = await Subroutine(body, init_with=init, squash_with=squash, id="qa").execute(ada_session)
        assert result.get_last_message().content == "summary: answered Hi, I'm Ada."
        assert len(result) == 3

    async def test_parent_untouched(self, ada_session):
        await Subroutine(Sequence([Assistant("x"), bump()])).execute(ada_session)
        assert len(ada_session) == 2
        assert not ada_session.has_var("count")
