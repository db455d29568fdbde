"""Tests for Vars / Attrs records and the message models."""
import json

import pytest
from pydantic import BaseModel

from models.records import Attrs, Vars
from models.schemas import (
    GenerationOptions, Message, MessageRole, ModelOutput, ToolCall, ValidationResult,
)


class TestVars:
    def test_empty(self):
        assert len(Vars()) == 0
        assert Vars() == {}

    def test_from_mapping_and_kwargs(self):
        v = Vars({"a": 1}, b=2)
        assert v["a"] == 1
        assert v.get("b") == 2
        assert v.get("missing", "x") == "x"

    def test_input_dict_is_copied(self):
        source = {"name": "Ada"}
        v = Vars(source)
        source["name"] = "Grace"
        source["extra"] = True
        assert v["name"] == "Ada"
        assert "extra" not in v

    def test_with_var_returns_new_record(self):
        original = Vars({"count": 1})
        updated = original.with_var("count", 2)
        assert original["count"] == 1
        assert updated["count"] == 2
        assert isinstance(updated, Vars)

    def test_patch_merges(self):
        original = Vars({"a": 1, "b": 2})
        patched = original.patch({"b": 3}, c=4)
        assert patched == {"a": 1, "b": 3, "c": 4}
        assert original == {"a": 1, "b": 2}

    def test_without(self):
        assert Vars({"a": 1, "b": 2}).without("a") == {"b": 2}

    def test_to_dict_is_plain(self):
        d = Vars({"a": 1}).to_dict()
        assert type(d) is dict
        assert d == {"a": 1}

    def test_no_item_assignment(self):
        with pytest.raises(TypeError):
            Vars()["a"] = 1

    def test_vars_and_attrs_are_distinct(self):
        assert Vars({"a": 1}) != Attrs({"a": 1})
        assert Vars({"a": 1}) == Vars({"a": 1})
        assert Attrs({"a": 1}) == {"a": 1}


class TestRecordsInPydantic:
    class Holder(BaseModel):
        vars: Vars = Vars()

    def test_validates_from_dict(self):
        h = self.Holder(vars={"x": 1})
        assert isinstance(h.vars, Vars)
        assert h.vars["x"] == 1

    def test_serializes_to_plain_dict(self):
        dumped = self.Holder(vars={"x": 1}).model_dump()
        assert dumped == {"vars": {"x": 1}}
        assert type(dumped["vars"]) is dict

    def test_rejects_wrong_brand(self):
        with pytest.raises(ValueError):
            self.Holder(vars=Attrs({"x": 1}))


class TestMessage:
    def test_role_constructors(self):
        assert Message.system("s").role == MessageRole.SYSTEM
        assert Message.user("u").role == MessageRole.USER
        assert Message.assistant("a").role == MessageRole.ASSISTANT

    def test_attrs_default_empty(self):
        msg = Message.user("hi")
        assert isinstance(msg.attrs, Attrs)
        assert len(msg.attrs) == 0

    def test_frozen(self):
        msg = Message.user("hi")
        with pytest.raises(Exception):
            msg.content = "changed"

    def test_derivations_do_not_mutate(self):
        msg = Message.user("hi", attrs={"source": "cli"})
        changed = msg.with_content("bye").expand_attrs({"lang": "en"})
        assert msg.content == "hi"
        assert msg.attrs == {"source": "cli"}
        assert changed.content == "bye"
        assert changed.attrs == {"source": "cli", "lang": "en"}
        assert changed.role == MessageRole.USER

    def test_with_attrs_replaces(self):
        msg = Message.user("hi", attrs={"a": 1}).with_attrs({"b": 2})
        assert msg.attrs == {"b": 2}

    def test_assistant_tool_calls(self):
        call = ToolCall(name="lookup", arguments={"q": "weather"}, id="call_1")
        msg = Message.assistant("", tool_calls=[call])
        assert msg.tool_calls == (call,)

    def test_tool_result_content_is_json(self):
        msg = Message.tool_result({"temp": 21}, tool_call_id="call_1")
        assert msg.role == MessageRole.TOOL_RESULT
        assert json.loads(msg.content) == {"temp": 21}
        assert msg.attrs["tool_call_id"] == "call_1"

    def test_dump_uses_role_value(self):
        assert Message.user("hi").model_dump()["role"] == "user"

    def test_tool_call_gets_generated_id(self):
        assert ToolCall(name="x").id.startswith("call_")


class TestSmallModels:
    def test_validation_result_helpers(self):
        assert ValidationResult.valid().is_valid
        bad = ValidationResult.invalid("be shorter")
        assert not bad.is_valid
        assert bad.instruction == "be shorter"

    def test_model_output_defaults(self):
        out = ModelOutput(content="hello")
        assert out.tool_calls is None
        assert out.metadata == {}

    def test_generation_options_copy(self):
        base = GenerationOptions(model="m1")
        changed = base.model_copy(update={"temperature": 0.1})
        assert base.temperature is None
        assert changed.model == "m1"
        assert changed.temperature == 0.1
