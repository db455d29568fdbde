"""
Core data models for Trailkit.
These are the universal types shared across sessions, sources and templates.
"""
from __future__ import annotations

import json
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from models.records import Attrs


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


# ──────────────────────────────────────────────────────────────
#  Tool calls — opaque records passed through the message model
# ──────────────────────────────────────────────────────────────

class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arguments: dict[str, Any] = {}
    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:16]}")


class ToolResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    result: Any = None


# ──────────────────────────────────────────────────────────────
#  Message — a single entry in a session transcript
# ──────────────────────────────────────────────────────────────

class Message(BaseModel):
    """One conversation turn. Never mutated; derive a new one instead."""
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = ""
    attrs: Attrs = Field(default_factory=Attrs)
    structured_content: Optional[dict[str, Any]] = None
    tool_calls: Optional[tuple[ToolCall, ...]] = None

    @field_serializer("role")
    def _serialize_role(self, role: MessageRole) -> str:
        return role.value

    @classmethod
    def system(cls, content: str, attrs: Any = None) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content, attrs=attrs)

    @classmethod
    def user(cls, content: str, attrs: Any = None) -> "Message":
        return cls(role=MessageRole.USER, content=content, attrs=attrs)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: Optional[list[ToolCall]] = None,
        structured_content: Optional[dict[str, Any]] = None,
        attrs: Any = None,
    ) -> "Message":
        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
            structured_content=structured_content,
            attrs=attrs,
        )

    @classmethod
    def tool_result(cls, result: Any, tool_call_id: str, attrs: Any = None) -> "Message":
        """Wrap a tool's return value; the content is its JSON form."""
        content = result if isinstance(result, str) else json.dumps(result, default=str)
        merged = Attrs._coerce(attrs).with_var("tool_call_id", tool_call_id)
        return cls(role=MessageRole.TOOL_RESULT, content=content, attrs=merged)

    def with_content(self, content: str) -> "Message":
        return self.model_copy(update={"content": content})

    def with_attrs(self, attrs: Any) -> "Message":
        return self.model_copy(update={"attrs": Attrs._coerce(attrs)})

    def expand_attrs(self, values: dict[str, Any]) -> "Message":
        return self.model_copy(update={"attrs": self.attrs.patch(values)})

    def with_structured_content(self, structured: Optional[dict[str, Any]]) -> "Message":
        return self.model_copy(update={"structured_content": structured})


# ──────────────────────────────────────────────────────────────
#  Generation — what a model backend returns and how it is called
# ──────────────────────────────────────────────────────────────

class ModelOutput(BaseModel):
    """Assistant-shaped result of a generation call."""
    content: str = ""
    tool_calls: Optional[list[ToolCall]] = None
    tool_results: Optional[list[ToolResult]] = None
    metadata: dict[str, Any] = {}                 # merged into session vars
    structured_output: Optional[dict[str, Any]] = None


class GenerationOptions(BaseModel):
    """
    Provider settings for one generation source.
    Unset fields fall back to the ``llm`` section of the settings.
    """
    model_config = ConfigDict(frozen=True)

    provider: Optional[str] = None                # openai | anthropic
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    tools: dict[str, dict[str, Any]] = {}         # name → JSON-schema tool definition
    tool_choice: Optional[Any] = None             # auto | required | none | {name: ...}
    response_schema: Optional[dict[str, Any]] = None  # JSON schema for structured output


# ──────────────────────────────────────────────────────────────
#  Validation result
# ──────────────────────────────────────────────────────────────

class ValidationResult(BaseModel):
    is_valid: bool
    instruction: Optional[str] = None             # how to fix the content, when invalid

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, instruction: str) -> "ValidationResult":
        return cls(is_valid=False, instruction=instruction)


# ──────────────────────────────────────────────────────────────
#  Rule Condition — declarative predicate over session vars
# ──────────────────────────────────────────────────────────────

class RuleCondition(BaseModel):
    field: str
    operator: str           # eq | neq | gt | gte | lt | lte | in | contains | regex | exists | not_exists
    value: Any = None
