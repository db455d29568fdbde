"""
Session — the immutable conversation state threaded through templates.

A Session is an ordered tuple of messages, a Vars record and a print flag.
Every operation returns a new Session; the old instance keeps its messages
and vars, so earlier states can be kept for testing or backtracking.

Invariants (checked on demand by ``validate()``, not on every append):
  - at least one message
  - at most one system message
  - a system message, if present, is the first message
"""
from __future__ import annotations

import json
import structlog
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.markup import escape

from core.errors import StateError
from models.records import Vars
from models.schemas import Message, MessageRole

logger = structlog.get_logger()

_console = Console()

_ECHO_LABELS = {
    MessageRole.SYSTEM: "[bold magenta]System:[/bold magenta]",
    MessageRole.USER: "[bold cyan]User:[/bold cyan]",
    MessageRole.ASSISTANT: "[bold yellow]Assistant:[/bold yellow]",
    MessageRole.TOOL_RESULT: "[dim]Tool result:[/dim]",
}


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()
    vars: Vars = Field(default_factory=Vars)
    print: bool = False                           # echo appended messages to the console

    @classmethod
    def create(
        cls,
        messages: Optional[list[Message]] = None,
        vars: Optional[Mapping[str, Any]] = None,
        print: bool = False,
    ) -> "Session":
        return cls(messages=tuple(messages or ()), vars=Vars(vars), print=print)

    def __len__(self) -> int:
        return len(self.messages)

    # ── Messages ──────────────────────────────────────

    def add_message(self, message: Message) -> "Session":
        """Return a new session with ``message`` appended."""
        if self.print:
            _echo(message)
        return self.model_copy(update={"messages": self.messages + (message,)})

    def get_last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def get_messages_by_type(self, role: MessageRole | str) -> list[Message]:
        role = MessageRole(role)
        return [m for m in self.messages if m.role == role]

    # ── Vars ──────────────────────────────────────────

    def get_var(self, key: str, default: Any = None) -> Any:
        return self.vars.get(key, default)

    def has_var(self, key: str) -> bool:
        return key in self.vars

    def with_var(self, key: str, value: Any) -> "Session":
        return self.model_copy(update={"vars": self.vars.with_var(key, value)})

    def with_vars(self, values: Mapping[str, Any]) -> "Session":
        """Merge ``values`` over the current vars."""
        return self.model_copy(update={"vars": self.vars.patch(values)})

    def replace_vars(self, values: Mapping[str, Any]) -> "Session":
        return self.model_copy(update={"vars": Vars(values)})

    def with_print(self, enabled: bool) -> "Session":
        return self.model_copy(update={"print": enabled})

    # ── Validation ────────────────────────────────────

    def validate(self) -> None:
        """Raise StateError if the session breaks a structural invariant."""
        if not self.messages:
            self._fail("Session must have at least one message")

        system_positions = [
            i for i, m in enumerate(self.messages) if m.role == MessageRole.SYSTEM
        ]
        if len(system_positions) > 1:
            self._fail("Only one system message is allowed")
        if system_positions and system_positions[0] != 0:
            self._fail("System message must be at the beginning")

    def _fail(self, reason: str) -> None:
        logger.error("session_invalid", reason=reason, message_count=len(self.messages))
        raise StateError(reason)

    # ── Serialization ─────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Plain record form: ``{messages, vars, print}``."""
        return {
            "messages": [m.model_dump() for m in self.messages],
            "vars": self.vars.to_dict(),
            "print": self.print,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        return cls.model_validate({
            "messages": tuple(data.get("messages") or ()),
            "vars": data.get("vars") or {},
            "print": bool(data.get("print", False)),
        })

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_dict(), default=str, **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "Session":
        return cls.from_dict(json.loads(text))


def _echo(message: Message) -> None:
    label = _ECHO_LABELS.get(message.role, message.role.value)
    _console.print(f"{label} {escape(message.content)}")
