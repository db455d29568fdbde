"""
Template primitives — the leaves of an execution tree.

  System       append one system message (static text, {{var}} interpolated)
  User         append one user message from a content source
  Assistant    append one assistant message from a content source
  Transform    derive a new session with plain functions; adds no message
  Conditional  run exactly one of two branches

Content is passed in one of three explicit forms:
  str      → StaticSource (interpolated against vars)
  Source   → used as-is, with its own validation / retry envelope
  None     → the role's default source (interactive input for User,
             an LlmSource for Assistant)
Anything else is rejected with TypeError. Generation options are never
guessed from a dict; wrap them in ``LlmSource(GenerationOptions(...))``.
"""
from __future__ import annotations

import inspect
import structlog
from typing import Any, Awaitable, Callable, Optional, Union

from context.session import Session
from models.schemas import Message, ModelOutput
from sources.base import Source
from sources.interactive import InteractiveSource
from sources.llm import LlmSource
from sources.text import StaticSource
from templates.base import Template
from utils.conditions import ConditionLike, as_predicate
from utils.interpolation import interpolate
from validation.base import Validator

logger = structlog.get_logger()

ExtractSpec = Union[bool, list[str], dict[str, str]]
SessionFn = Callable[[Session], Union[Session, Awaitable[Session]]]


def _resolve_source(
    content: Union[str, Source, None],
    default: Callable[[], Source],
    validator: Optional[Validator],
    max_attempts: Optional[int],
    raise_error: Optional[bool],
) -> Source:
    if content is None:
        source = default()
    elif isinstance(content, str):
        source = StaticSource(content)
    elif isinstance(content, Source):
        source = content
    else:
        raise TypeError(
            f"content must be a str, a Source or None, got {type(content).__name__}"
        )

    if validator is not None:
        source = source.with_validator(validator)
    if max_attempts is not None:
        source = source.with_max_attempts(max_attempts)
    if raise_error is not None:
        source = source.with_raise_error(raise_error)
    return source


# ──────────────────────────────────────────────────────
#  System
# ──────────────────────────────────────────────────────

class System(Template):

    def __init__(self, content: str):
        if not isinstance(content, str) or not content:
            raise ValueError("System template requires non-empty string content")
        self.content = content

    async def _run(self, session: Session) -> Session:
        return session.add_message(Message.system(interpolate(self.content, session.vars)))

    def __repr__(self) -> str:
        return f"System({self.content!r})"


# ──────────────────────────────────────────────────────
#  User
# ──────────────────────────────────────────────────────

class User(Template):

    def __init__(
        self,
        content: Union[str, Source, None] = None,
        *,
        validator: Optional[Validator] = None,
        max_attempts: Optional[int] = None,
        raise_error: Optional[bool] = None,
    ):
        self.source = _resolve_source(
            content, InteractiveSource, validator, max_attempts, raise_error,
        )

    async def _run(self, session: Session) -> Session:
        result = await self.source.get_content(session)
        text = result.content if isinstance(result, ModelOutput) else result
        return session.add_message(Message.user(text))


# ──────────────────────────────────────────────────────
#  Assistant
# ──────────────────────────────────────────────────────

class Assistant(Template):
    """
    Append one assistant message.

    Static text is validated once and a failure is terminal. A source gets
    its full retry envelope. From a ModelOutput the message takes the tool
    calls and structured output; ``metadata`` is merged into session vars
    and each tool result is appended as a ``tool_result`` message.

    ``extract_to_vars`` copies structured output into vars:
      True              every key
      ["a", "b"]        the named keys
      {"var": "key"}    output[key] stored as var
    """

    def __init__(
        self,
        content: Union[str, Source, None] = None,
        *,
        validator: Optional[Validator] = None,
        max_attempts: Optional[int] = None,
        raise_error: Optional[bool] = None,
        extract_to_vars: Optional[ExtractSpec] = None,
    ):
        if isinstance(content, str):
            if max_attempts is not None:
                raise ValueError("static assistant content is validated once; max_attempts does not apply")
            self.source: Source = StaticSource(
                content,
                validator=validator,
                raise_error=True if raise_error is None else raise_error,
            )
        else:
            self.source = _resolve_source(content, LlmSource, validator, max_attempts, raise_error)
        self.extract_to_vars = extract_to_vars

    async def _run(self, session: Session) -> Session:
        result = await self.source.get_content(session)
        output = result if isinstance(result, ModelOutput) else ModelOutput(content=result)

        session = session.add_message(Message.assistant(
            output.content,
            tool_calls=output.tool_calls,
            structured_content=output.structured_output,
        ))
        if output.metadata:
            session = session.with_vars(output.metadata)
        for tool_result in output.tool_results or []:
            session = session.add_message(
                Message.tool_result(tool_result.result, tool_call_id=tool_result.tool_call_id)
            )
        if self.extract_to_vars:
            session = self._extract(session, output.structured_output)
        return session

    def _extract(self, session: Session, structured: Optional[dict[str, Any]]) -> Session:
        if structured is None:
            logger.warning("extract_to_vars_skipped", reason="no structured output")
            return session

        spec = self.extract_to_vars
        if spec is True:
            extracted = dict(structured)
        elif isinstance(spec, dict):
            extracted = {var: structured[key] for var, key in spec.items() if key in structured}
        else:
            extracted = {key: structured[key] for key in spec if key in structured}
        return session.with_vars(extracted)


# ──────────────────────────────────────────────────────
#  Transform
# ──────────────────────────────────────────────────────

class Transform(Template):
    """Apply ``session -> session`` functions in order. Sync or async."""

    def __init__(self, fn: Union[SessionFn, list[SessionFn]]):
        fns = fn if isinstance(fn, list) else [fn]
        if not fns or not all(callable(f) for f in fns):
            raise TypeError("Transform needs a callable or a non-empty list of callables")
        self.fns = fns

    async def _run(self, session: Session) -> Session:
        for fn in self.fns:
            result = fn(session)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, Session):
                raise TypeError(
                    f"Transform function {getattr(fn, '__name__', fn)!r} returned "
                    f"{type(result).__name__}, expected Session"
                )
            session = result
        return session


# ──────────────────────────────────────────────────────
#  Conditional
# ──────────────────────────────────────────────────────

class Conditional(Template):
    """
    Evaluate ``condition`` against the current session and run one branch.
    With no else branch, a false condition returns the session unchanged.
    """

    def __init__(
        self,
        condition: ConditionLike,
        then_template: Template,
        else_template: Optional[Template] = None,
    ):
        self._predicate = as_predicate(condition)
        self.then_template = then_template
        self.else_template = else_template

    async def _run(self, session: Session) -> Session:
        if await self._predicate(session):
            return await self.then_template.execute(session)
        if self.else_template is not None:
            return await self.else_template.execute(session)
        return session
