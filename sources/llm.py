"""
LLM source — generation through the ``generate(session, options)`` backend.

Configuration is fluent and immutable: every builder call returns a clone.

    source = (
        LlmSource()
        .openai(model="gpt-4o-mini")
        .temperature(0.2)
        .with_validator(LengthValidator(max_length=280))
        .with_max_attempts(3)
    )

Call-count governor
    When ``settings.debug`` is on, every generation call increments a
    CallCounter shared by the source and all of its clones, so reconfiguring
    with ``.model(...)`` does not reset the budget. Going past the limit
    raises GovernorError. With debug off nothing is counted or enforced.
    ``CallCounter.reset_all()`` is the reset for test isolation.
"""
from __future__ import annotations

import structlog
import weakref
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Optional, Union

from pydantic import BaseModel

from config.settings import get_settings
from core.engine import GenerationEngine
from core.errors import GenerationError, GovernorError, TrailError
from models.schemas import GenerationOptions, ModelOutput
from sources.base import Source, _ContentRejected

if TYPE_CHECKING:
    from context.session import Session
    from validation.base import Validator

logger = structlog.get_logger()

Generate = Callable[["Session", GenerationOptions], Awaitable[ModelOutput]]


class CallCounter:
    """Generation call count, shared by reference between source clones."""

    _registry: ClassVar["weakref.WeakSet[CallCounter]"] = weakref.WeakSet()

    def __init__(self):
        self.count = 0
        CallCounter._registry.add(self)

    def increment(self) -> int:
        self.count += 1
        return self.count

    def reset(self) -> None:
        self.count = 0

    @classmethod
    def reset_all(cls) -> None:
        for counter in list(cls._registry):
            counter.reset()


class LlmSource(Source):

    retry_on = (_ContentRejected, GenerationError)

    def __init__(
        self,
        options: Optional[GenerationOptions] = None,
        generate: Optional[Generate] = None,
        counter: Optional[CallCounter] = None,
        call_limit: Optional[int] = None,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        super().__init__(validator=validator, max_attempts=max_attempts, raise_error=raise_error)
        self.options = options or GenerationOptions()
        self._generate = generate
        self._counter = counter or CallCounter()
        self._call_limit = call_limit

    @property
    def counter(self) -> CallCounter:
        return self._counter

    @property
    def call_count(self) -> int:
        return self._counter.count

    # ── Fluent configuration ──────────────────────────

    def _with_options(self, **updates: Any) -> "LlmSource":
        return self._clone(options=self.options.model_copy(update=updates))

    def openai(self, model: Optional[str] = None, api_key: Optional[str] = None,
               base_url: Optional[str] = None) -> "LlmSource":
        return self._with_options(**_provider_updates("openai", model, api_key, base_url))

    def anthropic(self, model: Optional[str] = None, api_key: Optional[str] = None,
                  base_url: Optional[str] = None) -> "LlmSource":
        return self._with_options(**_provider_updates("anthropic", model, api_key, base_url))

    def model(self, name: str) -> "LlmSource":
        return self._with_options(model=name)

    def api_key(self, key: str) -> "LlmSource":
        return self._with_options(api_key=key)

    def temperature(self, value: float) -> "LlmSource":
        return self._with_options(temperature=value)

    def max_tokens(self, value: int) -> "LlmSource":
        return self._with_options(max_tokens=value)

    def top_p(self, value: float) -> "LlmSource":
        return self._with_options(top_p=value)

    def top_k(self, value: int) -> "LlmSource":
        return self._with_options(top_k=value)

    def with_tool(self, name: str, tool: dict[str, Any]) -> "LlmSource":
        return self._with_options(tools={**self.options.tools, name: tool})

    def with_tools(self, tools: dict[str, dict[str, Any]]) -> "LlmSource":
        return self._with_options(tools={**self.options.tools, **tools})

    def tool_choice(self, choice: Any) -> "LlmSource":
        return self._with_options(tool_choice=choice)

    def with_schema(self, schema: Union[dict[str, Any], type[BaseModel]]) -> "LlmSource":
        """Request JSON output matching ``schema`` (a JSON schema or a pydantic model)."""
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            schema = schema.model_json_schema()
        return self._with_options(response_schema=schema)

    def max_calls(self, limit: int) -> "LlmSource":
        if limit < 1:
            raise ValueError(f"max_calls must be at least 1, got {limit}")
        return self._clone(_call_limit=limit)

    # ── Generation ────────────────────────────────────

    def _check_governor(self) -> None:
        settings = get_settings()
        if not settings.debug:
            return
        limit = self._call_limit or settings.max_llm_calls
        calls = self._counter.increment()
        if calls > limit:
            logger.error("llm_call_limit_exceeded", calls=calls, limit=limit)
            raise GovernorError(calls, limit)

    def _backend(self) -> Generate:
        if self._generate is None:
            self._generate = GenerationEngine().generate
        return self._generate

    async def _produce(self, session: "Session") -> ModelOutput:
        self._check_governor()
        try:
            output = await self._backend()(session, self.options)
        except TrailError:
            raise
        except Exception as e:
            logger.error("generation_call_failed", error=str(e), error_type=type(e).__name__)
            raise GenerationError(f"Generation failed: {e}") from e

        if not isinstance(output, ModelOutput):
            raise GenerationError(
                f"Generation backend returned {type(output).__name__}, expected an assistant ModelOutput"
            )
        return output


def _provider_updates(provider: str, model: Optional[str], api_key: Optional[str],
                      base_url: Optional[str]) -> dict[str, Any]:
    updates: dict[str, Any] = {"provider": provider}
    if model is not None:
        updates["model"] = model
    if api_key is not None:
        updates["api_key"] = api_key
    if base_url is not None:
        updates["base_url"] = base_url
    return updates
