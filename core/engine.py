"""
Generation Engine — the default ``generate(session, options)`` backend.

Turns a Session into a provider chat request and the provider's reply into
a ModelOutput. Handles:
- OpenAI and Anthropic async clients (imported lazily, cached per key)
- Message mapping: system / user / assistant (+ tool calls) / tool results
- Tool definitions and tool_choice passthrough
- JSON structured output when a response schema is requested
- Transport retries with exponential backoff

Templates never talk to this class directly; an LlmSource holds a
reference to ``GenerationEngine().generate`` (or any callable with the
same signature).
"""
from __future__ import annotations

import json
import structlog
from typing import TYPE_CHECKING, Any, Optional

from tenacity import retry, stop_after_attempt, wait_exponential

from config.settings import Settings, get_settings
from core.errors import GenerationError
from models.schemas import GenerationOptions, MessageRole, ModelOutput, ToolCall

if TYPE_CHECKING:
    from context.session import Session

logger = structlog.get_logger()

SUPPORTED_PROVIDERS = ("openai", "anthropic")


# ══════════════════════════════════════════════════════════
#  MESSAGE MAPPING
# ══════════════════════════════════════════════════════════

def to_openai_messages(session: "Session") -> list[dict[str, Any]]:
    """Map session messages onto the OpenAI chat-completions shape."""
    out: list[dict[str, Any]] = []
    for msg in session.messages:
        if msg.role == MessageRole.TOOL_RESULT:
            out.append({
                "role": "tool",
                "content": msg.content,
                "tool_call_id": msg.attrs.get("tool_call_id", ""),
            })
        elif msg.role == MessageRole.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": msg.content or None}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in msg.tool_calls
                ]
            elif not msg.content:
                entry["content"] = " "
            out.append(entry)
        else:
            out.append({"role": msg.role.value, "content": msg.content})
    return out


def to_anthropic_messages(session: "Session") -> tuple[str, list[dict[str, Any]]]:
    """
    Map session messages onto the Anthropic messages shape.
    System messages are lifted into the separate ``system`` parameter.
    """
    system_parts: list[str] = []
    out: list[dict[str, Any]] = []
    for msg in session.messages:
        if msg.role == MessageRole.SYSTEM:
            system_parts.append(msg.content)
        elif msg.role == MessageRole.TOOL_RESULT:
            out.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": msg.attrs.get("tool_call_id", ""),
                    "content": msg.content,
                }],
            })
        elif msg.role == MessageRole.ASSISTANT:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls or ():
                blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments})
            out.append({"role": "assistant", "content": blocks or " "})
        else:
            out.append({"role": "user", "content": msg.content})
    return "\n\n".join(system_parts), out


def _openai_tools(tools: dict[str, dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": spec.get("description", ""),
                "parameters": spec.get("parameters", {"type": "object", "properties": {}}),
            },
        }
        for name, spec in tools.items()
    ]


def _anthropic_tools(tools: dict[str, dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": name,
            "description": spec.get("description", ""),
            "input_schema": spec.get("parameters", {"type": "object", "properties": {}}),
        }
        for name, spec in tools.items()
    ]


def _parse_structured(content: str) -> dict[str, Any]:
    try:
        parsed = json.loads(content)
    except ValueError as e:
        raise GenerationError(f"Structured output is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise GenerationError("Structured output must be a JSON object")
    return parsed


# ══════════════════════════════════════════════════════════
#  ENGINE
# ══════════════════════════════════════════════════════════

class GenerationEngine:
    """
    Generates assistant replies using OpenAI or Anthropic.
    Unset GenerationOptions fields are filled from ``settings.llm``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._clients: dict[tuple, Any] = {}

    def resolve(self, options: Optional[GenerationOptions] = None) -> GenerationOptions:
        options = options or GenerationOptions()
        llm = self._settings.llm
        defaults = {
            "provider": llm.provider,
            "model": llm.model,
            "temperature": llm.temperature,
            "max_tokens": llm.max_tokens,
            "api_key": llm.api_key or None,
            "base_url": llm.base_url or None,
        }
        updates = {k: v for k, v in defaults.items() if getattr(options, k) is None}
        return options.model_copy(update=updates)

    async def _get_client(self, options: GenerationOptions):
        key = (options.provider, options.api_key, options.base_url)
        if key in self._clients:
            return self._clients[key]

        if options.provider not in SUPPORTED_PROVIDERS:
            raise GenerationError(
                f"Unsupported provider '{options.provider}', expected one of {SUPPORTED_PROVIDERS}"
            )

        try:
            if options.provider == "openai":
                from openai import AsyncOpenAI
                client = AsyncOpenAI(api_key=options.api_key, base_url=options.base_url)
            else:
                import anthropic
                client = anthropic.AsyncAnthropic(api_key=options.api_key, base_url=options.base_url)
        except Exception as e:
            logger.error("llm_client_init_failed", provider=options.provider, error=str(e))
            raise GenerationError(f"Could not initialize {options.provider} client: {e}") from e

        logger.info("llm_client_initialized", provider=options.provider, model=options.model)
        self._clients[key] = client
        return client

    # ── MAIN ENTRY POINT ──────────────────────────────

    async def generate(
        self, session: "Session", options: Optional[GenerationOptions] = None,
    ) -> ModelOutput:
        opts = self.resolve(options)
        client = await self._get_client(opts)

        try:
            if opts.provider == "openai":
                output = await self._call_openai(client, session, opts)
            else:
                output = await self._call_anthropic(client, session, opts)
        except GenerationError:
            raise
        except Exception as e:
            logger.error("llm_generation_failed", provider=opts.provider, model=opts.model, error=str(e))
            raise GenerationError(f"{opts.provider} generation failed: {e}") from e

        logger.info(
            "llm_generation_completed",
            provider=opts.provider, model=opts.model,
            content_length=len(output.content),
            tool_calls=len(output.tool_calls or []),
        )
        return output

    # ── OPENAI ────────────────────────────────────────

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, max=10), reraise=True)
    async def _call_openai(self, client, session: "Session", opts: GenerationOptions) -> ModelOutput:
        kwargs: dict[str, Any] = {
            "model": opts.model,
            "messages": to_openai_messages(session),
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
        }
        if opts.top_p is not None:
            kwargs["top_p"] = opts.top_p
        if opts.tools:
            kwargs["tools"] = _openai_tools(opts.tools)
            if opts.tool_choice is not None:
                kwargs["tool_choice"] = opts.tool_choice
        if opts.response_schema:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": opts.response_schema.get("title", "response"),
                    "schema": opts.response_schema,
                },
            }

        response = await client.chat.completions.create(**kwargs)
        message = response.choices[0].message
        content = message.content or ""

        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=json.loads(tc.function.arguments or "{}"),
            )
            for tc in (message.tool_calls or [])
        ]
        structured = _parse_structured(content) if opts.response_schema else None
        return ModelOutput(content=content, tool_calls=tool_calls or None, structured_output=structured)

    # ── ANTHROPIC ─────────────────────────────────────

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, max=10), reraise=True)
    async def _call_anthropic(self, client, session: "Session", opts: GenerationOptions) -> ModelOutput:
        system, messages = to_anthropic_messages(session)
        if opts.response_schema:
            system += (
                "\n\nRespond only with a JSON object matching this schema:\n"
                + json.dumps(opts.response_schema)
            )

        kwargs: dict[str, Any] = {
            "model": opts.model,
            "messages": messages,
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
        }
        if system:
            kwargs["system"] = system
        if opts.top_p is not None:
            kwargs["top_p"] = opts.top_p
        if opts.top_k is not None:
            kwargs["top_k"] = opts.top_k
        if opts.tools:
            kwargs["tools"] = _anthropic_tools(opts.tools)
            if opts.tool_choice is not None:
                kwargs["tool_choice"] = opts.tool_choice

        response = await client.messages.create(**kwargs)

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))

        content = "".join(text_parts)
        structured = _parse_structured(content) if opts.response_schema else None
        return ModelOutput(content=content, tool_calls=tool_calls or None, structured_output=structured)
