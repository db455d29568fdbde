"""
Immutable tagged records — Vars (session scope) and Attrs (message scope).

Both are read-only mappings. Every "mutation" returns a new record, so a
session or message holding one can be shared freely. The two types are kept
distinct so a message's metadata can never be passed where conversation
state is expected, but the tag never leaks into serialized output:
``to_dict()`` and pydantic serialization both emit a plain dict.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterator, Optional

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema


class TaggedRecord(Mapping):
    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        # Copy on the way in: later changes to the caller's dict must not show through
        merged = dict(data) if data else {}
        merged.update(kwargs)
        self._data = merged

    # ── Mapping protocol ──────────────────────────────

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TaggedRecord) and type(other) is not type(self):
            return False
        if not isinstance(other, Mapping):
            return NotImplemented
        return self._data == dict(other.items())

    __hash__ = None  # values may be unhashable

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    # ── Derivations ───────────────────────────────────

    def with_var(self, key: str, value: Any):
        """Return a copy with ``key`` set to ``value``."""
        return type(self)({**self._data, key: value})

    def patch(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        """Return a copy with every key of ``values`` merged over this record."""
        merged = dict(self._data)
        if values:
            merged.update(values)
        merged.update(kwargs)
        return type(self)(merged)

    def without(self, key: str):
        return type(self)({k: v for k, v in self._data.items() if k != key})

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    # ── pydantic integration ──────────────────────────

    @classmethod
    def _coerce(cls, value: Any):
        if isinstance(value, cls):
            return value
        if value is None:
            return cls()
        if isinstance(value, TaggedRecord):
            raise ValueError(f"expected {cls.__name__}, got {type(value).__name__}")
        if isinstance(value, Mapping):
            return cls(value)
        raise ValueError(f"{cls.__name__} must be built from a mapping, got {type(value).__name__}")

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler,
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._coerce,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda record: record.to_dict(),
            ),
        )


class Vars(TaggedRecord):
    """Conversation-level state: counters, extracted facts, profile fields."""
    __slots__ = ()


class Attrs(TaggedRecord):
    """Per-message metadata: timestamps, provenance, tool-call ids."""
    __slots__ = ()
