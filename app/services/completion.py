"""
Completion port: the narrow interface the intent pipeline uses to talk to a language model.

Analyzers depend on this protocol only. Any exception raised through it is treated as a
provider failure and converted to the caller's deterministic fallback.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, Type, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)


class CompletionError(Exception):
    """Raised when a completion cannot be produced or parsed."""
    pass


@runtime_checkable
class CompletionPort(Protocol):
    async def classify(self, prompt: str, schema: Type[T], system: Optional[str] = None) -> T:
        """Return a structured result conforming to schema."""
        ...

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Return free text."""
        ...


def coerce_structured(schema: Type[T], raw: Any) -> T:
    """Validate whatever a provider returned against the requested schema."""
    if isinstance(raw, schema):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if isinstance(raw, str):
        try:
            return schema.model_validate_json(strip_code_fences(raw))
        except ValidationError as e:
            raise CompletionError(f"Malformed structured output: {e}") from e
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        raise CompletionError(f"Malformed structured output: {e}") from e


def strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    if t.startswith("```"):
        t = t.strip("`\n ")
        if t.lower().startswith("json"):
            t = t[len("json"):].lstrip()
    return t


async def classify_with(
    completion: Optional[CompletionPort],
    prompt: str,
    schema: Type[T],
    system: Optional[str] = None,
) -> T:
    """Run a structured classification, raising CompletionError when no port is wired."""
    if completion is None:
        raise CompletionError("No completion provider configured")
    raw = await completion.classify(prompt, schema, system=system)
    return coerce_structured(schema, raw)
