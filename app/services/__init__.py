"""Services package."""

from .completion import CompletionError, CompletionPort, coerce_structured, strip_code_fences

__all__ = ["CompletionError", "CompletionPort", "coerce_structured", "strip_code_fences"]
