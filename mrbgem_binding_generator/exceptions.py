"""
Exception hierarchy for the mrbgem binding generator.

Every error carries a human readable message plus an optional context dict,
so the CLI can log structured details without string parsing.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BindingGeneratorError(Exception):
    """Base exception for all binding generator errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


# --------------------------
# Input errors
# --------------------------

class HeaderNotFoundError(BindingGeneratorError):
    """Raised when a referenced header does not exist at read time."""

    def __init__(self, path: Any) -> None:
        super().__init__(f"File does not exist: {path}", {"path": str(path)})
        self.path = path


# --------------------------
# Parser errors
# --------------------------

class ParseUnavailableError(BindingGeneratorError):
    """libclang could not be imported or loaded; callers fall back to the regex parser."""


class ParseError(BindingGeneratorError):
    """The AST frontend failed to produce a translation unit for a header."""


# --------------------------
# Output errors
# --------------------------

class GenerationError(BindingGeneratorError):
    """Writing the generated artifact set failed."""


__all__ = [
    "BindingGeneratorError",
    "HeaderNotFoundError",
    "ParseUnavailableError",
    "ParseError",
    "GenerationError",
]
