"""Structured errors for fireflow operations.

Every failure raised by the lifecycle manager carries a machine-readable
code namespaced by operation family (``INIT_``, ``COMPLETE_``,
``CHECKPOINT_``), a human-readable message, and an actionable suggestion.

This module is headless - no CLI dependencies.
"""

from typing import Any


class ErrorFamily:
    """Code prefixes for each operation family."""

    INIT = "INIT"
    COMPLETE = "COMPLETE"
    CHECKPOINT = "CHECKPOINT"


class FireError(Exception):
    """Raised when a fireflow operation cannot proceed.

    Attributes:
        code: Namespaced error code (e.g. ``INIT_010``)
        message: What went wrong
        suggestion: What the operator should do about it
    """

    def __init__(self, code: str, message: str, suggestion: str):
        self.code = code
        self.message = message
        self.suggestion = suggestion
        super().__init__(f"FIRE Error [{code}]: {message} {suggestion}")

    @property
    def family(self) -> str:
        """Operation family the code belongs to (``INIT``, ``COMPLETE``...)."""
        return self.code.split("_", 1)[0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion,
        }


def fire_error(family: str, suffix: str, message: str, suggestion: str) -> FireError:
    """Build a FireError for ``family`` with a three-digit ``suffix``.

    Args:
        family: One of the ErrorFamily prefixes
        suffix: Code suffix such as ``"010"``
        message: Human-readable description
        suggestion: Actionable next step

    Returns:
        FireError with code ``<family>_<suffix>``
    """
    return FireError(f"{family}_{suffix}", message, suggestion)
