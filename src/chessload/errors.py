"""Structured error handling for chessload.

Only configuration and usage errors abort a run.  Transport failures and
failed checks are data: they are recorded on the outcome and counted in the
report, never raised.
"""

from __future__ import annotations

from typing import Any


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------

class ChessLoadError(Exception):
    """Base exception for all chessload errors."""

    exit_code: int = 1
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(ChessLoadError):
    """Invalid run configuration or scenario definition.

    Raised before any virtual user starts.
    """

    exit_code = 2
    error_code = "CONFIGURATION_ERROR"


class UsageError(ChessLoadError):
    """The harness was driven in an order it does not support."""

    exit_code = 3
    error_code = "USAGE_ERROR"
