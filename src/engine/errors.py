"""Errors raised while producing power position reports."""

from __future__ import annotations


class PowerPositionError(Exception):
    """Base exception for a failed report attempt."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class SourceUnavailableError(PowerPositionError):
    """Raised when trades could not be fetched from the trade source."""


class ReportWriteError(PowerPositionError):
    """Raised when the report file could not be created or written."""
