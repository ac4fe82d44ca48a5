"""Exceptions raised by memory search providers and the fallback layer."""

from __future__ import annotations


class MemorySearchError(Exception):
    """Base class for memsearch errors."""


class AdapterError(MemorySearchError, RuntimeError):
    """A subprocess adapter call failed (non-zero exit, bad payload)."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)


class AdapterTimeoutError(AdapterError, TimeoutError):
    """A subprocess adapter call exceeded its wall-clock timeout."""


class MemoryUnavailableError(MemorySearchError, RuntimeError):
    """Raised when the primary has failed and no fallback can be built."""
