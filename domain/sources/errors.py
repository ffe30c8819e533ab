"""Sources Bounded Context - Error Hierarchy.

Custom exceptions for source record operations, plus the error collector
used as the optional reporting channel by validation and derivation.
"""

from __future__ import annotations

import threading


class SourceError(Exception):
    """Base error for source record operations."""


class KeyExhaustionError(SourceError):
    """No free source key is left in the owning context."""


class ValidationError(SourceError):
    """Record data failed validation.

    Attributes:
        messages: Per-field validation messages, in the order reported
    """

    def __init__(self, messages: list[str] | None = None) -> None:
        self.messages = list(messages or [])
        if self.messages:
            super().__init__("; ".join(self.messages))
        else:
            super().__init__("Source data is not valid")


class IllegalOperationError(SourceError):
    """Derivation or replication preconditions are violated."""


class StoreFailureError(SourceError):
    """The backing store failed to complete a query or update."""


# ---------------------------------------------------------------------------
# Error Collector
# ---------------------------------------------------------------------------
class ErrorCollector:
    """Collects error and warning messages from source operations.

    Passing no collector to an operation means the caller chose to discard
    messages; failures are still signalled by return value or exception.
    Reporting is thread-safe so background import workers can share one
    collector with the editing thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._errors: list[str] = []
        self._warnings: list[str] = []

    def report_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)

    def report_validation_error(self, message: str) -> None:
        self.report_error(message)

    def report_warning(self, message: str) -> None:
        with self._lock:
            self._warnings.append(message)

    @property
    def has_errors(self) -> bool:
        with self._lock:
            return bool(self._errors)

    @property
    def messages(self) -> list[str]:
        with self._lock:
            return list(self._errors)

    @property
    def warnings(self) -> list[str]:
        with self._lock:
            return list(self._warnings)

    def clear(self) -> None:
        with self._lock:
            self._errors.clear()
            self._warnings.clear()
