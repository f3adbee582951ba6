# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Exception hierarchy for platypus.

Every condition a caller is expected to handle has its own class so that
periodic tasks can skip one entity and carry on with the next.
"""

from __future__ import annotations


class PlatypusError(Exception):
    """Base exception for all platypus errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(PlatypusError):
    """No samples, model or profile exist for the requested key."""


class InsufficientDataError(PlatypusError):
    """Fewer samples are retained than the configured minimum."""

    def __init__(self, message: str, available: int = 0, required: int = 0) -> None:
        super().__init__(message, details=f"{available} of {required} samples")
        self.available = available
        self.required = required


class BufferFullError(PlatypusError):
    """The ingestion buffer is at capacity; the sample was not accepted."""


class CollaboratorError(PlatypusError):
    """A fleet provider call (inventory, containers, relocation) failed."""


class ConfigurationError(PlatypusError):
    """Configuration is invalid or cannot be parsed."""
