from __future__ import annotations

from pathlib import Path
from typing import Sequence


class BidHarvestError(Exception):
    """Base class for failures that abort a run."""


class UsageError(BidHarvestError):
    """Invalid command-line input, such as a malformed date range."""


class StorageError(BidHarvestError):
    """A batch, document or intake file could not be read or written."""

    def __init__(self, path: Path | str, operation: str, reason: str) -> None:
        self.path = Path(path)
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed for '{self.path}': {reason}")


class SchemaValidationError(BidHarvestError):
    """The assembled intake output does not satisfy the canonical schema."""

    def __init__(self, violations: Sequence[str]) -> None:
        self.violations = list(violations)
        preview = "; ".join(self.violations[:5])
        more = len(self.violations) - 5
        suffix = f" (+{more} more)" if more > 0 else ""
        super().__init__(f"Intake output failed validation: {preview}{suffix}")
