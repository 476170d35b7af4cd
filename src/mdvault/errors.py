"""Error taxonomy for the vault.

Every error raised by mdvault derives from VaultError so callers can catch
the whole family at one seam (the CLI does exactly that).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


class VaultError(Exception):
    """Base class for all vault errors."""

    pass


class ConfigurationError(VaultError):
    """Raised when a plugin, table, schema or vault configuration is invalid.

    Always fatal at construction time; never retried.
    """

    pass


@dataclass(frozen=True)
class Issue:
    """A single validation problem, located by its path in the input."""

    message: str
    path: tuple[str | int, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        if self.path:
            return f"{'.'.join(str(p) for p in self.path)}: {self.message}"
        return self.message


class ValidationError(VaultError):
    """Raised when record fields or action input fail validation.

    Carries every issue found, not just the first.
    """

    def __init__(self, issues: Iterable[Issue]):
        self.issues: list[Issue] = list(issues)
        lines = "\n".join(str(issue) for issue in self.issues)
        super().__init__(f"Validation failed:\n{lines}")

    @property
    def paths(self) -> list[tuple[str | int, ...]]:
        """Paths of every issue, in reporting order."""
        return [issue.path for issue in self.issues]

    @classmethod
    def single(cls, message: str, *path: str | int) -> "ValidationError":
        return cls([Issue(message=message, path=tuple(path))])


class NotFoundError(VaultError):
    """Raised when updating a record that does not exist."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in table {table}")


class StorageIOError(VaultError):
    """Raised when the underlying filesystem call fails."""

    pass


class RecordDecodeError(VaultError):
    """Raised when a record file has a malformed header block."""

    pass


class HookError(VaultError):
    """Raised when a hook returns a non-record or changes a record id."""

    pass


class MirrorError(VaultError):
    """Raised when the relational mirror is missing or not yet synced."""

    pass
