"""mdvault - typed, pluggable tables stored as markdown files."""

from typing import TYPE_CHECKING

from mdvault.actions import ActionKind, define_mutation, define_query
from mdvault.errors import (
    ConfigurationError,
    HookError,
    Issue,
    MirrorError,
    NotFoundError,
    RecordDecodeError,
    StorageIOError,
    ValidationError,
    VaultError,
)
from mdvault.plugin import PluginConfig, TableConfig, define_plugin
from mdvault.record import Record
from mdvault.schema import FieldDefinition, FieldType, Schema
from mdvault.table import Hooks

if TYPE_CHECKING:
    from mdvault.vault import Vault, VaultStats

__all__ = [
    # Composition
    "Vault",
    "VaultStats",
    "define_plugin",
    "PluginConfig",
    "TableConfig",
    "Hooks",
    # Actions
    "ActionKind",
    "define_query",
    "define_mutation",
    # Types
    "FieldDefinition",
    "FieldType",
    "Record",
    "Schema",
    # Errors
    "VaultError",
    "ConfigurationError",
    "ValidationError",
    "Issue",
    "NotFoundError",
    "StorageIOError",
    "RecordDecodeError",
    "HookError",
    "MirrorError",
]


def __getattr__(name: str):
    # The vault pulls in config, which reads the environment on import
    if name in ("Vault", "VaultStats"):
        from mdvault import vault

        return getattr(vault, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
