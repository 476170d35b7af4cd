"""Plugin declarations and the plugin composer.

A plugin is a named bundle of tables, hooks and methods:

    reddit = define_plugin(
        id="reddit",
        display_name="Reddit",
        tables={
            "posts": TableConfig(
                schema={"title": {"type": "string", "required": True}},
                methods={"top_posts": top_posts},
            ),
        },
        methods={"get_stats": get_stats},
    )

Composition turns a declaration into live objects: one Table per table,
a PluginContext exposing only this plugin's tables, and every method bound
through the action layer to its context.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from mdvault.actions import ActionDefinition, BoundAction
from mdvault.errors import ConfigurationError
from mdvault.layout import get_table_path, is_valid_name
from mdvault.schema import Schema, SchemaDefinition
from mdvault.table import BUILTIN_OPERATIONS, Hooks, Table

logger = logging.getLogger(__name__)

# Instance attributes that custom methods must not shadow
_TABLE_ATTRIBUTES = frozenset(
    {"plugin_id", "name", "schema", "path", "extension", "hooks", "mirror_name", "codec"}
)
_PLUGIN_ATTRIBUTES = frozenset({"config", "id", "display_name", "tables", "methods"})


def _check_method_names(
    owner: str, methods: Mapping[str, Any], reserved: set[str] | frozenset[str]
) -> None:
    for name, definition in methods.items():
        if not isinstance(name, str) or not name.isidentifier() or name.startswith("_"):
            raise ConfigurationError(f"Invalid method name {name!r} in {owner}")
        if name in reserved:
            raise ConfigurationError(
                f"Method {name!r} in {owner} collides with a built-in name"
            )
        if not isinstance(definition, ActionDefinition):
            raise ConfigurationError(
                f"Method {name!r} in {owner} must be defined with define_query "
                "or define_mutation"
            )


@dataclass(frozen=True)
class TableConfig:
    """A table declaration: its schema and optional custom methods."""

    schema: Schema | SchemaDefinition
    methods: Mapping[str, ActionDefinition] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.schema, Schema):
            object.__setattr__(self, "schema", Schema(self.schema))
        object.__setattr__(self, "methods", dict(self.methods or {}))


def _as_table_config(plugin_id: str, name: str, raw: Any) -> TableConfig:
    if isinstance(raw, TableConfig):
        return raw
    if isinstance(raw, Schema):
        return TableConfig(schema=raw)
    if isinstance(raw, Mapping):
        if "schema" in raw and isinstance(raw["schema"], (Mapping, Schema)):
            return TableConfig(schema=raw["schema"], methods=raw.get("methods") or {})
        return TableConfig(schema=raw)
    raise ConfigurationError(
        f"Table {name!r} in plugin {plugin_id!r} must be a TableConfig or schema mapping"
    )


@dataclass(frozen=True)
class PluginConfig:
    """A plugin declaration. Validated on construction."""

    id: str
    display_name: str
    tables: Mapping[str, TableConfig]
    methods: Mapping[str, ActionDefinition] = field(default_factory=dict)
    hooks: Hooks | None = None

    def __post_init__(self) -> None:
        if not is_valid_name(self.id):
            raise ConfigurationError(
                f'Invalid plugin ID "{self.id}". Must start with lowercase letter '
                "and contain only lowercase letters, numbers, and underscores."
            )

        tables = {}
        for name, raw in (self.tables or {}).items():
            if not is_valid_name(name):
                raise ConfigurationError(
                    f'Invalid table name "{name}" in plugin "{self.id}". Must start '
                    "with lowercase letter and contain only lowercase letters, "
                    "numbers, and underscores."
                )
            tables[name] = _as_table_config(self.id, name, raw)
        object.__setattr__(self, "tables", tables)
        object.__setattr__(self, "methods", dict(self.methods or {}))

        if self.hooks is not None and not isinstance(self.hooks, Hooks):
            raise ConfigurationError(f"Hooks of plugin {self.id!r} must be a Hooks instance")

        table_reserved = set(BUILTIN_OPERATIONS) | set(dir(Table)) | _TABLE_ATTRIBUTES
        for name, table in tables.items():
            _check_method_names(f"table {self.id}.{name}", table.methods, table_reserved)
            for field_name, field_def in table.schema.items():
                if field_def.references is not None and field_def.references not in tables:
                    raise ConfigurationError(
                        f"Field {name}.{field_name} in plugin {self.id!r} references "
                        f"unknown table {field_def.references!r}"
                    )

        plugin_members = set(dir(Plugin)) | _PLUGIN_ATTRIBUTES
        for name in tables:
            if name in plugin_members:
                raise ConfigurationError(
                    f"Table name {name!r} in plugin {self.id!r} collides with a built-in name"
                )
        plugin_reserved = set(tables) | plugin_members
        _check_method_names(f"plugin {self.id}", self.methods, plugin_reserved)


def define_plugin(
    id: str,
    tables: Mapping[str, TableConfig | SchemaDefinition],
    display_name: str | None = None,
    methods: Mapping[str, ActionDefinition] | None = None,
    hooks: Hooks | None = None,
) -> PluginConfig:
    """
    Define a plugin for the vault.

    Args:
        id: Plugin id, e.g. "reddit" (lowercase, digits, underscores)
        tables: Table name -> TableConfig, or a bare schema mapping
        display_name: Human-readable name (defaults to the id)
        methods: Plugin-level methods, called with the plugin's tables
        hooks: Record transforms applied to every table of the plugin

    Raises:
        ConfigurationError: If any name or declaration is invalid
    """
    return PluginConfig(
        id=id,
        display_name=display_name or id,
        tables=tables,
        methods=methods or {},
        hooks=hooks,
    )


class PluginContext(Mapping[str, Table]):
    """Read-only view of one plugin's tables.

    Passed to plugin-level methods; tables are reachable by key or attribute.
    A table named like a Mapping method (``items``, ``keys``, ``get``) is
    reachable by key only.
    """

    def __init__(self, tables: Mapping[str, Table]):
        self._tables = dict(tables)

    def __getitem__(self, name: str) -> Table:
        return self._tables[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __getattr__(self, name: str) -> Table:
        tables = self.__dict__.get("_tables", {})
        if name in tables:
            return tables[name]
        raise AttributeError(f"Plugin context has no table {name!r}")

    def __repr__(self) -> str:
        return f"PluginContext({list(self._tables)})"


class Plugin:
    """A composed plugin: ``plugin.<table>`` and ``plugin.<method>``."""

    def __init__(
        self,
        config: PluginConfig,
        tables: Mapping[str, Table],
        methods: Mapping[str, BoundAction],
    ):
        self.config = config
        self.id = config.id
        self.display_name = config.display_name
        self.tables: Mapping[str, Table] = MappingProxyType(dict(tables))
        self.methods: Mapping[str, BoundAction] = MappingProxyType(dict(methods))

    def __getattr__(self, name: str) -> Any:
        for namespace in ("tables", "methods"):
            members = self.__dict__.get(namespace, {})
            if name in members:
                return members[name]
        raise AttributeError(f"Plugin {self.__dict__.get('id')!r} has no member {name!r}")

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self.tables) | set(self.methods))

    def __repr__(self) -> str:
        return f"Plugin({self.id}, tables={list(self.tables)})"


def compose_plugin(
    config: PluginConfig,
    vault_root: Path,
    extension: str = "md",
) -> Plugin:
    """
    Build the live object graph for one plugin.

    1. One Table per declared table, rooted at {vault_root}/{id}/{table}
    2. A PluginContext over exactly those tables
    3. Table methods bound to their Table, plugin methods to the context

    No directories are created here.
    """
    tables = {
        name: Table(
            plugin_id=config.id,
            name=name,
            schema=table_config.schema,
            path=get_table_path(vault_root, config.id, name),
            extension=extension,
            hooks=config.hooks,
        )
        for name, table_config in config.tables.items()
    }
    context = PluginContext(tables)

    for name, table_config in config.tables.items():
        table = tables[name]
        table.attach_methods(
            {
                method_name: BoundAction(f"{table.mirror_name}.{method_name}", definition, table)
                for method_name, definition in table_config.methods.items()
            }
        )

    methods = {
        method_name: BoundAction(f"{config.id}.{method_name}", definition, context)
        for method_name, definition in config.methods.items()
    }

    logger.debug(
        f"Composed plugin {config.id}: tables={list(tables)}, methods={list(methods)}"
    )
    return Plugin(config, tables, methods)
