"""Vault - composes plugins into one namespace over a directory tree.

The Vault:
1. Loads per-vault settings from vault-config.yaml (or takes them explicitly)
2. Validates every plugin and rejects duplicate mirror names up front
3. Composes one Plugin per declaration, sharing a single root directory
4. Derives statistics, exports and mirror syncs from the tables on demand

Example:
    vault = Vault("~/.mdvault", plugins=[reddit])
    post = await vault.reddit.posts.create({"title": "hi"})
    stats = await vault.stats()
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Mapping

from mdvault.config import VaultSettings, load_settings
from mdvault.errors import ConfigurationError, MirrorError, StorageIOError, ValidationError
from mdvault.layout import mirror_name
from mdvault.mirror import (
    MirrorTable,
    RelationalMirror,
    mirror_columns,
    mirror_row,
    render_create_table,
)
from mdvault.plugin import Plugin, PluginConfig, compose_plugin
from mdvault.table import Table, run_batch_hook

logger = logging.getLogger(__name__)

ExportFormat = Literal["json", "sql", "markdown"]

# Instance attributes a plugin id (or flat table name) must not shadow
_VAULT_ATTRIBUTES = frozenset({"root", "settings"})


@dataclass(frozen=True)
class VaultStats:
    """Record counts across the vault."""

    plugins: int
    tables: int
    total_records: int
    table_stats: dict[str, int] = field(default_factory=dict)
    last_sync: datetime | None = None


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class Vault:
    """Root aggregate over ``{root}/{plugin_id}/{table_name}/``.

    Plugins are reachable as ``vault.<plugin_id>`` (nested namespace) or
    tables as ``vault.<plugin_id>_<table>`` (flat namespace), depending on
    settings.namespace. ``vault.plugins`` and ``vault.tables`` always work.
    """

    def __init__(
        self,
        path: Path | str,
        plugins: Sequence[PluginConfig],
        *,
        settings: VaultSettings | None = None,
        mirror: RelationalMirror | None = None,
    ):
        """Initialize the vault. Touches no directories.

        Args:
            path: Vault root directory
            plugins: Plugin declarations to compose
            settings: Overrides vault-config.yaml when given
            mirror: Optional relational mirror for sync() and query()

        Raises:
            ConfigurationError: On any invalid or colliding declaration
        """
        self.root = Path(path).expanduser().resolve()
        self.settings = settings if settings is not None else load_settings(self.root)

        configs = list(plugins)
        reserved = set(dir(type(self))) | _VAULT_ATTRIBUTES
        plugin_ids: set[str] = set()
        owners: dict[str, str] = {}
        for config in configs:
            if not isinstance(config, PluginConfig):
                raise ConfigurationError(
                    f"Expected a PluginConfig, got {type(config).__name__}"
                )
            for table_name in config.tables:
                name = mirror_name(config.id, table_name)
                if name in owners:
                    raise ConfigurationError(
                        f'Duplicate table name "{name}" (from plugins "{owners[name]}" '
                        f'and "{config.id}"). Table names must be unique across all plugins.'
                    )
                if self.settings.namespace == "flat" and name in reserved:
                    raise ConfigurationError(
                        f"Table {name!r} collides with a vault operation name"
                    )
                owners[name] = config.id
            if config.id in plugin_ids:
                raise ConfigurationError(f"Duplicate plugin id {config.id!r}")
            if config.id in reserved:
                raise ConfigurationError(
                    f"Plugin id {config.id!r} collides with a vault operation name"
                )
            plugin_ids.add(config.id)

        self._plugins: dict[str, Plugin] = {
            config.id: compose_plugin(config, self.root, self.settings.extension)
            for config in configs
        }
        self._tables: dict[str, Table] = {
            table.mirror_name: table
            for plugin in self._plugins.values()
            for table in plugin.tables.values()
        }
        self._mirror = mirror
        self._last_sync: datetime | None = None

        logger.info(
            f"Vault ready at {self.root}: "
            f"plugins={len(self._plugins)}, tables={len(self._tables)}"
        )

    # --- Namespace ---

    @property
    def plugins(self) -> Mapping[str, Plugin]:
        return MappingProxyType(self._plugins)

    @property
    def tables(self) -> Mapping[str, Table]:
        """Every composed table, keyed by mirror name."""
        return MappingProxyType(self._tables)

    @property
    def mirror(self) -> RelationalMirror | None:
        return self._mirror

    @property
    def last_sync(self) -> datetime | None:
        return self._last_sync

    def __getattr__(self, name: str) -> Any:
        settings = self.__dict__.get("settings")
        if settings is not None:
            members = (
                self.__dict__.get("_tables", {})
                if settings.namespace == "flat"
                else self.__dict__.get("_plugins", {})
            )
            if name in members:
                return members[name]
        raise AttributeError(f"Vault has no plugin or operation {name!r}")

    def __dir__(self) -> list[str]:
        members = self._tables if self.settings.namespace == "flat" else self._plugins
        return sorted(set(super().__dir__()) | set(members))

    def __repr__(self) -> str:
        return f"Vault({self.root})"

    def _resolve(self, name: str) -> Table:
        if name in self._tables:
            return self._tables[name]
        plugin_id, _, table_name = name.partition(".")
        plugin = self._plugins.get(plugin_id)
        if plugin is not None and table_name in plugin.tables:
            return plugin.tables[table_name]
        raise ConfigurationError(f'Table "{name}" does not exist')

    def _mirror_table(self, table: Table, rows: tuple[dict[str, Any], ...] = ()) -> MirrorTable:
        return MirrorTable(
            name=table.mirror_name,
            plugin_id=table.plugin_id,
            table_name=table.name,
            columns=mirror_columns(table.schema),
            rows=rows,
        )

    # --- Aggregate operations ---

    def ensure_structure(self) -> list[Path]:
        """
        Create the directory of every table. Safe to call multiple times.

        Returns:
            Table directories
        """
        paths = []
        for table in self._tables.values():
            try:
                table.path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"Failed to create {table.path}: {e}") from e
            paths.append(table.path)
        return paths

    async def stats(self) -> VaultStats:
        """Per-table record counts ("plugin.table") plus totals."""
        table_stats: dict[str, int] = {}
        for plugin in self._plugins.values():
            for table in plugin.tables.values():
                table_stats[f"{plugin.id}.{table.name}"] = await table.count()

        return VaultStats(
            plugins=len(self._plugins),
            tables=len(self._tables),
            total_records=sum(table_stats.values()),
            table_stats=table_stats,
            last_sync=self._last_sync,
        )

    async def describe(self, name: str) -> dict[str, Any]:
        """
        Describe one table by mirror name ("reddit_posts") or "reddit.posts".

        Raises:
            ConfigurationError: If the table does not exist
        """
        table = self._resolve(name)
        return {
            "name": table.mirror_name,
            "plugin": table.plugin_id,
            "table": table.name,
            "path": str(table.path),
            "fields": table.schema.to_dict(),
            "methods": sorted(table.methods),
            "record_count": await table.count(),
            "sample_records": await table.list(limit=3),
        }

    async def export(self, format: ExportFormat = "json") -> str:
        """
        Export the vault.

        Args:
            format: "json" (nested dump of every record), "sql" (CREATE TABLE
                statements for the mirror) or "markdown" (summary)

        Raises:
            ValidationError: On an unknown format
        """
        logger.info(f"Exporting vault as {format}")

        if format == "json":
            result: dict[str, dict[str, list[dict[str, Any]]]] = {}
            for plugin in self._plugins.values():
                result[plugin.id] = {}
                for table in plugin.tables.values():
                    records = await table.list()
                    result[plugin.id][table.name] = [r.to_dict() for r in records]
            return json.dumps(result, indent=2, default=_json_default, ensure_ascii=False)

        if format == "sql":
            statements = [
                render_create_table(self._mirror_table(table))
                for table in self._tables.values()
            ]
            return "\n\n".join(statements) + "\n"

        if format == "markdown":
            lines = ["# Vault Export", ""]
            for plugin in self._plugins.values():
                lines += [f"## Plugin: {plugin.display_name} ({plugin.id})", ""]
                for table in plugin.tables.values():
                    count = await table.count()
                    lines += [f"### Table: {table.name} ({count} records)", ""]
            return "\n".join(lines)

        raise ValidationError.single(
            f"Unsupported export format {format!r}; expected json, sql or markdown",
            "format",
        )

    async def refresh(self) -> int:
        """
        Re-read every table from disk.

        Nothing is cached, so this only surfaces unreadable or corrupt
        records early.

        Returns:
            Number of records found
        """
        total = 0
        for table in self._tables.values():
            total += len(await table.list())
        logger.info(f"Refreshed vault from disk: {total} records")
        return total

    async def sync(self) -> dict[str, int]:
        """
        Rebuild the relational mirror from the file tree.

        Runs each plugin's before_sync hook on its table's records, hands
        every table to the mirror in one call, then runs after_sync.

        Returns:
            Rows synced per mirror table

        Raises:
            MirrorError: If no mirror is configured
        """
        if self._mirror is None:
            raise MirrorError("No relational mirror configured for this vault")

        batches: list[tuple[Table, list]] = []
        for table in self._tables.values():
            records = await table.list()
            records = await run_batch_hook(table.hooks.before_sync, records, "before_sync")
            batches.append((table, records))

        logger.info(f"Syncing vault to mirror: {', '.join(self._tables)}")
        await self._mirror.sync(
            [
                self._mirror_table(table, tuple(mirror_row(r) for r in records))
                for table, records in batches
            ]
        )

        for table, records in batches:
            await run_batch_hook(table.hooks.after_sync, records, "after_sync")

        self._last_sync = datetime.now(timezone.utc)
        return {table.mirror_name: len(records) for table, records in batches}

    async def query(self, sql: str) -> list[dict[str, Any]]:
        """
        Run SQL against the relational mirror.

        Tables are named by mirror name, e.g. ``SELECT * FROM reddit_posts``.

        Raises:
            MirrorError: If no mirror is configured or sync() has not run
        """
        if self._mirror is None:
            raise MirrorError("No relational mirror configured for this vault")
        if self._last_sync is None:
            raise MirrorError("query() requires a completed sync()")
        logger.debug(f"Executing SQL query: {sql}")
        return await self._mirror.query(sql)
