"""Tests for mdvault.plugin module."""

import pytest

from mdvault.actions import define_query
from mdvault.errors import ConfigurationError
from mdvault.plugin import PluginContext, TableConfig, compose_plugin, define_plugin
from mdvault.schema import Schema
from mdvault.table import Hooks


@define_query
async def newest(_, table):
    """Most recent record."""
    records = await table.list()
    return records[-1] if records else None


@define_query
async def table_names(_, tables):
    """Names of the plugin's tables."""
    return sorted(tables)


class TestDefinePlugin:
    """Tests for plugin declaration checks."""

    def test_minimal_plugin(self):
        """Bare schema mappings become TableConfigs."""
        plugin = define_plugin(id="notes", tables={"pages": {"title": "string"}})

        assert plugin.display_name == "notes"
        assert isinstance(plugin.tables["pages"], TableConfig)
        assert isinstance(plugin.tables["pages"].schema, Schema)

    @pytest.mark.parametrize("plugin_id", ["Reddit", "1st", "my-plugin", ""])
    def test_invalid_plugin_id(self, plugin_id):
        """Plugin ids must be lowercase identifiers."""
        with pytest.raises(ConfigurationError, match="Invalid plugin ID"):
            define_plugin(id=plugin_id, tables={})

    def test_invalid_table_name(self):
        """Table names follow the same pattern."""
        with pytest.raises(ConfigurationError, match="Invalid table name"):
            define_plugin(id="notes", tables={"Pages": {}})

    @pytest.mark.parametrize("name", ["list", "create", "schema", "record_path", "_private"])
    def test_table_method_collisions(self, name):
        """Custom methods may not shadow table members."""
        with pytest.raises(ConfigurationError):
            define_plugin(
                id="notes",
                tables={"pages": TableConfig(schema={}, methods={name: newest})},
            )

    def test_method_must_be_an_action(self):
        """Plain functions must be wrapped by define_query/define_mutation."""
        with pytest.raises(ConfigurationError, match="define_query"):
            define_plugin(
                id="notes",
                tables={"pages": TableConfig(schema={}, methods={"latest": lambda v, t: v})},
            )

    def test_plugin_method_colliding_with_table(self):
        """A plugin method cannot share a table's name."""
        with pytest.raises(ConfigurationError):
            define_plugin(id="notes", tables={"pages": {}}, methods={"pages": table_names})

    def test_table_colliding_with_plugin_member(self):
        """A table cannot be named like a plugin attribute."""
        with pytest.raises(ConfigurationError, match="collides"):
            define_plugin(id="notes", tables={"methods": {}})

    def test_references_must_name_sibling_table(self):
        """references points at a table of the same plugin."""
        with pytest.raises(ConfigurationError, match="unknown table 'authors'"):
            define_plugin(
                id="notes",
                tables={"pages": {"author_id": {"type": "string", "references": "authors"}}},
            )

    def test_hooks_must_be_hooks(self):
        """hooks must be a Hooks instance."""
        with pytest.raises(ConfigurationError):
            define_plugin(id="notes", tables={}, hooks={"after_read": print})


class TestComposePlugin:
    """Tests for compose_plugin."""

    @pytest.fixture
    def notes(self):
        return define_plugin(
            id="notes",
            display_name="Notes",
            tables={
                "pages": TableConfig(schema={"title": "string"}, methods={"newest": newest}),
                "tags": {"name": "string"},
            },
            methods={"table_names": table_names},
            hooks=Hooks(),
        )

    def test_creates_no_directories(self, notes, tmp_path):
        """Composition only builds objects."""
        compose_plugin(notes, tmp_path)

        assert list(tmp_path.iterdir()) == []

    def test_tables_rooted_under_plugin(self, notes, tmp_path):
        """Each table lives at {root}/{plugin}/{table}."""
        plugin = compose_plugin(notes, tmp_path, extension="markdown")

        assert plugin.pages.path == tmp_path / "notes" / "pages"
        assert plugin.pages.extension == "markdown"
        assert plugin.tags.mirror_name == "notes_tags"

    @pytest.mark.asyncio
    async def test_table_method_bound_to_its_table(self, notes, tmp_path):
        """Table methods receive their own table as context."""
        plugin = compose_plugin(notes, tmp_path)
        created = await plugin.pages.create({"title": "hello"})

        assert await plugin.pages.newest() == created
        assert plugin.pages.newest.name == "notes_pages.newest"
        assert "newest" in dir(plugin.pages)

    @pytest.mark.asyncio
    async def test_plugin_method_sees_only_its_tables(self, notes, tmp_path):
        """Plugin methods receive a context of this plugin's tables."""
        plugin = compose_plugin(notes, tmp_path)

        assert await plugin.table_names() == ["pages", "tags"]
        assert isinstance(plugin.table_names.context, PluginContext)
        assert plugin.table_names.context.pages is plugin.pages

    def test_unknown_member(self, notes, tmp_path):
        """Unknown attributes raise AttributeError."""
        plugin = compose_plugin(notes, tmp_path)

        with pytest.raises(AttributeError):
            plugin.missing
        with pytest.raises(AttributeError):
            plugin.pages.missing
