"""Unit tests for the Vault component."""

import json

import pytest

from mdvault.config import VaultSettings
from mdvault.errors import ConfigurationError, MirrorError, ValidationError
from mdvault.mirror import MirrorTable
from mdvault.plugin import define_plugin
from mdvault.table import Hooks
from mdvault.vault import Vault, VaultStats


class TestVaultConstruction:
    """Tests for composing plugins into a vault."""

    def test_nested_namespace(self, vault):
        """Plugins are attributes; tables hang off them."""
        assert vault.reddit.posts is vault.tables["reddit_posts"]
        assert vault.plugins["reddit"] is vault.reddit
        assert "reddit" in dir(vault)

    def test_flat_namespace(self, vault_root, reddit_plugin):
        """With namespace=flat, tables are attributes by mirror name."""
        vault = Vault(vault_root, [reddit_plugin], settings=VaultSettings(namespace="flat"))

        assert vault.reddit_posts is vault.tables["reddit_posts"]
        with pytest.raises(AttributeError):
            vault.reddit

    def test_settings_loaded_from_config_file(self, vault_root, reddit_plugin):
        """vault-config.yaml is read when no settings are passed."""
        (vault_root / "vault-config.yaml").write_text("namespace: flat\nextension: txt\n")

        vault = Vault(vault_root, [reddit_plugin])

        assert vault.settings.namespace == "flat"
        assert vault.reddit_comments.extension == "txt"

    def test_duplicate_mirror_name_fails_before_touching_disk(self, vault_root):
        """Two plugins producing blog_posts are rejected up front."""
        first = define_plugin(id="blog", tables={"posts": {"title": "string"}})
        second = define_plugin(id="blog", tables={"posts": {"body": "string"}})

        with pytest.raises(ConfigurationError, match='Duplicate table name "blog_posts"'):
            Vault(vault_root, [first, second])

        assert list(vault_root.iterdir()) == []

    def test_duplicate_mirror_name_across_plugin_ids(self, vault_root):
        """Different plugin/table splits can still clash."""
        first = define_plugin(id="blog", tables={"x_posts": {}})
        second = define_plugin(id="blog_x", tables={"posts": {}})

        with pytest.raises(ConfigurationError, match="blog_x_posts"):
            Vault(vault_root, [first, second])

    def test_duplicate_plugin_id(self, vault_root):
        """Plugin ids are unique within a vault."""
        first = define_plugin(id="blog", tables={"posts": {}})
        second = define_plugin(id="blog", tables={"pages": {}})

        with pytest.raises(ConfigurationError, match="Duplicate plugin id"):
            Vault(vault_root, [first, second])

    def test_plugin_id_colliding_with_operation(self, vault_root):
        """A plugin named like a vault operation is rejected."""
        plugin = define_plugin(id="stats", tables={"daily": {}})

        with pytest.raises(ConfigurationError, match="vault operation"):
            Vault(vault_root, [plugin])

    def test_flat_table_colliding_with_operation(self, vault_root):
        """In flat mode, mirror names may not shadow operations."""
        plugin = define_plugin(id="last", tables={"sync": {}})

        with pytest.raises(ConfigurationError, match="vault operation"):
            Vault(vault_root, [plugin], settings=VaultSettings(namespace="flat"))

    def test_rejects_non_plugins(self, vault_root):
        """Only PluginConfig objects can be composed."""
        with pytest.raises(ConfigurationError):
            Vault(vault_root, [{"id": "reddit"}])

    def test_construction_creates_no_directories(self, vault, vault_root):
        """Directories appear lazily or via ensure_structure."""
        assert list(vault_root.iterdir()) == []

        paths = vault.ensure_structure()

        assert sorted(p.name for p in paths) == ["comments", "posts"]
        assert (vault_root / "reddit" / "posts").is_dir()
        assert vault.ensure_structure() == paths

    @pytest.mark.asyncio
    async def test_vaults_share_one_root(self, vault, vault_root, reddit_plugin, settings):
        """Two vaults on the same root see each other's records."""
        other = Vault(vault_root, [reddit_plugin], settings=settings)
        created = await vault.reddit.posts.create({"title": "hi"})

        assert await other.reddit.posts.get(created.id) == created


class TestVaultStats:
    """Tests for stats and describe."""

    @pytest.mark.asyncio
    async def test_stats_counts_every_table(self, vault):
        """stats reports per-table counts and the total."""
        for i in range(3):
            await vault.reddit.posts.create({"title": f"post {i}"})
        for i in range(2):
            await vault.reddit.comments.create({"body": f"comment {i}"})

        stats = await vault.stats()

        assert isinstance(stats, VaultStats)
        assert stats.table_stats == {"reddit.posts": 3, "reddit.comments": 2}
        assert stats.total_records == 5
        assert stats.plugins == 1
        assert stats.tables == 2
        assert stats.last_sync is None

    @pytest.mark.asyncio
    async def test_describe(self, vault):
        """describe reports schema, methods and a sample."""
        await vault.reddit.posts.create({"title": "hi"})

        info = await vault.describe("reddit_posts")

        assert info["name"] == "reddit_posts"
        assert info["plugin"] == "reddit"
        assert info["fields"]["title"] == {"type": "string", "required": True}
        assert info["record_count"] == 1
        assert len(info["sample_records"]) == 1
        assert await vault.describe("reddit.posts") == info

    @pytest.mark.asyncio
    async def test_describe_unknown_table(self, vault):
        """Unknown tables are a configuration error."""
        with pytest.raises(ConfigurationError, match="does not exist"):
            await vault.describe("reddit_votes")

    @pytest.mark.asyncio
    async def test_refresh_counts_records(self, vault):
        """refresh re-reads every table."""
        await vault.reddit.posts.create({"title": "hi"})
        await vault.reddit.comments.create({"body": "yo"})

        assert await vault.refresh() == 2


class TestVaultExport:
    """Tests for export formats."""

    @pytest.mark.asyncio
    async def test_export_json(self, vault):
        """JSON export nests records by plugin and table."""
        created = await vault.reddit.posts.create({"title": "hi", "content": "body"})

        data = json.loads(await vault.export("json"))

        assert data["reddit"]["comments"] == []
        assert data["reddit"]["posts"] == [
            {"id": created.id, "title": "hi", "score": 0, "content": "body"}
        ]

    @pytest.mark.asyncio
    async def test_export_sql(self, vault):
        """SQL export has one CREATE TABLE per mirror table."""
        sql = await vault.export("sql")

        assert "-- Table: reddit_posts" in sql
        assert "-- Plugin: reddit, Table: comments" in sql
        assert "CREATE TABLE IF NOT EXISTS reddit_posts (" in sql
        assert "id TEXT PRIMARY KEY" in sql
        assert "-- schema fields: title, score" in sql
        assert "INSERT" not in sql

    @pytest.mark.asyncio
    async def test_export_markdown(self, vault):
        """Markdown export summarises plugins and tables."""
        await vault.reddit.posts.create({"title": "hi"})

        text = await vault.export("markdown")

        assert text.startswith("# Vault Export")
        assert "## Plugin: reddit (reddit)" in text
        assert "### Table: posts (1 records)" in text
        assert "### Table: comments (0 records)" in text

    @pytest.mark.asyncio
    async def test_export_unknown_format(self, vault):
        """Unknown formats are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await vault.export("csv")

        assert exc_info.value.paths == [("format",)]


class TestVaultMirror:
    """Tests for sync and query against a relational mirror."""

    @pytest.mark.asyncio
    async def test_sync_requires_mirror(self, vault):
        """sync without a mirror is a MirrorError."""
        with pytest.raises(MirrorError):
            await vault.sync()

    @pytest.mark.asyncio
    async def test_query_requires_sync(self, vault_root, reddit_plugin, settings, fake_mirror):
        """query before the first sync is a MirrorError."""
        vault = Vault(vault_root, [reddit_plugin], settings=settings, mirror=fake_mirror)

        with pytest.raises(MirrorError, match="sync"):
            await vault.query("SELECT * FROM reddit_posts")
        assert fake_mirror.queries == []

    @pytest.mark.asyncio
    async def test_sync_hands_rows_to_mirror(
        self, vault_root, reddit_plugin, settings, fake_mirror
    ):
        """sync passes every table with flattened rows in one call."""
        vault = Vault(vault_root, [reddit_plugin], settings=settings, mirror=fake_mirror)
        created = await vault.reddit.posts.create({"title": "hi"})

        counts = await vault.sync()

        assert counts == {"reddit_posts": 1, "reddit_comments": 0}
        assert len(fake_mirror.synced) == 1
        tables = {t.name: t for t in fake_mirror.synced[0]}
        assert all(isinstance(t, MirrorTable) for t in tables.values())
        row = tables["reddit_posts"].rows[0]
        assert row["id"] == created.id
        assert row["title"] == "hi"
        assert row["created_at"] == created.created_at
        assert [c.name for c in tables["reddit_comments"].columns] == [
            "id",
            "content",
            "created_at",
            "body",
            "post_id",
        ]
        assert tables["reddit_comments"].columns[-1].references == "posts"
        assert vault.last_sync is not None
        assert (await vault.stats()).last_sync == vault.last_sync

    @pytest.mark.asyncio
    async def test_query_delegates_after_sync(
        self, vault_root, reddit_plugin, settings, fake_mirror
    ):
        """query forwards SQL to the mirror once synced."""
        vault = Vault(vault_root, [reddit_plugin], settings=settings, mirror=fake_mirror)
        await vault.reddit.posts.create({"title": "hi"})
        await vault.sync()

        rows = await vault.query("SELECT * FROM reddit_posts")

        assert fake_mirror.queries == ["SELECT * FROM reddit_posts"]
        assert rows[0]["title"] == "hi"

    @pytest.mark.asyncio
    async def test_sync_hooks(self, vault_root, settings, fake_mirror):
        """before_sync can reshape records; after_sync sees the synced batch."""
        seen = []

        def redact(records):
            for record in records:
                record.fields["title"] = "***"

        plugin = define_plugin(
            id="notes",
            tables={"pages": {"title": "string"}},
            hooks=Hooks(before_sync=redact, after_sync=seen.extend),
        )
        vault = Vault(vault_root, [plugin], settings=settings, mirror=fake_mirror)
        created = await vault.notes.pages.create({"title": "secret"})

        await vault.sync()

        assert fake_mirror.synced[0][0].rows[0]["title"] == "***"
        assert [r.id for r in seen] == [created.id]
        assert (await vault.notes.pages.get(created.id))["title"] == "secret"
