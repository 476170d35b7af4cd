"""Shared test fixtures and configuration."""

from __future__ import annotations

from typing import Any

import pytest

from mdvault.config import VaultSettings
from mdvault.plugin import define_plugin
from mdvault.vault import Vault


class FakeMirror:
    """In-memory relational mirror recording what it was given."""

    def __init__(self):
        self.synced: list[list[Any]] = []
        self.queries: list[str] = []

    async def sync(self, tables):
        self.synced.append(list(tables))

    async def query(self, sql):
        self.queries.append(sql)
        tables = self.synced[-1] if self.synced else []
        return [row for table in tables for row in table.rows]


@pytest.fixture
def vault_root(tmp_path):
    """Provide an empty vault root directory."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def reddit_plugin():
    """Minimal reddit plugin: posts and comments."""
    return define_plugin(
        id="reddit",
        tables={
            "posts": {
                "title": {"type": "string", "required": True},
                "score": {"type": "number", "default": 0},
            },
            "comments": {
                "body": {"type": "string", "required": True},
                "post_id": {"type": "string", "references": "posts"},
            },
        },
    )


@pytest.fixture
def settings():
    """Explicit default settings, independent of the environment."""
    return VaultSettings(extension="md", namespace="nested")


@pytest.fixture
def vault(vault_root, reddit_plugin, settings):
    """A vault with the minimal reddit plugin."""
    return Vault(vault_root, [reddit_plugin], settings=settings)


@pytest.fixture
def posts(vault):
    """The reddit posts table."""
    return vault.reddit.posts


@pytest.fixture
def fake_mirror():
    """An in-memory relational mirror."""
    return FakeMirror()
