"""Tests for mdvault.config module."""

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from mdvault.config import (
    VaultSettings,
    get_env,
    get_env_bool,
    load_settings,
    setup_logging,
)
from mdvault.errors import ConfigurationError


class TestEnvHelpers:
    """Tests for environment variable helpers."""

    def test_get_env_default(self, monkeypatch):
        """get_env falls back to the default."""
        monkeypatch.delenv("MDVAULT_TEST_VALUE", raising=False)

        assert get_env("MDVAULT_TEST_VALUE", "fallback") == "fallback"

    @pytest.mark.parametrize(
        "value,expected",
        [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False), ("", False)],
    )
    def test_get_env_bool(self, monkeypatch, value, expected):
        """get_env_bool understands common spellings."""
        monkeypatch.setenv("MDVAULT_TEST_BOOL", value)

        assert get_env_bool("MDVAULT_TEST_BOOL") is expected

    def test_setup_logging_debug(self):
        """debug=True raises the mdvault logger to DEBUG."""
        vault_logger = logging.getLogger("mdvault")
        previous = vault_logger.level
        try:
            assert setup_logging(debug=True) is vault_logger
            assert vault_logger.level == logging.DEBUG
        finally:
            vault_logger.setLevel(previous)


class TestVaultSettings:
    """Tests for the VaultSettings model."""

    def test_defaults(self):
        """Nested namespace by default."""
        settings = VaultSettings(extension="md")

        assert settings.namespace == "nested"
        assert settings.extension == "md"

    def test_extension_dot_stripped(self):
        """A leading dot on the extension is dropped."""
        assert VaultSettings(extension=".markdown").extension == "markdown"

    @pytest.mark.parametrize("extension", ["", ".", "a/b"])
    def test_invalid_extension(self, extension):
        """Empty or path-like extensions are rejected."""
        with pytest.raises(PydanticValidationError):
            VaultSettings(extension=extension)

    def test_frozen(self):
        """Settings cannot be changed after construction."""
        settings = VaultSettings(extension="md")

        with pytest.raises(PydanticValidationError):
            settings.namespace = "flat"


class TestLoadSettings:
    """Tests for load_settings."""

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        """No vault-config.yaml means default settings."""
        assert load_settings(tmp_path).namespace == "nested"

    @pytest.mark.parametrize("content", ["", "null"])
    def test_empty_file_gives_defaults(self, tmp_path: Path, content):
        """An empty or null file means default settings."""
        (tmp_path / "vault-config.yaml").write_text(content)

        assert load_settings(tmp_path).namespace == "nested"

    def test_loads_values(self, tmp_path: Path):
        """Values in the file are applied."""
        (tmp_path / "vault-config.yaml").write_text("namespace: flat\nextension: .txt\n")

        settings = load_settings(tmp_path)

        assert settings.namespace == "flat"
        assert settings.extension == "txt"

    def test_invalid_yaml(self, tmp_path: Path):
        """Broken YAML is a configuration error."""
        (tmp_path / "vault-config.yaml").write_text("invalid: yaml: content: [")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(tmp_path)

    def test_non_mapping(self, tmp_path: Path):
        """The file must hold a mapping."""
        (tmp_path / "vault-config.yaml").write_text("- item1\n- item2")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_settings(tmp_path)

    def test_unknown_key(self, tmp_path: Path):
        """Typos in the config file are caught."""
        (tmp_path / "vault-config.yaml").write_text("namespaces: flat\n")

        with pytest.raises(ConfigurationError, match="Invalid vault-config.yaml"):
            load_settings(tmp_path)

    def test_invalid_namespace(self, tmp_path: Path):
        """Only nested and flat namespaces exist."""
        (tmp_path / "vault-config.yaml").write_text("namespace: dollar\n")

        with pytest.raises(ConfigurationError):
            load_settings(tmp_path)
