"""Configuration management for mdvault.

Process-wide defaults come from the environment (a ``.env`` file is honoured);
per-vault settings come from ``vault-config.yaml`` at the vault root.
"""

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from mdvault.errors import ConfigurationError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


# Default vault root used by the CLI
MDVAULT_PATH = Path(
    get_env("MDVAULT_PATH", os.path.expanduser("~/.mdvault"))
    or os.path.expanduser("~/.mdvault")
).expanduser()

# Record file extension (without the dot)
RECORD_EXTENSION = (get_env("MDVAULT_RECORD_EXTENSION", "md") or "md").lstrip(".")

# Logging
LOG_LEVEL = get_env("MDVAULT_LOG_LEVEL", "INFO") or "INFO"
DEBUG = get_env_bool("MDVAULT_DEBUG")

CONFIG_FILENAME = "vault-config.yaml"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure and return logger; debug raises the mdvault logger to DEBUG."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    )
    vault_logger = logging.getLogger("mdvault")
    if debug:
        vault_logger.setLevel(logging.DEBUG)
    return vault_logger


class VaultSettings(BaseModel):
    """Typed per-vault settings loaded from vault-config.yaml.

    Frozen so a constructed vault can never change its own configuration.
    Extra fields are forbidden to catch typos in config.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    extension: str = Field(default_factory=lambda: RECORD_EXTENSION)
    namespace: Literal["nested", "flat"] = "nested"

    @field_validator("extension")
    @classmethod
    def _check_extension(cls, value: str) -> str:
        value = value.lstrip(".")
        if not value or "/" in value or "\\" in value:
            raise ValueError("extension must be a non-empty file suffix")
        return value


def load_settings(vault_root: Path | str) -> VaultSettings:
    """Load vault-config.yaml from a vault root.

    Args:
        vault_root: Vault root directory

    Returns:
        VaultSettings. Defaults if the file is missing or empty.

    Raises:
        ConfigurationError: If the file is invalid YAML, not a mapping,
            or contains unknown keys.
    """
    config_file = Path(vault_root).expanduser() / CONFIG_FILENAME

    if not config_file.exists():
        logger.debug(f"No config file at {config_file}")
        return VaultSettings()

    try:
        with open(config_file, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {config_file}: {e}")
        raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {config_file}: {e}") from e

    if raw is None:
        logger.debug("Config file is empty or null")
        return VaultSettings()

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"{CONFIG_FILENAME} must be a mapping, got {type(raw).__name__}"
        )

    try:
        settings = VaultSettings.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid {CONFIG_FILENAME}: {e}") from e

    logger.debug(f"Vault settings loaded from {config_file}: {settings}")
    return settings
