"""Vault layout, naming and record id helpers.

Conventions:
- Filesystem: {vault_root}/{plugin_id}/{table_name}/{record_id}.{ext}
- Relational mirror: {plugin_id}_{table_name}
- Record id: {plugin_id}_{table_name}_{unix_millis}_{base36_suffix}
"""

import re
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path

# Plugin ids and table names: lowercase, SQL-safe
NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_SUFFIX_LENGTH = 9
_ID_TAIL = re.compile(r"_(\d+)_([0-9a-z]+)$")


def is_valid_name(name: str) -> bool:
    """Check a plugin id or table name against the naming pattern."""
    return isinstance(name, str) and NAME_PATTERN.match(name) is not None


def mirror_name(plugin_id: str, table_name: str) -> str:
    """
    Get the relational mirror table name for a plugin's table.

    Example:
        mirror_name("reddit", "posts") -> "reddit_posts"
    """
    return f"{plugin_id}_{table_name}"


def get_plugin_path(vault_root: Path, plugin_id: str) -> Path:
    """Get the directory for a plugin's tables."""
    return vault_root / plugin_id


def get_table_path(vault_root: Path, plugin_id: str, table_name: str) -> Path:
    """Get the directory holding one table's record files."""
    return get_plugin_path(vault_root, plugin_id) / table_name


def generate_record_id(table_mirror_name: str, now_ms: int | None = None) -> str:
    """
    Mint a new record id for a table.

    Args:
        table_mirror_name: Mirror name of the owning table
        now_ms: Creation time in unix milliseconds (defaults to now)

    Returns:
        Id like "reddit_posts_1712345678901_k3j9x0a1b"
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_SUFFIX_LENGTH))
    return f"{table_mirror_name}_{now_ms}_{suffix}"


def record_timestamp(record_id: str) -> datetime | None:
    """
    Recover the creation time encoded in a record id.

    Returns:
        UTC datetime, or None if the id was not minted by generate_record_id
    """
    match = _ID_TAIL.search(record_id)
    if not match:
        return None
    try:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def is_safe_record_id(record_id: str) -> bool:
    """Check that an id maps to a file directly inside its table directory."""
    return (
        isinstance(record_id, str)
        and bool(record_id)
        and not record_id.startswith(".")
        and "/" not in record_id
        and "\\" not in record_id
        and "\x00" not in record_id
    )


def record_filename(record_id: str, extension: str) -> str:
    return f"{record_id}.{extension}"


def parse_record_filename(filename: str, extension: str) -> str | None:
    """
    Extract the record id from a record filename.

    Returns:
        Record id, or None if the file is not a record file
    """
    suffix = f".{extension}"
    if not filename.endswith(suffix) or filename.startswith("."):
        return None
    record_id = filename[: -len(suffix)]
    return record_id or None
