"""Table engine: CRUD and in-memory queries over one directory of record files.

Every operation is a short sequence of filesystem calls; nothing is cached,
so every Table opened on the same directory sees the same records. Writes
rewrite files in place and are not serialized: the last writer wins.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Literal

from mdvault.actions import BoundAction
from mdvault.codec import RecordCodec
from mdvault.errors import (
    HookError,
    Issue,
    NotFoundError,
    RecordDecodeError,
    StorageIOError,
    ValidationError,
)
from mdvault.layout import (
    generate_record_id,
    is_safe_record_id,
    mirror_name,
    parse_record_filename,
    record_filename,
)
from mdvault.record import MISSING, Record
from mdvault.schema import Schema

logger = logging.getLogger(__name__)

# The fixed CRUD surface of every table
BUILTIN_OPERATIONS = frozenset(
    {"get", "list", "create", "update", "delete", "count", "exists"}
)

RecordHook = Callable[[Record], Any]
BatchHook = Callable[[list[Record]], Any]


@dataclass(frozen=True)
class Hooks:
    """Optional record transforms, sync or async.

    Single-record hooks receive a Record and return a Record (or None to
    keep the possibly mutated input). Batch hooks receive and return the
    list of records being synced. Hooks may never change a record id.
    ``before_read`` is reserved and not called.
    """

    before_read: RecordHook | None = None
    after_read: RecordHook | None = None
    before_write: RecordHook | None = None
    after_write: RecordHook | None = None
    before_sync: BatchHook | None = None
    after_sync: BatchHook | None = None


async def _call(fn: Callable[[Any], Any], value: Any) -> Any:
    result = fn(value)
    if inspect.isawaitable(result):
        result = await result
    return value if result is None else result


async def run_record_hook(hook: RecordHook | None, record: Record, stage: str) -> Record:
    """Apply a single-record hook and enforce that it keeps the id."""
    if hook is None:
        return record
    original_id = record.id
    result = await _call(hook, record)
    if not isinstance(result, Record):
        raise HookError(f"{stage} hook returned {type(result).__name__}, not a Record")
    if result.id != original_id:
        raise HookError(
            f"{stage} hook changed record id {original_id!r} to {result.id!r}"
        )
    return result


async def run_batch_hook(
    hook: BatchHook | None, records: list[Record], stage: str
) -> list[Record]:
    """Apply a batch hook and enforce that it keeps every id."""
    if hook is None:
        return records
    before = sorted(r.id for r in records)
    result = await _call(hook, records)
    if not isinstance(result, list) or not all(isinstance(r, Record) for r in result):
        raise HookError(f"{stage} hook must return a list of Records")
    if sorted(r.id for r in result) != before:
        raise HookError(f"{stage} hook changed the set of record ids")
    return result


def _same(a: Any, b: Any) -> bool:
    # True == 1 in Python; a boolean filter must not match a number
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _sort_key(value: Any) -> tuple[int, Any]:
    """Total order across value kinds: numbers, booleans, strings, dates, rest."""
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    if isinstance(value, date):
        return (3, datetime(value.year, value.month, value.day).timestamp())
    return (4, repr(value))


class Table:
    """CRUD surface for one table of one plugin.

    Records live at ``{path}/{record_id}.{extension}``. Custom methods
    composed onto the table are reachable as attributes:

        posts = vault.reddit.posts
        await posts.create({"title": "hi"})
        await posts.top_posts(limit=5)
    """

    def __init__(
        self,
        plugin_id: str,
        name: str,
        schema: Schema,
        path: Path,
        extension: str = "md",
        hooks: Hooks | None = None,
    ):
        self.plugin_id = plugin_id
        self.name = name
        self.schema = schema
        self.path = Path(path)
        self.extension = extension
        self.hooks = hooks or Hooks()
        self.mirror_name = mirror_name(plugin_id, name)
        self.codec = RecordCodec(schema)
        self._methods: dict[str, BoundAction] = {}

    # --- Custom methods ---

    @property
    def methods(self) -> Mapping[str, BoundAction]:
        """Custom methods composed onto this table."""
        return MappingProxyType(self._methods)

    def attach_methods(self, methods: Mapping[str, BoundAction]) -> None:
        """Install custom methods. Name checks are the composer's job."""
        self._methods.update(methods)

    def __getattr__(self, name: str) -> BoundAction:
        methods = self.__dict__.get("_methods", {})
        if name in methods:
            return methods[name]
        raise AttributeError(f"Table {self.__dict__.get('mirror_name')!r} has no method {name!r}")

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self._methods))

    def __repr__(self) -> str:
        return f"Table({self.mirror_name}, path={self.path})"

    # --- Filesystem helpers ---

    def record_path(self, record_id: str) -> Path:
        return self.path / record_filename(record_id, self.extension)

    def _read(self, record_id: str) -> Record | None:
        """Read and decode one record file without running hooks."""
        if not is_safe_record_id(record_id):
            return None
        path = self.record_path(record_id)
        try:
            data = path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise StorageIOError(f"Failed to read {path}: {e}") from e

        record = self.codec.decode(data)
        if record.id != record_id:
            raise RecordDecodeError(
                f"{path} declares id {record.id!r} but is named for {record_id!r}"
            )
        logger.debug(f"Read {record_id} from {self.mirror_name}")
        return record

    def _scan(self) -> list[Record]:
        """Decode every record file in the table directory, in filename order."""
        try:
            entries = sorted(self.path.iterdir(), key=lambda p: p.name)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageIOError(f"Failed to list {self.path}: {e}") from e

        records = []
        for entry in entries:
            record_id = parse_record_filename(entry.name, self.extension)
            if record_id is None or not entry.is_file():
                if not entry.name.startswith("."):
                    logger.warning(f"Skipping non-record entry {entry}")
                continue
            record = self._read(record_id)
            # Removed between listing and reading
            if record is not None:
                records.append(record)
        return records

    def _write(self, record: Record, *, create: bool) -> None:
        path = self.record_path(record.id)
        data = self.codec.encode(record)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            # "x" refuses to overwrite on create; updates rewrite in place
            with open(path, "xb" if create else "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageIOError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {record.id} to {self.mirror_name}")

    # --- Write pipeline ---

    async def _prepare_write(self, record: Record) -> Record:
        """before_write hook, then schema normalization and unique checks."""
        record = await run_record_hook(self.hooks.before_write, record, "before_write")
        if not isinstance(record.content, str):
            raise ValidationError.single("expected a string", "content")
        record = record.replace(fields=self.schema.normalize(record.fields))
        self._check_unique(record)
        return record

    def _check_unique(self, record: Record) -> None:
        unique = [
            name for name in self.schema.unique_fields if record.fields.get(name) is not None
        ]
        if not unique:
            return
        issues = []
        others = [r for r in self._scan() if r.id != record.id]
        for name in unique:
            value = record.fields[name]
            if any(_same(other.fields.get(name), value) for other in others):
                issues.append(Issue(message=f"value {value!r} must be unique", path=(name,)))
        if issues:
            raise ValidationError(issues)

    # --- Public operations ---

    async def get(self, record_id: str) -> Record | None:
        """
        Get a single record by id.

        Returns:
            The record, or None if it does not exist
        """
        record = self._read(record_id)
        if record is None:
            return None
        return await run_record_hook(self.hooks.after_read, record, "after_read")

    async def list(
        self,
        where: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        order: Literal["asc", "desc"] = "asc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        """
        List records: filter, then sort, then offset, then limit.

        Args:
            where: Exact-equality filter on id, content or any field
            order_by: Field to sort by; records missing it sort last
            order: "asc" (default) or "desc"
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            Matching records
        """
        issues = []
        if order not in ("asc", "desc"):
            issues.append(Issue(message="must be 'asc' or 'desc'", path=("order",)))
        for label, value in (("limit", limit), ("offset", offset)):
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, int) or value < 0
            ):
                issues.append(Issue(message="must be a non-negative integer", path=(label,)))
        if issues:
            raise ValidationError(issues)

        conditions = {
            key: self.schema.coerce(key, value) for key, value in (where or {}).items()
        }

        records = []
        for record in self._scan():
            record = await run_record_hook(self.hooks.after_read, record, "after_read")
            if all(
                (actual := record.lookup(key)) is not MISSING and _same(actual, expected)
                for key, expected in conditions.items()
            ):
                records.append(record)

        if order_by:
            present = [r for r in records if r.get(order_by) is not None]
            missing = [r for r in records if r.get(order_by) is None]
            present.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=order == "desc")
            records = present + missing

        if offset:
            records = records[offset:]
        if limit is not None:
            records = records[:limit]
        return records

    async def create(self, fields: Mapping[str, Any] | None = None) -> Record:
        """
        Create a record with a freshly minted id.

        Args:
            fields: Field values; the optional "content" key is the body

        Returns:
            The stored record (defaults applied)

        Raises:
            ValidationError: If the fields do not satisfy the schema
        """
        data = dict(fields or {})
        if "id" in data:
            raise ValidationError.single("id is assigned on create and cannot be set", "id")
        content = data.pop("content", "")
        if content is None:
            content = ""

        record = Record(id=generate_record_id(self.mirror_name), fields=data, content=content)
        record = await self._prepare_write(record)
        self._write(record, create=True)
        logger.debug(f"Created {record.id}")
        return await run_record_hook(self.hooks.after_write, record, "after_write")

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        """
        Merge partial fields onto an existing record and rewrite it.

        A field set to None is removed (and fails validation if required).

        Raises:
            NotFoundError: If the record does not exist
            ValidationError: If the merged record does not satisfy the schema
        """
        existing = self._read(record_id)
        if existing is None:
            raise NotFoundError(self.mirror_name, record_id)

        data = dict(fields or {})
        if "id" in data and data.pop("id") != record_id:
            raise ValidationError.single("id is immutable", "id")
        content = data.pop("content", existing.content)
        if content is None:
            content = ""

        merged = Record(
            id=record_id,
            fields={**existing.fields, **data},
            content=content,
        )
        merged = await self._prepare_write(merged)
        self._write(merged, create=False)
        logger.debug(f"Updated {record_id}")
        return await run_record_hook(self.hooks.after_write, merged, "after_write")

    async def delete(self, record_id: str) -> bool:
        """
        Delete a record.

        Returns:
            True if a file was removed, False if it was already absent
        """
        if not is_safe_record_id(record_id):
            return False
        path = self.record_path(record_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f"Failed to delete {path}: {e}") from e
        logger.debug(f"Deleted {record_id} from {self.mirror_name}")
        return True

    async def count(self, where: Mapping[str, Any] | None = None) -> int:
        """Count records, optionally filtered like list()."""
        return len(await self.list(where=where))

    async def exists(self, record_id: str) -> bool:
        """Check whether a record file exists."""
        return is_safe_record_id(record_id) and self.record_path(record_id).is_file()
