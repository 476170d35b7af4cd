"""The record value type."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mdvault.layout import record_timestamp

MISSING = object()


@dataclass
class Record:
    """One persisted entity: an id, typed fields and optional body text."""

    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    content: str = ""

    def __getitem__(self, key: str) -> Any:
        if key == "id":
            return self.id
        if key == "content":
            return self.content
        return self.fields[key]

    def get(self, key: str, default: Any = None) -> Any:
        """Look up id, content or a field, with a default for absent fields."""
        value = self.lookup(key)
        return default if value is MISSING else value

    def lookup(self, key: str) -> Any:
        if key == "id":
            return self.id
        if key == "content":
            return self.content
        return self.fields.get(key, MISSING)

    @property
    def created_at(self) -> datetime | None:
        """Creation time encoded in the id."""
        return record_timestamp(self.id)

    def replace(self, **changes: Any) -> Record:
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to {id, **fields, content}."""
        return {"id": self.id, **self.fields, "content": self.content}
