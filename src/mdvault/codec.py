"""YAML frontmatter encoding and decoding for record files.

A record file is a YAML header between ``---`` delimiters, a blank line,
then the free-form body:

    ---
    id: reddit_posts_1712345678901_k3j9x0a1b
    title: Hello
    score: 0
    ---

    Body text.
"""

from datetime import datetime
from typing import Any

import yaml

from mdvault.errors import RecordDecodeError, ValidationError
from mdvault.record import Record
from mdvault.schema import FieldType, Schema

DELIMITER = "---"


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """
    Split note content into its YAML header and body.

    Args:
        text: Full file content including frontmatter

    Returns:
        (header, body) - Parsed header mapping and remaining body text

    Raises:
        RecordDecodeError: If the header is missing, unterminated, not
            valid YAML or not a mapping.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    lines = text.split("\n")
    if lines[0].rstrip("\r") != DELIMITER:
        raise RecordDecodeError("File does not start with a '---' header block")

    for end, line in enumerate(lines[1:], start=1):
        if line.rstrip("\r") == DELIMITER:
            break
    else:
        raise RecordDecodeError("Unterminated header block")

    try:
        header = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as e:
        raise RecordDecodeError(f"Unparsable header block: {e}") from e

    if header is None:
        header = {}
    if not isinstance(header, dict):
        raise RecordDecodeError(
            f"Header block must be a mapping, got {type(header).__name__}"
        )

    body = "\n".join(lines[end + 1 :])
    # One blank line separates header and body
    if body.startswith("\n"):
        body = body[1:]
    return header, body


# Characters YAML loaders treat as line breaks inside flow scalars
_LINE_BREAKS = "\r\n\x85\u2028\u2029"


class _HeaderDumper(yaml.SafeDumper):
    """SafeDumper that double-quotes strings holding line breaks."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    if any(ch in _LINE_BREAKS for ch in value):
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style='"')
    return dumper.represent_str(value)


_HeaderDumper.add_representer(str, _represent_str)


def write_frontmatter(header: dict[str, Any], body: str) -> str:
    """
    Render a header mapping and body as frontmatter text.

    Strings containing line breaks are written double-quoted with escapes,
    so NEL and the Unicode line/paragraph separators survive a reload.

    Raises:
        yaml.YAMLError: If a header value cannot be represented.
    """
    dumped = yaml.dump(
        header,
        Dumper=_HeaderDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{DELIMITER}\n{dumped}{DELIMITER}\n\n{body}"


class RecordCodec:
    """Converts records of one schema to and from file bytes."""

    encoding = "utf-8"

    def __init__(self, schema: Schema):
        self.schema = schema

    def encode(self, record: Record) -> bytes:
        """Serialize a record. Date fields are written as ISO-8601 strings."""
        header: dict[str, Any] = {"id": record.id}
        for name, value in record.fields.items():
            field_def = self.schema.get(name)
            if (
                field_def is not None
                and field_def.type is FieldType.DATE
                and isinstance(value, datetime)
            ):
                value = value.isoformat()
            header[name] = value

        try:
            text = write_frontmatter(header, record.content or "")
        except yaml.YAMLError as e:
            raise ValidationError.single(f"Record cannot be serialized: {e}") from e
        return text.encode(self.encoding)

    def decode(self, data: bytes | str) -> Record:
        """
        Parse file bytes into a normalized record.

        Header keys not in the schema pass through as extra fields.

        Raises:
            RecordDecodeError: If the file is not a well-formed record.
            ValidationError: If the header does not satisfy the schema.
        """
        if isinstance(data, bytes):
            try:
                data = data.decode(self.encoding)
            except UnicodeDecodeError as e:
                raise RecordDecodeError(f"Record is not valid UTF-8: {e}") from e

        header, body = parse_frontmatter(data)
        record_id = header.pop("id", None)
        if not isinstance(record_id, str) or not record_id:
            raise RecordDecodeError("Header block has no string 'id'")

        fields = self.schema.normalize(header)
        return Record(id=record_id, fields=fields, content=body)
