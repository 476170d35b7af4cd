"""Schema model: field types, per-field constraints and record validation.

A table schema is an ordered mapping of field name to FieldDefinition.
Schemas are checked once, at definition time; bad definitions are a
ConfigurationError. Candidate records are checked every read and write;
bad records are a ValidationError listing every offending field.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any, Callable

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainValidator,
    create_model,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from mdvault.errors import ConfigurationError, Issue, ValidationError

logger = logging.getLogger(__name__)

# Implicit on every record, so never declared by a schema
RESERVED_FIELD_NAMES = frozenset({"id", "content"})


class FieldType(StrEnum):
    """Field type vocabulary."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    STRING_ARRAY = "string[]"
    NUMBER_ARRAY = "number[]"
    BOOLEAN_ARRAY = "boolean[]"


class FieldDefinition(BaseModel):
    """Declaration of one schema field."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: FieldType
    required: bool = False
    default: Any = None
    unique: bool = False
    references: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @model_validator(mode="after")
    def _default_implies_optional(self) -> "FieldDefinition":
        if self.required and self.has_default:
            raise ValueError("a field with a default cannot also be required")
        return self


SchemaDefinition = Mapping[str, FieldDefinition | Mapping[str, Any] | str]


# --- Type checks ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_date(value: Any) -> datetime:
    """Normalize an ISO-8601 string, date or datetime to a datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            raise ValueError(f"invalid ISO-8601 date: {value!r}") from None
    raise ValueError("expected an ISO-8601 string or a date")


def _scalar(check: Callable[[Any], bool], label: str) -> Callable[[Any], Any]:
    def _validate(value: Any) -> Any:
        if not check(value):
            raise ValueError(f"expected {label}")
        return value

    return _validate


def _array(check: Callable[[Any], bool], label: str) -> Callable[[Any], Any]:
    def _validate(value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"expected a list of {label}")
        for index, item in enumerate(value):
            if not check(item):
                raise ValueError(f"item {index} is not {label}")
        return list(value)

    return _validate


_CHECKS: dict[FieldType, Callable[[Any], Any]] = {
    FieldType.STRING: _scalar(lambda v: isinstance(v, str), "a string"),
    FieldType.NUMBER: _scalar(_is_number, "a number"),
    FieldType.BOOLEAN: _scalar(lambda v: isinstance(v, bool), "a boolean"),
    FieldType.DATE: coerce_date,
    FieldType.OBJECT: _scalar(lambda v: isinstance(v, dict), "an object"),
    FieldType.STRING_ARRAY: _array(lambda v: isinstance(v, str), "a string"),
    FieldType.NUMBER_ARRAY: _array(_is_number, "a number"),
    FieldType.BOOLEAN_ARRAY: _array(lambda v: isinstance(v, bool), "a boolean"),
}


def _field_validator(definition: FieldDefinition) -> Callable[[Any], Any]:
    check = _CHECKS[definition.type]
    nullable = not definition.required

    def _validate(value: Any) -> Any:
        if value is None and nullable:
            return None
        try:
            return check(value)
        except ValueError as e:
            raise PydanticCustomError("field_type", str(e)) from None

    return _validate


def _as_definition(name: str, raw: FieldDefinition | Mapping[str, Any] | str):
    if isinstance(raw, FieldDefinition):
        return raw
    if isinstance(raw, str):
        raw = {"type": raw}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(
            f"Field {name!r} must be a FieldDefinition, mapping or type name"
        )
    try:
        return FieldDefinition.model_validate(dict(raw))
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'field'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid field {name!r}: {problems}") from e


class Schema(Mapping[str, FieldDefinition]):
    """An ordered, validated set of field definitions.

    Example:
        schema = Schema({
            "title": {"type": "string", "required": True},
            "score": {"type": "number", "default": 0},
            "tags": "string[]",
        })
        schema.normalize({"title": "hi"})  # {"title": "hi", "score": 0}
    """

    def __init__(self, definition: SchemaDefinition | None = None, name: str = "Record"):
        fields: dict[str, FieldDefinition] = {}
        for field_name, raw in (definition or {}).items():
            if not isinstance(field_name, str) or not field_name:
                raise ConfigurationError(f"Invalid field name {field_name!r}")
            if field_name in RESERVED_FIELD_NAMES:
                raise ConfigurationError(
                    f"Field name {field_name!r} is reserved and implicit on every record"
                )
            fields[field_name] = _as_definition(field_name, raw)

        for field_name, field_def in fields.items():
            if field_def.has_default:
                try:
                    _CHECKS[field_def.type](field_def.default)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Default for field {field_name!r} is invalid: {e}"
                    ) from e

        self.name = name
        self._fields = fields
        self._model = self._build_model(name, fields)

    @staticmethod
    def _build_model(name: str, fields: dict[str, FieldDefinition]) -> type[BaseModel]:
        # Positional attribute names with aliases keep user field names
        # (e.g. "json", "copy", "model_x") clear of BaseModel attributes.
        definitions: dict[str, Any] = {}
        for index, (field_name, field_def) in enumerate(fields.items()):
            annotation = Annotated[Any, PlainValidator(_field_validator(field_def))]
            if field_def.required:
                info = Field(..., alias=field_name)
            elif field_def.has_default:
                default = field_def.default
                info = Field(
                    default_factory=lambda d=default: copy.deepcopy(d),
                    alias=field_name,
                )
            else:
                info = Field(default=None, alias=field_name)
            definitions[f"f{index}"] = (annotation, info)

        return create_model(
            f"{name}Fields",
            __config__=ConfigDict(extra="allow", validate_default=True),
            **definitions,
        )

    # Mapping protocol

    def __getitem__(self, key: str) -> FieldDefinition:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Schema({self.name}, fields={list(self._fields)})"

    @property
    def fields(self) -> Mapping[str, FieldDefinition]:
        return MappingProxyType(self._fields)

    @property
    def unique_fields(self) -> list[str]:
        return [name for name, f in self._fields.items() if f.unique]

    def normalize(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a field map, applying defaults and coercing declared types.

        Unknown fields pass through unchecked. Fields, declared or not, that
        end up None are dropped, so an absent field and a null field are the
        same.

        Raises:
            ValidationError: With one issue per offending field, including
                keys that are not strings.
        """
        bad_keys = [
            Issue(message="field name must be a string", path=(repr(k),))
            for k in values
            if not isinstance(k, str)
        ]
        candidate = {k: v for k, v in values.items() if isinstance(k, str)}
        try:
            model = self._model.model_validate(candidate)
        except PydanticValidationError as e:
            raise ValidationError(bad_keys + _issues_from(e)) from None
        if bad_keys:
            raise ValidationError(bad_keys)

        normalized: dict[str, Any] = {}
        for index, field_name in enumerate(self._fields):
            value = getattr(model, f"f{index}")
            if value is not None:
                normalized[field_name] = value
        for key, value in (model.model_extra or {}).items():
            if value is not None:
                normalized[key] = value
        return normalized

    def coerce(self, field_name: str, value: Any) -> Any:
        """Coerce a single value the way stored values are normalized.

        Only ``date`` fields change representation; other values are
        returned unchanged. Used to compare filter values with records.
        """
        field_def = self._fields.get(field_name)
        if field_def is None or field_def.type is not FieldType.DATE or value is None:
            return value
        try:
            return coerce_date(value)
        except ValueError as e:
            raise ValidationError([Issue(message=str(e), path=(field_name,))]) from None

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Plain-data description of the schema."""
        return {
            name: f.model_dump(mode="json", exclude_defaults=True)
            for name, f in self._fields.items()
        }


def _issues_from(error: PydanticValidationError) -> list[Issue]:
    issues = []
    for err in error.errors():
        path = tuple(err["loc"])
        message = err["msg"]
        if err["type"] == "missing":
            message = "Field required"
        issues.append(Issue(message=message, path=path))
    return issues
