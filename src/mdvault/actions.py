"""Validated, context-bound actions (queries and mutations).

An action pairs an input validator with a handler. The validator contract is
deliberately small so any validation library can plug in:

    validate(value) -> ValidationResult | {"value": ...} | {"issues": [...]}

sync or async. Pydantic models and type annotations are adapted
automatically through PydanticValidator.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Protocol, runtime_checkable

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from mdvault.errors import ConfigurationError, Issue, ValidationError

logger = logging.getLogger(__name__)


class ActionKind(StrEnum):
    """Whether an action reads or writes."""

    QUERY = "query"
    MUTATION = "mutation"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one input: a value or a non-empty issue list."""

    value: Any = None
    issues: tuple[Issue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues


@runtime_checkable
class SchemaValidator(Protocol):
    """Anything that can validate an unknown input."""

    def validate(self, value: Any) -> ValidationResult | Awaitable[ValidationResult]:
        pass


class PydanticValidator:
    """Validate input with a pydantic model or any type pydantic understands."""

    def __init__(self, schema: Any):
        self.schema = schema
        self._adapter = TypeAdapter(schema)

    def validate(self, value: Any) -> ValidationResult:
        # Calling a model-backed action with no input uses the model defaults
        if value is None and isinstance(self.schema, type) and issubclass(self.schema, BaseModel):
            value = {}
        try:
            return ValidationResult(value=self._adapter.validate_python(value))
        except PydanticValidationError as e:
            return ValidationResult(
                issues=tuple(
                    Issue(message=err["msg"], path=tuple(err["loc"]))
                    for err in e.errors()
                )
            )

    def __repr__(self) -> str:
        return f"PydanticValidator({self.schema!r})"


class PassthroughValidator:
    """Accepts any input unchanged. Used when an action declares no schema."""

    def validate(self, value: Any) -> ValidationResult:
        return ValidationResult(value=value)


def as_validator(schema: Any) -> SchemaValidator:
    """
    Adapt an action input schema to the validator contract.

    Args:
        schema: None, a pydantic model/type, or an object with validate()

    Returns:
        A SchemaValidator
    """
    if schema is None:
        return PassthroughValidator()
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return PydanticValidator(schema)
    if callable(getattr(schema, "validate", None)):
        return schema
    try:
        return PydanticValidator(schema)
    except (TypeError, NameError) as e:
        raise ConfigurationError(f"Unsupported input schema {schema!r}: {e}") from e


def _as_path(raw: Any) -> tuple[str | int, ...]:
    if raw is None:
        return ()
    if isinstance(raw, (str, int)):
        return (raw,)
    path = []
    for segment in raw:
        if isinstance(segment, Mapping) and "key" in segment:
            segment = segment["key"]
        path.append(segment if isinstance(segment, (str, int)) else str(segment))
    return tuple(path)


def _as_issue(raw: Any) -> Issue:
    if isinstance(raw, Issue):
        return raw
    if isinstance(raw, Mapping):
        return Issue(
            message=str(raw.get("message", "Invalid value")),
            path=_as_path(raw.get("path")),
        )
    return Issue(message=str(raw))


def _as_result(raw: Any) -> ValidationResult:
    if isinstance(raw, ValidationResult):
        return raw
    if isinstance(raw, Mapping):
        issues = raw.get("issues")
        if issues:
            return ValidationResult(issues=tuple(_as_issue(i) for i in issues))
        if "value" in raw:
            return ValidationResult(value=raw["value"])
    raise TypeError(
        f"Validator returned {type(raw).__name__}; expected a ValidationResult "
        "or a mapping with 'value' or 'issues'"
    )


async def validate_input(validator: SchemaValidator, value: Any) -> Any:
    """
    Run a value through a validator.

    Returns:
        The validated value

    Raises:
        ValidationError: Carrying every issue the validator reported
    """
    result = validator.validate(value)
    if inspect.isawaitable(result):
        result = await result
    result = _as_result(result)
    if result.issues:
        raise ValidationError(result.issues)
    return result.value


@dataclass(frozen=True)
class ActionDefinition:
    """A query or mutation: input schema plus handler(input, context)."""

    kind: ActionKind
    handler: Callable[[Any, Any], Any]
    input_schema: Any = None
    description: str = ""
    validator: SchemaValidator = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not callable(self.handler):
            raise ConfigurationError("Action handler must be callable")
        object.__setattr__(self, "kind", ActionKind(self.kind))
        object.__setattr__(self, "validator", as_validator(self.input_schema))


def _define(kind: ActionKind, handler, input, description):
    def _build(fn: Callable[[Any, Any], Any]) -> ActionDefinition:
        doc = description or (inspect.getdoc(fn) or "").split("\n", 1)[0]
        return ActionDefinition(kind=kind, handler=fn, input_schema=input, description=doc)

    if handler is None:
        return _build
    return _build(handler)


def define_query(
    handler: Callable[[Any, Any], Any] | None = None,
    *,
    input: Any = None,
    description: str = "",
):
    """
    Define a query action.

    Usable directly or as a decorator:

        class TopInput(BaseModel):
            limit: int = 10

        @define_query(input=TopInput)
        async def top_posts(params, posts):
            return await posts.list(order_by="score", order="desc", limit=params.limit)
    """
    return _define(ActionKind.QUERY, handler, input, description)


def define_mutation(
    handler: Callable[[Any, Any], Any] | None = None,
    *,
    input: Any = None,
    description: str = "",
):
    """Define a mutation action. Same calling conventions as define_query."""
    return _define(ActionKind.MUTATION, handler, input, description)


class BoundAction:
    """An action bound to its table or plugin context.

    Calling it validates the input and invokes the handler with the
    validated value and the context. Input may be passed positionally or
    as keyword arguments (collected into a dict).
    """

    def __init__(self, name: str, definition: ActionDefinition, context: Any):
        self.name = name
        self.definition = definition
        self.context = context

    @property
    def kind(self) -> ActionKind:
        return self.definition.kind

    @property
    def description(self) -> str:
        return self.definition.description

    async def __call__(self, input: Any = None, /, **kwargs: Any) -> Any:
        if kwargs:
            if input is not None:
                raise TypeError(
                    f"{self.name}() takes either one input value or keyword arguments"
                )
            input = kwargs

        logger.debug(f"Invoking {self.kind} {self.name}")
        value = await validate_input(self.definition.validator, input)
        result = self.definition.handler(value, self.context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"BoundAction({self.name!r}, kind={self.kind.value})"
