"""Internal models for compiled operations and resources."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


# python-re accepts the ECMA-style patterns found in most specs (lookarounds etc.)
VALIDATION_CONFIG = ConfigDict(regex_engine="python-re")


class SchemaKind(str, Enum):
    ANY = "any"
    STRING = "string"
    ENUM = "enum"
    DATETIME = "datetime"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    MAP = "map"
    UNION = "union"


@dataclass(frozen=True)
class ObjectField:
    name: str
    validator: "Validator"
    required: bool = False


@dataclass(frozen=True)
class Validator:
    """A runtime-checkable value shape built from one schema node.

    ``annotation`` is a type pydantic can validate against; ``description``
    only feeds the generated JSON schema and never changes what is accepted.
    """

    kind: SchemaKind
    annotation: Any
    description: str = ""
    fields: Tuple[ObjectField, ...] = ()

    @property
    def is_object(self) -> bool:
        return self.kind is SchemaKind.OBJECT

    def annotated(self) -> Any:
        if not self.description:
            return self.annotation
        return Annotated[self.annotation, Field(description=self.description)]

    def adapter(self) -> TypeAdapter:
        if self.is_object:
            # models carry their own config
            return TypeAdapter(self.annotation)
        return TypeAdapter(self.annotated(), config=VALIDATION_CONFIG)

    def validate(self, value: Any) -> Any:
        return self.adapter().validate_python(value)

    def accepts(self, value: Any) -> bool:
        try:
            self.validate(value)
        except ValidationError:
            return False
        return True

    def json_schema(self) -> Dict[str, Any]:
        return self.adapter().json_schema(by_alias=True)


class ArgumentOrigin(str, Enum):
    PATH = "path"
    QUERY = "query"
    BODY_FIELD = "body-field"
    BODY = "body"


@dataclass(frozen=True)
class ArgumentSlot:
    name: str
    origin: ArgumentOrigin
    validator: Validator
    required: bool = False


@dataclass(frozen=True)
class OperationMeta:
    method: str
    path: str
    path_params: Tuple[str, ...] = ()
    query_params: Tuple[str, ...] = ()
    body_fields: Tuple[str, ...] = ()
    body_argument: Optional[str] = None


@dataclass(frozen=True)
class CallResult:
    text: str
    is_error: bool = False


@dataclass(frozen=True)
class CompilerOptions:
    rate_limit_per_second: float = 5
    enabled_tags: FrozenSet[str] = frozenset()
    resource_scheme: str = "openapi"
    base_url: str = ""
    timeout_seconds: float = 30


@dataclass(frozen=True)
class Operation:
    name: str
    method: str
    path: str
    description: str
    slots: Tuple[ArgumentSlot, ...]
    input_model: Type[BaseModel]
    parameters: Dict[str, Any]
    invoke: Callable[[Dict[str, Any]], Awaitable[CallResult]] = field(compare=False)
    meta: Optional[OperationMeta] = None
    tags: Tuple[str, ...] = ()

    def validate_arguments(self, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return validate_arguments(self.input_model, arguments)


@dataclass(frozen=True)
class ResourceTemplate:
    name: str
    uri_template: str
    path: str
    variables: Tuple[str, ...]
    description: str
    read: Callable[[Dict[str, Any]], Awaitable[str]] = field(compare=False)
    mime_type: str = "application/json"


@dataclass(frozen=True)
class RegistrationTable:
    operations: Dict[str, Operation]
    resources: Dict[str, ResourceTemplate]
    tags: List[str] = field(default_factory=list)


def validate_arguments(
    input_model: Type[BaseModel], arguments: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Validate a raw argument bag and return it as plain JSON-ready values.

    Fields are matched by their wire name (alias) only, and values keep the
    caller's representation where the schema allows it.
    """
    model = input_model.model_validate(arguments or {})
    return model.model_dump(mode="json", by_alias=True, exclude_unset=True)
