"""OpenAPI schema node to pydantic validator translation."""

from __future__ import annotations

import json
import keyword
import logging
import re
from dataclasses import replace
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Set, Type, Union

from pydantic import (
    AfterValidator,
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    create_model,
)
from pydantic.errors import PydanticUserError
from pydantic_core import SchemaError

from .models import ObjectField, SchemaKind, Validator


logger = logging.getLogger(__name__)


IsoDateString = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}")]

_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt ]")
_AWARE_DATETIME: TypeAdapter = TypeAdapter(AwareDatetime)


def _aware_timestamp(value: str) -> str:
    # parsed only to check it; the caller's text is what gets sent
    if not _ISO_TIMESTAMP.match(value):
        raise ValueError("expected an ISO 8601 timestamp")
    try:
        _AWARE_DATETIME.validate_python(value)
    except ValidationError as exc:
        raise ValueError("expected an ISO 8601 timestamp with a UTC offset") from exc
    return value


IsoTimestampString = Annotated[str, AfterValidator(_aware_timestamp)]

MODEL_CONFIG = ConfigDict(
    extra="allow",
    regex_engine="python-re",
    coerce_numbers_to_str=True,
    protected_namespaces=(),
)

_DATE_FORMATS = {"date", "date-time"}
_ANNOTATION_SEPARATOR = " | "
_NON_IDENTIFIER = re.compile(r"\W")


def translate(
    node: Any, root_document: Optional[Dict[str, Any]] = None, name: str = "Value"
) -> Validator:
    return SchemaTranslator(root_document).translate(node, name)


class SchemaTranslator:
    """Translate schema nodes of one document into validators.

    Translation never raises: unknown or malformed shapes degrade to the
    unconstrained ``ANY`` validator so one bad fragment cannot stop the rest
    of the document from compiling.
    """

    def __init__(self, root_document: Optional[Dict[str, Any]] = None) -> None:
        self.root_document = root_document or {}
        self._resolving: List[str] = []
        self._active_nodes: Set[int] = set()

    def translate(self, node: Any, name: str = "Value") -> Validator:
        if not isinstance(node, dict):
            return _any()

        ref = node.get("$ref")
        if isinstance(ref, str):
            return self._translate_ref(node, ref, name)

        if id(node) in self._active_nodes:
            return _any("Circular schema")
        self._active_nodes.add(id(node))
        try:
            validator = self._translate_node(node, name)
        finally:
            self._active_nodes.discard(id(node))

        if node.get("nullable") is True and validator.kind is not SchemaKind.ANY:
            validator = replace(validator, annotation=Optional[validator.annotation])

        annotation = describe(node)
        if validator.kind is SchemaKind.ANY and validator.description:
            annotation = _join([annotation, validator.description])
        if annotation:
            validator = replace(validator, description=annotation)
        return validator

    def resolve_ref(self, ref: str) -> Any:
        """Walk a local JSON pointer (``#/a/b``) into the root document."""
        if not ref.startswith("#"):
            return None
        current: Any = self.root_document
        for part in ref[1:].split("/")[1:]:
            part = part.replace("~1", "/").replace("~0", "~")
            if isinstance(current, dict):
                if part not in current:
                    return None
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return None
        return current

    def _translate_ref(self, node: Dict[str, Any], ref: str, name: str) -> Validator:
        if ref in self._resolving:
            return _any(f"Circular reference: {ref}")
        target = self.resolve_ref(ref)
        if not isinstance(target, dict):
            logger.debug("Unresolvable schema reference: %s", ref)
            return _any(f"Ref: {ref}")
        if node.get("description") and not target.get("description"):
            target = {**target, "description": node["description"]}

        self._resolving.append(ref)
        try:
            return self.translate(target, ref_name(ref) or name)
        finally:
            self._resolving.pop()

    def _translate_node(self, node: Dict[str, Any], name: str) -> Validator:
        for composition in ("oneOf", "anyOf"):
            variants = node.get(composition)
            if isinstance(variants, list) and variants:
                return self._translate_union(variants, name)

        members = node.get("allOf")
        if isinstance(members, list) and members:
            return self._translate_all_of(members, name)

        raw_type = node.get("type")
        schema_type = _schema_type(raw_type)
        if schema_type is None:
            return _any()
        if schema_type == "string":
            return self._translate_string(node)
        if schema_type == "integer":
            return self._translate_number(node, SchemaKind.INTEGER)
        if schema_type == "number":
            return self._translate_number(node, SchemaKind.NUMBER)
        if schema_type == "boolean":
            return Validator(SchemaKind.BOOLEAN, bool)
        if schema_type == "array":
            items = self.translate(node.get("items") or {}, f"{name}Item")
            return Validator(SchemaKind.ARRAY, List[items.annotated()])
        if schema_type == "object":
            return self._translate_object(node, name)
        return _any(f"Unrecognized type: {raw_type}")

    def _translate_union(self, variants: List[Any], name: str) -> Validator:
        validators = [
            self.translate(variant, f"{name}Option{index}")
            for index, variant in enumerate(variants, start=1)
        ]
        if len(validators) == 1:
            return validators[0]
        return Validator(SchemaKind.UNION, Union[tuple(v.annotated() for v in validators)])

    def _translate_all_of(self, members: List[Any], name: str) -> Validator:
        validators = [
            self.translate(member, f"{name}Part{index}")
            for index, member in enumerate(members, start=1)
        ]
        if not all(v.is_object for v in validators):
            # Only object members can be merged; anything else keeps the first member.
            return validators[0]

        merged: Dict[str, ObjectField] = {}
        for validator in validators:
            for object_field in validator.fields:
                merged[object_field.name] = object_field
        return object_validator(name, merged.values())

    def _translate_string(self, node: Dict[str, Any]) -> Validator:
        enum = node.get("enum")
        if isinstance(enum, list):
            values: List[Any] = []
            for value in enum:
                if (value is None or isinstance(value, (str, int, float))) and value not in values:
                    values.append(value)
            if values:
                return Validator(SchemaKind.ENUM, Literal[tuple(values)])

        if node.get("format") in _DATE_FORMATS:
            return Validator(SchemaKind.DATETIME, Union[IsoTimestampString, IsoDateString])

        constraints: Dict[str, Any] = {}
        min_length = _non_negative_int(node.get("minLength"))
        if min_length is not None:
            constraints["min_length"] = min_length
        max_length = _non_negative_int(node.get("maxLength"))
        if max_length is not None:
            constraints["max_length"] = max_length
        pattern = _valid_pattern(node.get("pattern"))
        if pattern is not None:
            constraints["pattern"] = pattern

        if not constraints:
            return Validator(SchemaKind.STRING, str)
        return Validator(SchemaKind.STRING, Annotated[str, StringConstraints(**constraints)])

    def _translate_number(self, node: Dict[str, Any], kind: SchemaKind) -> Validator:
        base: type = int if kind is SchemaKind.INTEGER else float
        constraints: Dict[str, Any] = {}

        for bound, exclusive_key, inclusive, exclusive in (
            ("minimum", "exclusiveMinimum", "ge", "gt"),
            ("maximum", "exclusiveMaximum", "le", "lt"),
        ):
            value = _number(node.get(bound))
            flag = node.get(exclusive_key)
            if isinstance(flag, bool):
                # OpenAPI 3.0: boolean modifier on minimum/maximum
                if value is not None:
                    constraints[exclusive if flag else inclusive] = value
                continue
            if value is not None:
                constraints[inclusive] = value
            if _number(flag) is not None:
                constraints[exclusive] = flag

        multiple_of = _number(node.get("multipleOf"))
        if multiple_of is not None and multiple_of > 0:
            constraints["multiple_of"] = multiple_of

        if not constraints:
            return Validator(kind, base)
        return Validator(kind, Annotated[base, Field(**constraints)])

    def _translate_object(self, node: Dict[str, Any], name: str) -> Validator:
        properties = node.get("properties")
        if isinstance(properties, dict) and properties:
            required = node.get("required")
            required_names = {r for r in required if isinstance(r, str)} if isinstance(required, list) else set()
            fields = [
                ObjectField(
                    name=str(key),
                    validator=self.translate(schema, f"{name}_{key}"),
                    required=key in required_names,
                )
                for key, schema in properties.items()
            ]
            return object_validator(name, fields)

        additional = node.get("additionalProperties")
        if isinstance(additional, dict):
            values = self.translate(additional, f"{name}Value")
            return Validator(SchemaKind.MAP, Dict[str, values.annotated()])
        # additionalProperties: true, or no shape at all: dynamic object
        return Validator(SchemaKind.MAP, Dict[str, Any], "Object with arbitrary properties")


def object_validator(name: str, fields: Iterable[ObjectField]) -> Validator:
    fields = tuple(fields)
    model = build_model(name, fields)
    if model is None:
        return Validator(SchemaKind.MAP, Dict[str, Any], "Object with arbitrary properties")
    return Validator(SchemaKind.OBJECT, model, fields=fields)


def build_model(name: str, fields: Iterable[ObjectField]) -> Optional[Type[BaseModel]]:
    """Create a pydantic model whose aliases are the original property names."""
    definitions: Dict[str, Any] = {}
    taken: Set[str] = set()
    for object_field in fields:
        attribute = attribute_name(object_field.name, taken)
        validator = object_field.validator
        annotation = validator.annotation if object_field.required else Optional[validator.annotation]
        definitions[attribute] = (
            annotation,
            Field(
                ... if object_field.required else None,
                alias=object_field.name if attribute != object_field.name else None,
                description=validator.description or None,
            ),
        )

    try:
        return create_model(model_name(name), __config__=MODEL_CONFIG, **definitions)
    except (PydanticUserError, SchemaError, NameError, TypeError, ValueError) as exc:
        logger.warning("Falling back to an untyped object for %s: %s", name, exc)
        return None


def describe(node: Dict[str, Any]) -> str:
    parts: List[str] = []
    for key in ("title", "description"):
        value = node.get(key)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    if "default" in node:
        parts.append(f"Default: {_render(node['default'])}")
    if "example" in node:
        parts.append(f"Example: {_render(node['example'])}")
    return _join(parts)


def ref_name(ref: str) -> str:
    return ref.rsplit("/", 1)[-1].replace("~1", "/").replace("~0", "~") if ref else ""


def attribute_name(name: str, taken: Set[str]) -> str:
    attribute = _NON_IDENTIFIER.sub("_", name)
    if not attribute or attribute[0].isdigit() or attribute.startswith("_"):
        attribute = f"f_{attribute.lstrip('_')}"
    if keyword.iskeyword(attribute) or hasattr(BaseModel, attribute):
        attribute = f"{attribute}_"
    candidate = attribute
    suffix = 2
    while candidate in taken:
        candidate = f"{attribute}_{suffix}"
        suffix += 1
    taken.add(candidate)
    return candidate


def model_name(name: str) -> str:
    parts = [p for p in re.split(r"[^0-9a-zA-Z]+", name) if p]
    result = "".join(p[:1].upper() + p[1:] for p in parts) or "Model"
    if result[0].isdigit():
        result = f"M{result}"
    return result


def _any(note: str = "") -> Validator:
    return Validator(SchemaKind.ANY, Any, note)


def _schema_type(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        # OpenAPI 3.1 nullable form: ["string", "null"]
        for entry in raw:
            if isinstance(entry, str) and entry != "null":
                return entry
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _non_negative_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def _valid_pattern(pattern: Any) -> Optional[str]:
    if not isinstance(pattern, str) or not pattern:
        return None
    try:
        re.compile(pattern)
    except re.error:
        logger.debug("Dropping invalid pattern constraint: %s", pattern)
        return None
    return pattern


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _join(parts: Iterable[str]) -> str:
    return _ANNOTATION_SEPARATOR.join(p for p in parts if p)
