"""Compilation of an OpenAPI document into invokable operations and resources."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel, ValidationError
from pydantic.errors import PydanticUserError

from .assembler import template_variables
from .client import ApiClient
from .models import (
    ArgumentOrigin,
    ArgumentSlot,
    CallResult,
    CompilerOptions,
    ObjectField,
    Operation,
    OperationMeta,
    RegistrationTable,
    ResourceTemplate,
    SchemaKind,
    Validator,
    validate_arguments,
)
from .naming import NameResolver, candidate_name
from .outcomes import Outcome
from .pacer import TokenBucket
from .schema import SchemaTranslator, build_model, ref_name
from .service import InvocationService, format_json


logger = logging.getLogger(__name__)


HTTP_METHODS = frozenset({"get", "put", "post", "delete", "options", "head", "patch", "trace"})
NON_OPERATION_KEYS = frozenset({"parameters", "summary", "description"})
JSON_MEDIA_TYPES = ("application/json", "application/vnd.api+json")

_EMPTY_PARAMETERS: Dict[str, Any] = {"type": "object", "properties": {}, "additionalProperties": True}


def iter_operations(document: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any], str, Dict[str, Any]]]:
    """Yield ``(path, path_item, method, operation)`` in document order."""
    paths = document.get("paths")
    if not isinstance(paths, dict):
        return
    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if method in NON_OPERATION_KEYS or str(method).lower() not in HTTP_METHODS:
                continue
            if not isinstance(operation, dict):
                continue
            yield str(path), path_item, str(method).lower(), operation


def operation_tags(operation: Dict[str, Any]) -> List[str]:
    tags = operation.get("tags")
    if not isinstance(tags, list):
        return []
    return [tag for tag in tags if isinstance(tag, str)]


class SpecCompiler:
    def __init__(
        self,
        options: CompilerOptions,
        client: ApiClient,
        pacer: Optional[TokenBucket] = None,
    ) -> None:
        self.options = options
        self.client = client
        self.pacer = pacer or TokenBucket(options.rate_limit_per_second)
        self.service = InvocationService(client, self.pacer)

    def compile(self, document: Dict[str, Any]) -> RegistrationTable:
        if not isinstance(document, dict):
            logger.warning("OpenAPI document is not a mapping; nothing to compile")
            document = {}
        translator = SchemaTranslator(document)

        enabled_tags = self.options.enabled_tags
        if enabled_tags:
            logger.info("Filtering tools by tags: %s", ", ".join(sorted(enabled_tags)))
        else:
            logger.info("All tools enabled (no tag filter set)")

        resources = self._compile_resources(document)

        names = NameResolver()
        operations: Dict[str, Operation] = {}
        tag_counts: Dict[str, int] = {}
        untagged = 0
        for path, path_item, method, operation in iter_operations(document):
            tags = operation_tags(operation)
            for tag in tags:
                tag_counts[tag] = tag_counts.get(tag, 0) + 1
            if not tags:
                untagged += 1

            if enabled_tags and not enabled_tags.intersection(tags):
                continue

            name = names.resolve(candidate_name(method, path, operation.get("operationId")))
            operations[name] = self._build_operation(
                name, path, method, path_item, operation, translator
            )

        api_operation_count = len(operations)
        for synthetic in self._synthetic_operations(
            names, api_operation_count, len(resources), tag_counts, untagged
        ):
            operations[synthetic.name] = synthetic

        logger.info(
            "Compiled %s tools (%s from the API) and %s resource templates",
            len(operations),
            api_operation_count,
            len(resources),
        )
        return RegistrationTable(operations=operations, resources=resources, tags=list(tag_counts))

    def _compile_resources(self, document: Dict[str, Any]) -> Dict[str, ResourceTemplate]:
        names = NameResolver()
        seen: Set[str] = set()
        resources: Dict[str, ResourceTemplate] = {}

        for path, _path_item, method, operation in iter_operations(document):
            variables = template_variables(path)
            if method != "get" or not variables:
                continue
            uri_template = f"{self.options.resource_scheme}://api{path}"
            if uri_template in seen:
                continue
            seen.add(uri_template)

            name = names.resolve(candidate_name("read", path, operation.get("operationId")))
            meta = OperationMeta(method="GET", path=path, path_params=tuple(variables))
            resources[name] = ResourceTemplate(
                name=name,
                uri_template=uri_template,
                path=path,
                variables=tuple(variables),
                description=_description(operation, f"Read resource at {path}"),
                read=self._resource_reader(name, meta),
            )
            logger.debug("Registered resource template: %s -> %s", name, uri_template)

        return resources

    def _build_operation(
        self,
        name: str,
        path: str,
        method: str,
        path_item: Dict[str, Any],
        operation: Dict[str, Any],
        translator: SchemaTranslator,
    ) -> Operation:
        slots: List[ArgumentSlot] = []
        claimed: Set[str] = set()
        variables = template_variables(path)

        # path > query > body when the same argument name is declared twice
        parameters = self._parameters(path_item, operation, translator)
        for location, origin in (("path", ArgumentOrigin.PATH), ("query", ArgumentOrigin.QUERY)):
            for parameter in parameters:
                param_name = parameter.get("name")
                if parameter.get("in") != location or not isinstance(param_name, str) or not param_name:
                    continue
                if param_name in claimed or (origin is ArgumentOrigin.QUERY and param_name in variables):
                    continue
                validator = translator.translate(parameter.get("schema") or {}, f"{name}_{param_name}")
                description = parameter.get("description")
                if isinstance(description, str) and description.strip():
                    validator = replace(validator, description=description.strip())
                claimed.add(param_name)
                slots.append(
                    ArgumentSlot(
                        name=param_name,
                        origin=origin,
                        validator=validator,
                        required=parameter.get("required") is True,
                    )
                )

        for variable in variables:
            if variable not in claimed:
                # Template variable without a parameter declaration
                claimed.add(variable)
                slots.append(
                    ArgumentSlot(
                        name=variable,
                        origin=ArgumentOrigin.PATH,
                        validator=Validator(SchemaKind.STRING, str),
                        required=True,
                    )
                )

        body_fields: List[str] = []
        body_argument: Optional[str] = None
        body_schema, body_required = self._body_schema(operation, translator)
        if body_schema is not None:
            body = translator.translate(body_schema, f"{name}_body")
            if body.is_object:
                # Body fields are spliced flat and always optional.
                for object_field in body.fields:
                    if object_field.name in claimed:
                        continue
                    claimed.add(object_field.name)
                    body_fields.append(object_field.name)
                    slots.append(
                        ArgumentSlot(
                            name=object_field.name,
                            origin=ArgumentOrigin.BODY_FIELD,
                            validator=object_field.validator,
                        )
                    )
            else:
                body_argument = _body_argument_name(body_schema, claimed)
                claimed.add(body_argument)
                slots.append(
                    ArgumentSlot(
                        name=body_argument,
                        origin=ArgumentOrigin.BODY,
                        validator=body,
                        required=body_required,
                    )
                )

        meta = OperationMeta(
            method=method.upper(),
            path=path,
            path_params=tuple(s.name for s in slots if s.origin is ArgumentOrigin.PATH),
            query_params=tuple(s.name for s in slots if s.origin is ArgumentOrigin.QUERY),
            body_fields=tuple(body_fields),
            body_argument=body_argument,
        )
        input_model = self._input_model(name, slots)
        return Operation(
            name=name,
            method=method.upper(),
            path=path,
            description=_description(operation, f"{method.upper()} {path}"),
            slots=tuple(slots),
            input_model=input_model,
            parameters=_parameters_schema(name, input_model),
            invoke=self._operation_invoker(name, meta, input_model),
            meta=meta,
            tags=tuple(operation_tags(operation)),
        )

    def _parameters(
        self, path_item: Dict[str, Any], operation: Dict[str, Any], translator: SchemaTranslator
    ) -> List[Dict[str, Any]]:
        """Path-item parameters overridden by operation parameters on (name, in)."""
        merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for source in (path_item.get("parameters"), operation.get("parameters")):
            if not isinstance(source, list):
                continue
            for parameter in source:
                if isinstance(parameter, dict) and isinstance(parameter.get("$ref"), str):
                    parameter = translator.resolve_ref(parameter["$ref"])
                if not isinstance(parameter, dict):
                    continue
                merged[(str(parameter.get("name")), str(parameter.get("in")))] = parameter
        return list(merged.values())

    def _body_schema(
        self, operation: Dict[str, Any], translator: SchemaTranslator
    ) -> Tuple[Any, bool]:
        request_body = operation.get("requestBody")
        if isinstance(request_body, dict) and isinstance(request_body.get("$ref"), str):
            request_body = translator.resolve_ref(request_body["$ref"])
        if not isinstance(request_body, dict):
            return None, False
        content = request_body.get("content")
        if not isinstance(content, dict):
            return None, False

        media: Any = None
        for media_type in JSON_MEDIA_TYPES:
            if isinstance(content.get(media_type), dict):
                media = content[media_type]
                break
        if media is None:
            media = next(
                (v for k, v in content.items() if "json" in str(k) and isinstance(v, dict)), None
            )
        if media is None or "schema" not in media:
            return None, False
        return media["schema"], request_body.get("required") is True

    def _input_model(self, name: str, slots: List[ArgumentSlot]) -> type[BaseModel]:
        fields = [ObjectField(s.name, s.validator, s.required) for s in slots]
        model = build_model(f"{name}_input", fields)
        if model is None:
            model = build_model(f"{name}_input", [])
        return model  # type: ignore[return-value]

    def _synthetic_operations(
        self,
        names: NameResolver,
        operation_count: int,
        resource_count: int,
        tag_counts: Dict[str, int],
        untagged: int,
    ) -> List[Operation]:
        enabled_tags = self.options.enabled_tags
        tags_payload = {
            "tags": [
                {
                    "name": tag,
                    "operations": count,
                    "enabled": not enabled_tags or tag in enabled_tags,
                }
                for tag, count in tag_counts.items()
            ],
            "untagged_operations": untagged,
        }
        info_payload = {
            "operation_count": operation_count,
            "resource_count": resource_count,
            "enabled_tags": sorted(enabled_tags) if enabled_tags else "all",
            "base_url": self.options.base_url or self.client.base_url,
            "rate_limit_per_second": self.options.rate_limit_per_second,
        }
        return [
            self._static_operation(
                names.resolve("list_api_tags"),
                "List the API tags (groups of operations) and how many operations each has.",
                tags_payload,
            ),
            self._static_operation(
                names.resolve("get_server_info"),
                "Report the number of compiled operations, the active tag filter and the target API.",
                info_payload,
            ),
        ]

    def _static_operation(self, name: str, description: str, payload: Dict[str, Any]) -> Operation:
        async def invoke(arguments: Dict[str, Any]) -> CallResult:
            return format_json(payload)

        input_model = self._input_model(name, [])
        return Operation(
            name=name,
            method="",
            path="",
            description=description,
            slots=(),
            input_model=input_model,
            parameters=_parameters_schema(name, input_model),
            invoke=invoke,
        )

    def _operation_invoker(
        self, name: str, meta: OperationMeta, input_model: type[BaseModel]
    ) -> Callable[[Dict[str, Any]], Awaitable[CallResult]]:
        async def invoke(arguments: Dict[str, Any]) -> CallResult:
            try:
                flat_args = validate_arguments(input_model, arguments)
            except ValidationError as exc:
                logger.info("Rejected arguments for %s: %s error(s)", name, exc.error_count())
                return CallResult(
                    text=f"{Outcome.VALIDATION_FAILURE.value}: Invalid arguments for {name}: {exc}",
                    is_error=True,
                )
            return await self.service.call_operation(name, meta, flat_args)

        return invoke

    def _resource_reader(
        self, name: str, meta: OperationMeta
    ) -> Callable[[Dict[str, Any]], Awaitable[str]]:
        async def read(variables: Dict[str, Any]) -> str:
            return await self.service.read_resource(name, meta, variables)

        return read


def _description(operation: Dict[str, Any], default: str) -> str:
    for key in ("summary", "description"):
        value = operation.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return default


def _body_argument_name(schema: Any, claimed: Set[str]) -> str:
    name = ""
    if isinstance(schema, dict) and isinstance(schema.get("$ref"), str):
        name = ref_name(schema["$ref"])
    for candidate in (name, "body", "request_body"):
        if candidate and candidate not in claimed:
            return candidate
    return f"body_{len(claimed)}"


def _parameters_schema(name: str, input_model: type[BaseModel]) -> Dict[str, Any]:
    try:
        return input_model.model_json_schema(by_alias=True)
    except PydanticUserError as exc:
        logger.warning("Could not build an argument schema for %s: %s", name, exc)
        return dict(_EMPTY_PARAMETERS)
