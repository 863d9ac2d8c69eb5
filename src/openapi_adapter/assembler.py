"""Routing of a flat argument bag into path, query and body partitions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import OperationMeta


BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

_TEMPLATE_VARIABLE = re.compile(r"\{([^{}]+)\}")


@dataclass(frozen=True)
class AssembledRequest:
    """Request partitions; an empty partition is ``None`` rather than ``{}``."""

    path: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    body: Any = None


def template_variables(path: str) -> List[str]:
    variables: List[str] = []
    for match in _TEMPLATE_VARIABLE.finditer(path):
        if match.group(1) not in variables:
            variables.append(match.group(1))
    return variables


def assemble(meta: OperationMeta, flat_args: Mapping[str, Any]) -> AssembledRequest:
    """Partition ``flat_args``; keys the operation does not declare are dropped."""
    path = _pick(flat_args, template_variables(meta.path))
    query = _pick(flat_args, meta.query_params)

    body: Any = None
    if meta.method.upper() in BODY_METHODS:
        if meta.body_argument is not None:
            body = flat_args.get(meta.body_argument)
        else:
            body = _pick(flat_args, meta.body_fields) or None

    return AssembledRequest(path=path or None, query=query or None, body=body)


def _pick(flat_args: Mapping[str, Any], names: Iterable[str]) -> Dict[str, Any]:
    return {name: flat_args[name] for name in names if flat_args.get(name) is not None}
