"""Stable, collision-free names for compiled operations and resources."""

from __future__ import annotations

import re
from typing import Dict, Set


MAX_NAME_LENGTH = 64

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def sanitize_name(candidate: str) -> str:
    name = _NON_ALNUM.sub("_", candidate.lower()).strip("_")
    return name[:MAX_NAME_LENGTH].rstrip("_") or "operation"


def candidate_name(method: str, path: str, operation_id: object = None) -> str:
    if isinstance(operation_id, str) and operation_id.strip():
        return operation_id
    return f"{method}_{path.replace('/', '_').replace('{', '').replace('}', '')}"


class NameResolver:
    """One naming namespace; the first candidate seen keeps the bare name."""

    def __init__(self) -> None:
        self._taken: Set[str] = set()
        self._next_suffix: Dict[str, int] = {}

    def resolve(self, candidate: str) -> str:
        base = sanitize_name(candidate)
        name = base
        suffix = self._next_suffix.get(base, 2)
        while name in self._taken:
            tail = f"_{suffix}"
            name = f"{base[:MAX_NAME_LENGTH - len(tail)]}{tail}"
            suffix += 1
        if name != base:
            self._next_suffix[base] = suffix
        self._taken.add(name)
        return name

    def __contains__(self, name: object) -> bool:
        return name in self._taken

    def __len__(self) -> int:
        return len(self._taken)
