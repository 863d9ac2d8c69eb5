"""OpenAPI document loading."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import httpx
import yaml


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "http://localhost"


class OpenAPILoader:
    def __init__(self, cache_seconds: int = 3600, timeout_seconds: float = 30) -> None:
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def load_spec(self, location: str) -> Optional[Dict[str, Any]]:
        """Load a JSON or YAML document from a local path or an http(s) URL."""
        cached = self._cache.get(location)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        if location.startswith(("http://", "https://")):
            data = await self._fetch(location)
        else:
            data = self._read(Path(location))
        if data is None:
            return None

        self._cache[location] = (time.time(), data)
        return data

    async def _fetch(self, url: str) -> Optional[Dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.get(url)
            if response.status_code != 200:
                logger.warning("Failed to fetch OpenAPI spec: %s (%s)", url, response.status_code)
                return None
            text = response.text
        return self._parse(text, url)

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.is_file():
            logger.warning("OpenAPI spec not found: %s", path)
            return None
        return self._parse(path.read_text(encoding="utf-8"), str(path))

    def _parse(self, text: str, source: str) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(text)
        except ValueError:
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                logger.warning("OpenAPI spec is neither JSON nor YAML: %s (%s)", source, exc)
                return None
        if not isinstance(data, dict):
            logger.warning("OpenAPI spec is not a mapping: %s", source)
            return None
        return data


def extract_server_url(spec: Dict[str, Any]) -> Optional[str]:
    servers = spec.get("servers") or []
    if not servers or not isinstance(servers, list):
        return None
    server = servers[0]
    if isinstance(server, dict) and isinstance(server.get("url"), str):
        return server["url"]
    return None
