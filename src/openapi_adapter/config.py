"""Configuration for the OpenAPI MCP Adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CompilerOptions


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="openapi-mcp-adapter")

    adapter_spec_location: str = Field(default="openapi.json")
    adapter_spec_cache_seconds: int = Field(default=3600)
    adapter_base_url: Optional[str] = Field(default=None)
    adapter_api_key: Optional[str] = Field(default=None)
    adapter_verify_ssl: bool = Field(default=True)
    adapter_request_timeout_seconds: float = Field(default=30)

    adapter_rate_limit_rps: float = Field(default=5)
    adapter_enabled_tags: Optional[str] = Field(default=None)
    adapter_resource_scheme: str = Field(default="openapi")

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)
    adapter_auth_token: Optional[str] = Field(default=None)

    adapter_log_level: str = Field(default="INFO")

    def enabled_tags(self) -> Set[str]:
        if not self.adapter_enabled_tags:
            return set()
        return {item.strip() for item in self.adapter_enabled_tags.split(",") if item.strip()}

    def compiler_options(self, base_url: str = "") -> CompilerOptions:
        return CompilerOptions(
            rate_limit_per_second=self.adapter_rate_limit_rps,
            enabled_tags=frozenset(self.enabled_tags()),
            resource_scheme=self.adapter_resource_scheme,
            base_url=self.adapter_base_url or base_url,
            timeout_seconds=self.adapter_request_timeout_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
