from __future__ import annotations

import os
from typing import Mapping, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TIMEOUT_S = 60.0
BODY_EXCERPT_CHARS = 500


def without_trailing_slash(url: str) -> str:
    return url.rstrip("/")


def combine_headers(*header_sets: Optional[Mapping[str, Optional[str]]]) -> dict[str, str]:
    """Merge header mappings left to right; a ``None`` value removes the header."""
    merged: dict[str, Optional[str]] = {}
    for headers in header_sets:
        if not headers:
            continue
        for key, value in headers.items():
            merged[key] = value
    return {k: v for k, v in merged.items() if v is not None}


def open_client(
    timeout: float = DEFAULT_TIMEOUT_S,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, transport=transport)


def body_excerpt(response: httpx.Response) -> str:
    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return "Unknown error"
    if len(text) > BODY_EXCERPT_CHARS:
        return text[:BODY_EXCERPT_CHARS] + "... [truncated]"
    return text


class BackendConfig(BaseModel):
    """Connection settings shared by every backend section of the config file."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v:
            raise ValueError("base_url cannot be empty")
        return without_trailing_slash(v)

    def resolved_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or None
        return None

    def auth_headers(self) -> dict[str, str]:
        api_key = self.resolved_api_key()
        if api_key:
            return {"Authorization": f"Bearer {api_key}"}
        return {}
