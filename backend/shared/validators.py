"""Shared validation helpers for server settings."""

import json
from typing import Any

from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, EnvSettingsSource

_ORIGIN_SCHEMES = ("http://", "https://")
_WILDCARD_ORIGIN = "*"


def parse_string_list(value: str | list[str]) -> list[str]:
    """Parse a non-empty string list from an environment variable or config value.

    Accepts a list of strings (returned as-is), a JSON array string
    ('["a","b"]') or a comma-separated string ('a,b').
    Raises ValueError for empty values or malformed JSON.
    """
    if isinstance(value, list):
        items = value
    else:
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                items = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
                raise ValueError("JSON value must be an array of strings")
        else:
            items = [part.strip() for part in stripped.split(",") if part.strip()]

    if not items:
        raise ValueError("String list value must not be empty")
    return items


def parse_cors_origins(value: str | list[str]) -> list[str]:
    """Parse CORS origins and check each one is '*' or an http(s) origin without a path."""
    origins = [origin.rstrip("/") for origin in parse_string_list(value)]
    for origin in origins:
        if origin == _WILDCARD_ORIGIN:
            continue
        if not origin.startswith(_ORIGIN_SCHEMES):
            raise ValueError(f"CORS origin must start with http:// or https://: {origin!r}")
        if "/" in origin.split("://", 1)[1]:
            raise ValueError(f"CORS origin must not contain a path: {origin!r}")
    return origins


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands string-list fields to validators untouched.

    pydantic-settings tries to JSON-decode list-typed fields from env vars
    before validators run, which rejects plain comma-separated values. Fields
    named in list_fields are passed through as raw strings instead so
    parse_string_list can accept both formats.
    """

    def __init__(self, settings_cls: type[BaseSettings], list_fields: frozenset[str]) -> None:
        super().__init__(settings_cls)
        self._list_fields = list_fields

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in self._list_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
