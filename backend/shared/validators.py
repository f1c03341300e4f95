"""Shared validation helpers for request input and service settings."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def normalize_address(value: str) -> str:
    """Validate a 20-byte 0x-prefixed hex address and return it lowercased.

    Raises ValueError for anything else.
    """
    if not isinstance(value, str) or not _ADDRESS_PATTERN.match(value):
        raise ValueError("Invalid player address")
    return value.lower()


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a string list from environment variable or config value.

    Accepts:
    - A list of strings (returned as-is)
    - A JSON array string: '["a","b"]'
    - A comma-separated string: 'a,b'

    Raises ValueError for empty string values or malformed JSON.
    When allow_empty is False (default), also rejects empty lists.
    """
    if isinstance(value, list):
        if not allow_empty and not value:
            raise ValueError("String list value must not be empty")
        return value

    stripped = value.strip()
    if not stripped:
        if allow_empty:
            return []
        raise ValueError("String list value must not be empty")

    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        if not allow_empty and not parsed:
            raise ValueError("String list value must not be empty")
        return parsed

    result = [item.strip() for item in stripped.split(",") if item.strip()]
    if not allow_empty and not result:
        raise ValueError("String list value must not be empty")
    return result


def parse_int_list(value: str | list[int] | tuple[int, ...]) -> tuple[int, ...]:
    """Parse an integer list such as prize weights ('50,30,20' or '[50,30,20]').

    Raises ValueError for malformed JSON, JSON that is not an array, and
    items that are not whole integers.
    """
    if isinstance(value, (list, tuple)):
        return _require_ints(value)
    stripped = value.strip()
    if stripped.startswith(("[", "{")):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list):
            raise ValueError("JSON value must be an array of integers")
        return _require_ints(parsed)
    return tuple(int(part) for part in stripped.split(",") if part.strip())


def _require_ints(items: list[Any] | tuple[Any, ...]) -> tuple[int, ...]:
    if not all(isinstance(item, int) and not isinstance(item, bool) for item in items):
        raise ValueError("List value must be an array of integers")
    return tuple(items)


_RAW_LIST_FIELDS = {"cors_origins", "prize_weights"}


class ListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that passes list fields as raw strings to validators.

    pydantic-settings tries to JSON-decode list-typed fields from env vars before
    validators run. This subclass bypasses that for list fields so the custom
    parse_string_list / parse_int_list validators handle both JSON and CSV formats.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in _RAW_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
