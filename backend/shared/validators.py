"""Validation helpers shared by settings models."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a list of strings from an environment variable or config value.

    Accepts a list (returned as-is), a JSON array string ('["a","b"]') or a
    comma-separated string ('a,b'). Raises ValueError for blank input and
    malformed JSON, and for empty lists unless ``allow_empty`` is set.
    """
    if isinstance(value, list):
        items = value
    else:
        stripped = value.strip()
        if not stripped:
            raise ValueError("String list value must not be empty")
        if stripped.startswith("["):
            try:
                items = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
                raise ValueError("JSON value must be an array of strings")
        else:
            items = [item.strip() for item in stripped.split(",") if item.strip()]

    if not allow_empty and not items:
        raise ValueError("String list value must not be empty")
    return items


def parse_log_choice(value: str, choices: set[str], *, name: str, upper: bool = False) -> str:
    """Normalize a log setting and check it against the allowed values."""
    normalized = value.strip().upper() if upper else value.strip().lower()
    if normalized not in choices:
        allowed = ", ".join(repr(c) for c in sorted(choices) if c)
        suffix = " or unset" if "" in choices else ""
        raise ValueError(f"Invalid {name}={value!r}. Must be one of {allowed}{suffix}.")
    return normalized


_STRING_LIST_FIELDS = {"cors_origins"}


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands string-list fields to validators unparsed.

    pydantic-settings JSON-decodes list-typed fields from env vars before
    validators run, which breaks the comma-separated form. This source skips
    that step for string-list fields so ``parse_string_list`` sees the raw value.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in _STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
