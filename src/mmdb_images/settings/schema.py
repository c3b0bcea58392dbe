"""Schema helpers for the image cache settings file."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from jsonschema import Draft202012Validator

from ..config import (
    DEFAULT_MAX_ENTRY_COUNT,
    DEFAULT_MAX_TOTAL_COST,
    DISK_RETENTION,
    FETCH_WORKERS,
    HTTP_TIMEOUT_SEC,
)

SETTINGS_SCHEMA: dict[str, Any] = {
    "$id": "mmdb_images/settings.schema.json",
    "type": "object",
    "required": ["schema", "memory", "disk", "transport"],
    "properties": {
        "schema": {"const": "mmdb_images/settings@1"},
        "memory": {
            "type": "object",
            "required": ["max_total_cost", "max_entry_count"],
            "properties": {
                "max_total_cost": {"type": "integer", "minimum": 1},
                "max_entry_count": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
        "disk": {
            "type": "object",
            "properties": {
                "directory": {"type": ["string", "null"]},
                "retention_days": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "transport": {
            "type": "object",
            "properties": {
                "timeout_sec": {"type": "number", "exclusiveMinimum": 0},
                "workers": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": True,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "schema": "mmdb_images/settings@1",
    "memory": {
        "max_total_cost": DEFAULT_MAX_TOTAL_COST,
        "max_entry_count": DEFAULT_MAX_ENTRY_COUNT,
    },
    "disk": {
        "directory": None,
        "retention_days": DISK_RETENTION.days,
    },
    "transport": {
        "timeout_sec": HTTP_TIMEOUT_SEC,
        "workers": FETCH_WORKERS,
    },
}

_validator = Draft202012Validator(SETTINGS_SCHEMA)

_SECTIONS = ("memory", "disk", "transport")


def merge_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_SETTINGS` and validate the result."""

    merged = deepcopy(DEFAULT_SETTINGS)
    if data:
        for key, value in data.items():
            if key in _SECTIONS and isinstance(value, dict):
                merged.setdefault(key, {}).update(value)
                continue
            merged[key] = value
    _validator.validate(merged)
    return merged


def validate_settings(data: dict[str, Any]) -> None:
    """Validate *data* against the settings schema."""

    _validator.validate(data)


__all__ = ["DEFAULT_SETTINGS", "SETTINGS_SCHEMA", "merge_with_defaults", "validate_settings"]
