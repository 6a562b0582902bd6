"""Shared type aliases."""

from __future__ import annotations

from typing import TypeAlias

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)
DataRecord: TypeAlias = dict[str, JSONValue]

# Values a point field may hold once converted from JSON
FieldValue: TypeAlias = str | float | bool
