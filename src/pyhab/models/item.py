"""Item metadata models returned by the REST API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ItemTypeInfo(BaseModel):
    """Name and type of a single item, as listed by ``/rest/items``."""

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    name: str = Field(..., description="Item name")
    type: str = Field(..., description="Item type, e.g. ``Switch`` or ``Number:Temperature``")

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        if not value:
            raise ValueError("name must be non-empty")
        return value
