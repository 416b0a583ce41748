"""
===============================================================================
CRC CARD — schemas/query.py
===============================================================================

Module:
    HTTP schemas for /api/query and /api/query/stream

Responsibilities:
    - Request DTO (camelCase on the wire, snake_case in Python).
    - Bound the text and timeout with Settings limits.
===============================================================================
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .....crosscutting.config import get_settings

_settings = get_settings()


class QueryReq(BaseModel):
    """Statement request."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, max_length=_settings.max_query_chars)
    params: Union[list[Any], dict[str, Any], None] = None
    max_rows: int | None = Field(default=None, alias="maxRows", ge=1)
    read_only: bool = Field(default=True, alias="readOnly")
    elevated: bool = False
    timeout_seconds: float | None = Field(default=None, alias="timeoutSeconds", gt=0, le=600)

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        return v.strip()


class QueryRes(BaseModel):
    """Successful bounded execution (rows in driver order)."""

    success: bool = True
    rows: list[list[Any]]
