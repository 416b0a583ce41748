"""HTTP schemas for /api/vector-search."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .....crosscutting.config import get_settings

_settings = get_settings()


class VectorSearchReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vector: list[float] = Field(..., min_length=1)
    top_k: int = Field(default=5, alias="topK", ge=1, le=_settings.max_top_k)


class VectorMatchOut(BaseModel):
    id: Any
    content: str | None = None
    distance: float


class VectorSearchRes(BaseModel):
    success: bool = True
    matches: list[VectorMatchOut]
