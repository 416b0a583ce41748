"""HTTP DTOs (pydantic) for the gateway endpoints."""

from .query import QueryReq, QueryRes
from .sync import (
    SyncJobRes,
    SyncOutcomeOut,
    SyncRecordIn,
    SyncReq,
    SyncRes,
    SyncRunOut,
    SyncTrackingOut,
)
from .vector import VectorMatchOut, VectorSearchReq, VectorSearchRes

__all__ = [
    "QueryReq",
    "QueryRes",
    "SyncRecordIn",
    "SyncReq",
    "SyncRes",
    "SyncOutcomeOut",
    "SyncJobRes",
    "SyncTrackingOut",
    "SyncRunOut",
    "VectorSearchReq",
    "VectorSearchRes",
    "VectorMatchOut",
]
