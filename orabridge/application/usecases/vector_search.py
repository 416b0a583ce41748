"""
===============================================================================
USE CASE: Vector Search
===============================================================================

Business Goal:
    Rank stored rows by similarity to a query vector using the database's
    own VECTOR_DISTANCE function (the gateway only calls it).

Rules:
    - topK in [1, max_top_k]; vector non-empty, finite numbers, and of the
      configured dimension when one is set.
    - Table/column names come from configuration and are validated as
      identifiers; the vector and topK are always bound.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    VectorSearchUseCase

Collaborators:
    - QueryExecutor
    - PooledCall
===============================================================================
"""

from __future__ import annotations

import json
import math
from typing import List, Sequence

from ...crosscutting.exceptions import GatewayError, ValidationRejected
from ...crosscutting.metrics import record_query_outcome
from ...domain.entities import StatementRequest, VectorMatch
from ...infrastructure.db.oracle import validate_identifier
from ..query_executor import QueryExecutor
from ._pooled import PooledCall

_METRICS = frozenset({"COSINE", "EUCLIDEAN", "DOT", "MANHATTAN", "HAMMING"})


def build_vector_sql(*, table: str, id_column: str, content_column: str, embedding_column: str, metric: str) -> str:
    metric = metric.upper()
    if metric not in _METRICS:
        raise ValueError(f"unsupported distance metric: {metric}")
    table = validate_identifier(table, allow_schema=True)
    id_col = validate_identifier(id_column)
    content_col = validate_identifier(content_column)
    embedding_col = validate_identifier(embedding_column)
    return (
        f"SELECT {id_col}, {content_col}, "
        f"VECTOR_DISTANCE({embedding_col}, TO_VECTOR(:query_vector), {metric}) AS distance "
        f"FROM {table} "
        "ORDER BY distance "
        "FETCH FIRST :top_k ROWS ONLY"
    )


class VectorSearchUseCase:
    """Use Case (Query): top-k similarity search."""

    def __init__(
        self,
        *,
        executor: QueryExecutor,
        pooled: PooledCall,
        table: str,
        id_column: str = "ID",
        content_column: str = "CONTENT",
        embedding_column: str = "EMBEDDING",
        metric: str = "COSINE",
        dimensions: int = 0,
        max_top_k: int = 50,
    ) -> None:
        self._executor = executor
        self._pooled = pooled
        self._dimensions = dimensions
        self._max_top_k = max_top_k
        self._sql = build_vector_sql(
            table=table,
            id_column=id_column,
            content_column=content_column,
            embedding_column=embedding_column,
            metric=metric,
        )

    def _validate(self, vector: Sequence[float], top_k: int) -> None:
        if not vector:
            raise ValidationRejected("vector must not be empty", rule="empty_vector")
        if self._dimensions and len(vector) != self._dimensions:
            raise ValidationRejected(
                f"vector has {len(vector)} dimensions, expected {self._dimensions}",
                rule="vector_dimensions",
            )
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in vector):
            raise ValidationRejected("vector values must be finite numbers", rule="vector_values")
        if not 1 <= top_k <= self._max_top_k:
            raise ValidationRejected(
                f"topK must be between 1 and {self._max_top_k}", rule="top_k_range"
            )

    def execute(self, vector: Sequence[float], top_k: int, *, caller: str = "") -> List[VectorMatch]:
        try:
            self._validate(vector, top_k)
            request = StatementRequest(
                text=self._sql,
                params={"query_vector": json.dumps([float(v) for v in vector]), "top_k": top_k},
                caller=caller,
                max_rows=top_k,
            )
            deadline = self._executor.deadline_for(request)
            conn = self._pooled.acquire(deadline)
            try:
                result = self._executor.execute(request, conn, deadline=deadline)
            finally:
                self._pooled.pool.release(conn)
        except GatewayError as exc:
            record_query_outcome("vector", exc.error_code)
            raise

        record_query_outcome("vector", "ok")
        return [
            VectorMatch(id=row[0], content=row[1], distance=float(row[2]))
            for row in result.rows
        ]
