"""Vector search router: POST /api/vector-search (ranked matches)."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .....application.usecases import VectorSearchUseCase
from .....container import get_vector_search_use_case
from .....context import caller_var
from .....crosscutting.error_responses import OPENAPI_QUERY_ERROR_RESPONSES
from ..schemas.vector import VectorMatchOut, VectorSearchReq, VectorSearchRes

router = APIRouter(tags=["vector"])


@router.post(
    "/vector-search",
    response_model=VectorSearchRes,
    responses=OPENAPI_QUERY_ERROR_RESPONSES,
)
def vector_search(
    req: VectorSearchReq,
    use_case: VectorSearchUseCase = Depends(get_vector_search_use_case),
) -> VectorSearchRes:
    matches = use_case.execute(req.vector, req.top_k, caller=caller_var.get())
    return VectorSearchRes(
        matches=[
            VectorMatchOut(id=m.id, content=m.content, distance=m.distance)
            for m in matches
        ]
    )
