from typing import List, Optional
from fastapi import APIRouter

from ..dependencies import ContextServiceDep, HistoryServiceDep
from ....domain.errors import InvalidInputError
from ....domain.models.context import ContextHistory

router = APIRouter(tags=["context-histories"])


@router.get("/context-histories/", response_model=List[ContextHistory])
async def get_history_for_context(
    context_service: ContextServiceDep,
    history_service: HistoryServiceDep,
    cid: Optional[str] = None,
):
    """Snapshots of one context, oldest version first"""
    if not cid:
        raise InvalidInputError("Context ID is required")

    # 404 for unknown contexts rather than an empty list
    await context_service.get_context_by_id(cid)
    return await history_service.get_history_for_context_id(cid)


@router.get("/contexts/{cid}/context-histories/{hid}", response_model=ContextHistory)
async def get_history_item(cid: str, hid: str, history_service: HistoryServiceDep):
    return await history_service.get_history_item(cid, hid)
