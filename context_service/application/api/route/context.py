from typing import Annotated, Any, List
from fastapi import APIRouter, Body, status

from ..dependencies import ContextServiceDep
from ....domain.errors import InvalidInputError
from ....domain.models.context import Context
from ....domain.models.requests import ContextCreateRequest, ContextUpdateRequest

router = APIRouter(prefix="/contexts", tags=["contexts"])


@router.get("/", response_model=List[Context])
async def filter_contexts(
    service: ContextServiceDep,
    predicate: Annotated[Any, Body()] = None,
):
    """List contexts matching the equality filter in the request body"""
    return await service.filter_contexts(predicate)


@router.get("/{cid}", response_model=Context)
async def get_context(cid: str, service: ContextServiceDep):
    return await service.get_context_by_id(cid)


@router.post("/", response_model=Context, status_code=status.HTTP_201_CREATED)
async def create_context(request: ContextCreateRequest, service: ContextServiceDep):
    return await service.create_context(request.to_context())


@router.patch("/{cid}", response_model=Context)
async def update_context(cid: str, request: ContextUpdateRequest, service: ContextServiceDep):
    """
    Replace a context.

    The body must carry the version the client read; a stale version yields
    409 and the client has to re-fetch before retrying.
    """
    if request.version is None:
        raise InvalidInputError("Optimistic lock failed: 'version' field is required in the update payload")
    if request.id and request.id != cid:
        raise InvalidInputError(
            "context id in body does not match path",
            {"pathId": cid, "bodyId": request.id},
        )

    return await service.update_context(request.to_context(cid))


@router.delete("/{cid}", response_model=Context)
async def delete_context(cid: str, service: ContextServiceDep):
    """Soft delete; the context stays readable with isActive false"""
    return await service.delete_context(cid)
