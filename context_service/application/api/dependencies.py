from typing import Annotated
from fastapi import Depends, Request

from ...bootstrap import ServiceContainer
from ...domain.service.context_service import ContextService
from ...domain.service.history_service import ContextHistoryService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_context_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> ContextService:
    return container.context_service


def get_history_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> ContextHistoryService:
    return container.history_service


ContextServiceDep = Annotated[ContextService, Depends(get_context_service)]
HistoryServiceDep = Annotated[ContextHistoryService, Depends(get_history_service)]
