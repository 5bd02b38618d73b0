"""Request shapes shared by the HTTP handlers and the envelope router."""

from typing import Dict, Any, List, Optional
from pydantic import Field

from .context import CamelModel, Context, UserStub


class ContextCreateRequest(CamelModel):
    """Payload for creating a context"""
    name: Optional[str] = None
    description: str = ""
    content: Optional[str] = None
    organizations: List[str] = Field(default_factory=list)
    tenants: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    user: Optional[UserStub] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_context(self) -> Context:
        return Context(**self.model_dump())


class ContextUpdateRequest(ContextCreateRequest):
    """Full replacement payload; version is the one the caller observed"""
    id: Optional[str] = None
    version: Optional[int] = Field(default=None, ge=1)

    def to_context(self, context_id: Optional[str] = None) -> Context:
        fields = self.model_dump(exclude={"id", "version"})
        return Context(id=context_id or self.id or "", version=self.version or 0, **fields)


class ContextDeleteRequest(CamelModel):
    """Payload for soft-deleting a context"""
    id: str
