from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone


# Fields copied verbatim into every history snapshot
BUSINESS_FIELDS = (
    "name",
    "description",
    "content",
    "organizations",
    "tenants",
    "groups",
    "user",
    "tags",
    "metadata",
    "is_active",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using wire field names"""
        return self.model_dump(mode="json", by_alias=True)


class UserStub(CamelModel):
    """Owner reference"""
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class Context(CamelModel):
    """Versioned context document"""
    id: str = ""
    name: Optional[str] = None
    description: str = ""
    content: Optional[str] = None
    organizations: List[str] = Field(default_factory=list)
    tenants: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    user: Optional[UserStub] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    version: int = 1
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None

    def business_fields(self) -> Dict[str, Any]:
        """Copy of the mutable business fields"""
        return self.model_dump(include=set(BUSINESS_FIELDS))


class ContextHistory(CamelModel):
    """Immutable snapshot of a context taken before a mutation"""
    id: str = ""
    context_id: str
    name: Optional[str] = None
    description: str = ""
    content: Optional[str] = None
    organizations: List[str] = Field(default_factory=list)
    tenants: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    user: Optional[UserStub] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    version: int
    created_time: Optional[datetime] = None

    @classmethod
    def from_context(cls, context: Context) -> "ContextHistory":
        """Snapshot the current state of a context"""
        return cls(
            context_id=context.id,
            version=context.version,
            **context.business_fields(),
        )
