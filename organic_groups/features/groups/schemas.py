"""
Pydantic schemas for the group registry.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class GroupBundleCreate(BaseModel):
    """Declare an entity type + bundle a group."""
    entity_type: str = Field(..., min_length=1, max_length=64)
    bundle: str = Field(..., min_length=1, max_length=64)


class AudienceFieldCreate(BaseModel):
    """Attach an audience field to a bundle, making it group content."""
    entity_type: str = Field(..., min_length=1, max_length=64)
    bundle: str = Field(..., min_length=1, max_length=64)
    target_type: str = Field(..., min_length=1, max_length=64, description="Entity type of the referenced groups")
    field_name: Optional[str] = Field(None, min_length=1, max_length=64)
    target_bundles: List[str] = Field(default_factory=list, description="Accepted group bundles; empty means all")


class AudienceFieldResponse(BaseModel):
    entity_type: str
    bundle: str
    field_name: str
    target_type: str
    target_bundles: List[str] = []

    model_config = ConfigDict(from_attributes=True)
