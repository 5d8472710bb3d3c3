"""
Pydantic schemas for entities.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict


class EntityBase(BaseModel):
    label: str = Field("", max_length=255)
    references: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Audience field name -> referenced group ids"
    )


class EntityCreate(EntityBase):
    """Schema for creating an entity; the current user becomes its owner."""
    entity_type: str = Field(..., min_length=1, max_length=64)
    bundle: str = Field(..., min_length=1, max_length=64)


class EntityUpdate(BaseModel):
    """Schema for updating an entity."""
    label: Optional[str] = Field(None, max_length=255)
    owner_id: Optional[str] = None
    references: Optional[Dict[str, List[str]]] = None


class EntityResponse(EntityBase):
    """Schema for entity response."""
    id: str
    entity_type: str
    bundle: str
    owner_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
