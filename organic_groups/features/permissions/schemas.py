"""
Pydantic schemas for the permission catalog and OG roles.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from organic_groups.features.permissions.models import RoleType


# ============================================================================
# Catalog Schemas
# ============================================================================

class PermissionResponse(BaseModel):
    """A permission as declared by the catalog."""
    name: str
    title: str
    description: str = ""
    restrict_access: bool = False
    default_roles: List[str] = []
    entity_type: Optional[str] = None
    bundle: Optional[str] = None
    operation: Optional[str] = None
    owner: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    label: Optional[str] = Field(None, max_length=255, description="Human readable role name")
    weight: Optional[int] = Field(None, ge=0, description="Sort order within the group bundle")


class RoleCreate(RoleBase):
    """Schema for creating a custom role in a group bundle."""
    name: str = Field(..., min_length=1, max_length=64, description="Role name, unique per group bundle")
    permissions: List[str] = Field(default_factory=list, description="Permissions granted on creation")

    @field_validator('name')
    @classmethod
    def name_machine_readable(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').isalnum() or v.lower() != v:
            raise ValueError('Role name must contain only lowercase alphanumeric characters and underscores')
        return v


class RoleUpdate(RoleBase):
    """Schema for updating a role."""
    pass


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    name: str
    label: str
    group_type: str
    group_bundle: str
    role_type: RoleType
    is_admin: bool
    weight: int
    permissions: List[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionChange(BaseModel):
    """Permissions to grant to or revoke from a role."""
    permissions: List[str] = Field(..., min_length=1)
