"""
Pydantic schemas for memberships.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from organic_groups.features.memberships.models import MembershipState, TYPE_DEFAULT


class MembershipCreate(BaseModel):
    """Subscribe a user to a group."""
    user_id: str = Field(..., description="User to subscribe; the current user when subscribing oneself")
    group_type: str = Field(..., min_length=1, max_length=64)
    group_id: str = Field(..., min_length=1, max_length=26)
    field_name: Optional[str] = Field(None, max_length=64, description="Membership channel (audience field)")
    type: str = Field(TYPE_DEFAULT, max_length=64)
    state: Optional[MembershipState] = Field(
        None,
        description="Defaults to active, or pending when a user subscribes without the right to skip approval"
    )
    roles: List[str] = Field(default_factory=list, description="Role names of the group bundle")


class MembershipStateUpdate(BaseModel):
    state: MembershipState


class MembershipRoleAssign(BaseModel):
    role_id: str


class MembershipRole(BaseModel):
    id: str
    name: str
    label: str

    model_config = ConfigDict(from_attributes=True)


class MembershipResponse(BaseModel):
    """Schema for membership response."""
    id: str
    type: str
    uid: str
    group_type: str
    group_id: str
    state: MembershipState
    field_name: Optional[str]
    roles: List[MembershipRole] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
