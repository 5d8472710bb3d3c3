"""
Pydantic schemas for access checks.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from organic_groups.features.access.verdict import Verdict


class AccessCheckRequest(BaseModel):
    """
    Check an operation against a stored entity, or against an unsaved one
    described by type, bundle and references (for "create").
    """
    operation: str = Field(..., min_length=1, max_length=64)
    entity_type: str = Field(..., min_length=1, max_length=64)
    entity_id: Optional[str] = Field(None, description="Stored entity to check")
    bundle: Optional[str] = Field(None, description="Bundle of an unsaved entity")
    references: Dict[str, List[str]] = Field(default_factory=dict)
    user_id: Optional[str] = Field(None, description="Check on behalf of another user (admin only)")


class AccessCheckResponse(BaseModel):
    verdict: Verdict
    reason: Optional[str] = None
    user_id: Optional[str] = None


class UserPermissionsResponse(BaseModel):
    """Effective roles and permissions of a user in a group."""
    user_id: Optional[str]
    group_type: str
    group_id: str
    roles: List[str]
    permissions: List[str]
