"""
Pydantic schemas for the public agent directory and agent view statistics.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from app.models.user import BlueTickStatus
from app.schemas.property import PropertyResponse
import uuid


class AgentSummary(BaseModel):
    id: str
    full_name: str
    phone: str
    avatar: str = ""
    rating: float = 0.0
    verified: bool = False
    blue_tick_status: BlueTickStatus = BlueTickStatus.NONE
    bio: Optional[str] = None
    location: Optional[str] = None


class AgentListResponse(BaseModel):
    agents: List[AgentSummary]
    total: int


class AgentProfileResponse(BaseModel):
    """An agent's public page with their newest listings."""

    agent: AgentSummary
    properties: List[PropertyResponse]
    total_properties: int = Field(..., description="Visible listings owned by the agent")


class AgentViewStatsResponse(BaseModel):
    agent_id: uuid.UUID
    agent_name: str
    current_views: int
    current_unique_views: int
    current_property_count: int
    deleted_properties_views: int = Field(..., description="Views carried over from confirmed deletions")
    combined_views: int = Field(..., description="current_views plus deleted_properties_views")
    total_views: int
    total_properties: int
