"""
Public agent directory and per-agent view statistics.
"""

from fastapi import APIRouter, Depends, Query, Path, status
from uuid import UUID

from app.config import settings
from app.models.user import User
from app.schemas.agent import (
    AgentSummary,
    AgentListResponse,
    AgentProfileResponse,
    AgentViewStatsResponse
)
from app.schemas.property import PropertyResponse
from app.services.error_handler import ERROR_RESPONSES
from app.services.property import PropertyService
from app.utils.dependencies import get_current_active_user, get_property_service

router = APIRouter(prefix="/agents", tags=["Agents"])


def _summary(agent: User) -> AgentSummary:
    return AgentSummary.model_validate({**agent.public_profile(), "bio": agent.bio, "location": agent.location})


@router.get(
    "",
    response_model=AgentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List active agents"
)
async def list_agents(
    property_service: PropertyService = Depends(get_property_service)
) -> AgentListResponse:
    agents = await property_service.list_agents()
    return AgentListResponse(agents=[_summary(a) for a in agents], total=len(agents))


@router.get(
    "/{agent_id}",
    response_model=AgentProfileResponse,
    status_code=status.HTTP_200_OK,
    summary="Agent profile with listings",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_agent_profile(
    agent_id: UUID = Path(..., description="Agent user ID"),
    listing_limit: int = Query(8, ge=1, le=settings.max_page_size),
    property_service: PropertyService = Depends(get_property_service)
) -> AgentProfileResponse:
    agent, properties, total = await property_service.get_agent_profile(agent_id, listing_limit)
    return AgentProfileResponse(
        agent=_summary(agent),
        properties=[PropertyResponse.model_validate(p.to_dict(include_agent=True)) for p in properties],
        total_properties=total
    )


@router.get(
    "/{agent_id}/views",
    response_model=AgentViewStatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Agent view statistics",
    description="Views on current listings plus views kept from deleted listings. The agent or a superadmin only.",
    responses={code: ERROR_RESPONSES[code] for code in (401, 403, 404)}
)
async def get_agent_view_stats(
    agent_id: UUID = Path(..., description="Agent user ID"),
    current_user: User = Depends(get_current_active_user),
    property_service: PropertyService = Depends(get_property_service)
) -> AgentViewStatsResponse:
    stats = await property_service.get_agent_view_stats(agent_id, current_user)
    return AgentViewStatsResponse(**stats)
