"""Admin agent API — the approval workflow.

Learn: require_admin is attached at include_router level (see
api/__init__.py), so every route here re-checks the caller's role from
the users table before the handler runs. Handlers that need the admin's
id declare the dependency again; FastAPI resolves it once per request.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.dependencies import CurrentUser, require_admin
from homekrypto.db.engine import get_db
from homekrypto.notifications.notifier import EmailNotifier, get_notifier
from homekrypto.schemas.agent import (
    AgentActivation,
    AgentApproval,
    AgentDeny,
    AgentEnvelope,
    AgentRead,
    AgentStats,
)
from homekrypto.schemas.auth import MessageResponse
from homekrypto.services.agent_service import AgentService

router = APIRouter(prefix="/admin/agents")


def _svc(
    db: AsyncSession = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> AgentService:
    return AgentService(db, notifier)


@router.get("", response_model=list[AgentRead])
async def list_agents(
    status: Optional[Literal["pending", "approved", "denied"]] = Query(None),
    svc: AgentService = Depends(_svc),
):
    return await svc.list_agents(status)


@router.get("/stats", response_model=AgentStats)
async def agent_stats(svc: AgentService = Depends(_svc)):
    return await svc.stats()


@router.get("/{agent_id}", response_model=AgentRead)
async def get_agent(agent_id: int, svc: AgentService = Depends(_svc)):
    return await svc.get_agent(agent_id)


@router.patch("/{agent_id}/approve", response_model=AgentApproval)
async def approve_agent(
    agent_id: int,
    admin: CurrentUser = Depends(require_admin),
    svc: AgentService = Depends(_svc),
):
    """Approve and publish the agent's page. Idempotent for approved agents."""
    agent, page = await svc.approve(agent_id, admin.id)
    return {
        "message": "Agent approved successfully",
        "agent": agent,
        "page": page,
        "url": svc.page_url(page.slug),
    }


@router.patch("/{agent_id}/deny", response_model=AgentEnvelope)
async def deny_agent(
    agent_id: int,
    body: Optional[AgentDeny] = Body(None),
    admin: CurrentUser = Depends(require_admin),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.deny(agent_id, admin.id, body.reason if body else None)
    return {"message": "Agent application denied", "agent": agent}


@router.patch("/{agent_id}", response_model=AgentEnvelope)
async def set_agent_active(
    agent_id: int,
    body: AgentActivation,
    svc: AgentService = Depends(_svc),
):
    agent = await svc.set_active(agent_id, body.is_active)
    state = "activated" if body.is_active else "deactivated"
    return {"message": f"Agent {state} successfully", "agent": agent}


@router.delete("/{agent_id}", response_model=MessageResponse)
async def delete_agent(
    agent_id: int,
    admin: CurrentUser = Depends(require_admin),
    svc: AgentService = Depends(_svc),
):
    """Hard delete for policy violations. Use deny for normal rejections."""
    await svc.delete(agent_id, admin.id)
    return {"message": "Agent deleted successfully"}
