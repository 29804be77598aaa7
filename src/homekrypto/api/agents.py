"""Public agent API — self-registration and the agent directory.

Learn: Everything here is open (no session needed). Only approved,
active agents are ever listed; pending and denied applications stay
invisible until an admin approves them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.db.engine import get_db
from homekrypto.notifications.notifier import EmailNotifier, get_notifier
from homekrypto.schemas.agent import (
    AgentEnvelope,
    AgentPageDetail,
    AgentPageRead,
    AgentRegister,
    CountryCount,
    PublicAgent,
)
from homekrypto.services.agent_service import AgentService

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> AgentService:
    return AgentService(db, notifier)


@router.post("/agents/register", response_model=AgentEnvelope, status_code=201)
async def register_agent(body: AgentRegister, svc: AgentService = Depends(_svc)):
    """Submit an agent application for admin review."""
    agent = await svc.register(**body.model_dump())
    return {
        "message": "Registration submitted successfully. Your application is under review.",
        "agent": agent,
    }


@router.get("/agents", response_model=list[PublicAgent])
async def list_agents(svc: AgentService = Depends(_svc)):
    return await svc.list_public()


@router.get("/agents/countries", response_model=list[CountryCount])
async def list_countries(svc: AgentService = Depends(_svc)):
    return await svc.countries()


@router.get("/agents/search", response_model=list[PublicAgent])
async def search_agents(
    q: Optional[str] = Query(None, max_length=100),
    country: Optional[str] = Query(None, max_length=100),
    svc: AgentService = Depends(_svc),
):
    return await svc.search(q=q, country=country)


@router.get("/agent-page/{slug:path}", response_model=AgentPageDetail)
async def get_agent_page(slug: str, svc: AgentService = Depends(_svc)):
    """Public profile page, e.g. /agent-page/united-states/jane-doe."""
    page, agent = await svc.get_public_page(slug)
    return {
        **AgentPageRead.model_validate(page).model_dump(),
        "url": svc.page_url(page.slug),
        "agent": PublicAgent.model_validate(agent),
    }
