"""Agent service — the admin-gated agent approval workflow.

Learn: agents are profiles, not logins. Their lifecycle:

    register → pending ──approve──→ approved ⇄ (is_active on/off)
                       └──deny───→ denied ──approve──→ approved

Only admins reach approve/deny/activation/delete (enforced by the
router's require_admin dependency). Approval generates the public
AgentPage; the page's slug is "<country>/<first-last>" and gets the
shortest free numeric suffix ("-2", "-3", ...) when two agents share a
name and country, so an approval never overwrites another agent's page.
"""

import re
import secrets
import string
from typing import Optional

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.config import Settings, settings as default_settings
from homekrypto.db.models import Agent, AgentPage, AgentStatus, Property, utcnow
from homekrypto.errors import ConflictError, NotFoundError, ValidationError
from homekrypto.events.store import EventStore
from homekrypto.events.types import (
    AGENT_ACTIVATION_CHANGED,
    AGENT_APPROVED,
    AGENT_DELETED,
    AGENT_DENIED,
    AGENT_REGISTERED,
)
from homekrypto.notifications.notifier import EmailNotifier
from homekrypto.notifications.templates import (
    admin_new_agent_email,
    agent_approved_email,
    agent_denied_email,
    agent_removed_email,
    agent_welcome_email,
)

logger = structlog.get_logger()

DEFAULT_DENIAL_REASON = "Application does not meet current requirements"

_NON_SLUG = re.compile(r"[^a-z0-9\s-]")
_SPACES = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def slugify(text: str) -> str:
    """"São Paulo  Realty!" → "so-paulo-realty"."""
    text = _NON_SLUG.sub("", (text or "").lower().strip())
    text = _SPACES.sub("-", text)
    return _HYPHENS.sub("-", text).strip("-")


def _random_suffix(length: int = 6) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


class AgentService:
    """Business logic for agents and their public pages."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: EmailNotifier,
        config: Settings = default_settings,
    ):
        self.db = db
        self.notifier = notifier
        self.config = config
        self.events = EventStore(db)

    def page_url(self, slug: str) -> str:
        return f"{self.config.public_base_url}/agents/{slug}"

    # ─── Registration ───────────────────────────────────

    def _referral_link(self, agent: Agent) -> Optional[str]:
        if not (agent.first_name and agent.last_name and agent.city):
            return None
        name = slugify(f"{agent.first_name} {agent.last_name} {agent.city}")
        return f"{self.config.public_base_url}/agent/{name}-{_random_suffix()}"

    async def register(self, **fields) -> Agent:
        """Create a pending agent and notify both the agent and the admins."""
        email = fields.pop("email").strip().lower()
        existing = await self.db.execute(select(Agent.id).where(Agent.email == email))
        if existing.first() is not None:
            raise ConflictError("An agent with this email is already registered")

        linkedin = fields.pop("linked_in", None)
        agent = Agent(
            email=email,
            linkedin=linkedin,
            first_name=fields.pop("first_name", None) or "",
            last_name=fields.pop("last_name", None) or "",
            country=fields.pop("country", None) or "United States",
            **fields,
        )
        agent.referral_link = self._referral_link(agent)
        self.db.add(agent)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("An agent with this email is already registered")

        await self.events.append(
            stream_id=f"agent:{agent.id}",
            event_type=AGENT_REGISTERED,
            data={"country": agent.country},
        )
        await self.db.commit()

        self.notifier.send(agent_welcome_email(agent.email, agent.first_name))
        self.notifier.send(admin_new_agent_email(agent, self.config))
        logger.info("agent.registered", agent_id=agent.id)
        return agent

    # ─── Admin reads ────────────────────────────────────

    async def get_agent(self, agent_id: int) -> Agent:
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise NotFoundError("Agent not found")
        return agent

    async def list_agents(self, status: Optional[str] = None) -> list[Agent]:
        q = select(Agent).order_by(Agent.created_at.desc(), Agent.id.desc())
        if status:
            q = q.where(Agent.status == status)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def stats(self) -> dict:
        result = await self.db.execute(
            select(Agent.status, func.count(Agent.id)).group_by(Agent.status)
        )
        counts = {status: n for status, n in result.all()}
        return {
            "total_agents": sum(counts.values()),
            "pending_agents": counts.get(AgentStatus.PENDING.value, 0),
            "approved_agents": counts.get(AgentStatus.APPROVED.value, 0),
            "denied_agents": counts.get(AgentStatus.DENIED.value, 0),
        }

    async def get_page_for(self, agent_id: int) -> AgentPage | None:
        result = await self.db.execute(
            select(AgentPage).where(AgentPage.agent_id == agent_id)
        )
        return result.scalars().first()

    # ─── Approval workflow ──────────────────────────────

    async def _unique_slug(self, agent: Agent) -> str:
        country = slugify(agent.country) or "global"
        name = slugify(f"{agent.first_name} {agent.last_name}") or f"agent-{agent.id}"
        base = f"{country}/{name}"
        result = await self.db.execute(
            select(AgentPage.slug).where(
                or_(AgentPage.slug == base, AgentPage.slug.startswith(f"{base}-"))
            )
        )
        taken = set(result.scalars().all())
        if base not in taken:
            return base
        n = 2
        while f"{base}-{n}" in taken:
            n += 1
        return f"{base}-{n}"

    def _page_copy(self, agent: Agent) -> tuple[str, str]:
        name = f"{agent.first_name} {agent.last_name}".strip()
        where = ", ".join(p for p in (agent.city, agent.state, agent.country) if p)
        title = f"{name} - Real Estate Agent in {where}"
        company = f" with {agent.company}" if agent.company else ""
        meta = (
            f"Connect with {name}, a licensed real estate agent{company} in "
            f"{where}. Explore fractional property ownership with Home Krypto Token."
        )
        return title[:255], meta

    async def approve(self, agent_id: int, admin_id: int) -> tuple[Agent, AgentPage]:
        """Approve an agent and publish their page.

        Approving an already-approved agent changes nothing and returns
        the existing page. Denied agents may be approved on re-review.
        """
        agent = await self.get_agent(agent_id)
        page = await self.get_page_for(agent.id)
        if agent.status == AgentStatus.APPROVED.value and page is not None:
            return agent, page

        agent.status = AgentStatus.APPROVED.value
        agent.is_approved = True
        agent.is_active = True
        agent.approved_by = admin_id
        agent.approved_at = utcnow()
        agent.rejection_reason = None

        title, meta = self._page_copy(agent)
        if page is None:
            page = AgentPage(
                agent_id=agent.id,
                slug=await self._unique_slug(agent),
                title=title,
                meta_description=meta,
                is_active=True,
            )
            self.db.add(page)
        else:
            page.title, page.meta_description, page.is_active = title, meta, True

        await self.db.flush()
        await self.events.append(
            stream_id=f"agent:{agent.id}",
            event_type=AGENT_APPROVED,
            data={"approved_by": admin_id, "slug": page.slug},
        )
        await self.db.commit()

        self.notifier.send(agent_approved_email(agent, self.page_url(page.slug)))
        logger.info("agent.approved", agent_id=agent.id, slug=page.slug)
        return agent, page

    async def deny(
        self, agent_id: int, admin_id: int, reason: Optional[str] = None
    ) -> Agent:
        """Reject an application. The record stays for audit and re-review."""
        agent = await self.get_agent(agent_id)
        reason = (reason or "").strip() or DEFAULT_DENIAL_REASON

        agent.status = AgentStatus.DENIED.value
        agent.is_approved = False
        agent.rejection_reason = reason
        page = await self.get_page_for(agent.id)
        if page is not None:
            page.is_active = False

        await self.events.append(
            stream_id=f"agent:{agent.id}",
            event_type=AGENT_DENIED,
            data={"denied_by": admin_id, "reason": reason},
        )
        await self.db.commit()

        self.notifier.send(agent_denied_email(agent, reason))
        logger.info("agent.denied", agent_id=agent.id)
        return agent

    async def set_active(self, agent_id: int, is_active: bool) -> Agent:
        """Soft (de)activation of an approved agent and their page."""
        agent = await self.get_agent(agent_id)
        if agent.status != AgentStatus.APPROVED.value:
            raise ValidationError("Only approved agents can be activated or deactivated")

        agent.is_active = is_active
        page = await self.get_page_for(agent.id)
        if page is not None:
            page.is_active = is_active
        await self.events.append(
            stream_id=f"agent:{agent.id}",
            event_type=AGENT_ACTIVATION_CHANGED,
            data={"is_active": is_active},
        )
        await self.db.commit()
        return agent

    async def delete(self, agent_id: int, admin_id: int) -> None:
        """Hard delete for policy violations. Listings keep existing, unassigned."""
        agent = await self.get_agent(agent_id)

        await self.db.execute(
            update(Property)
            .where(Property.agent_id == agent.id)
            .values(agent_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(AgentPage)
            .where(AgentPage.agent_id == agent.id)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(agent)
        await self.events.append(
            stream_id=f"agent:{agent_id}",
            event_type=AGENT_DELETED,
            data={"deleted_by": admin_id, "email": agent.email},
        )
        await self.db.commit()

        self.notifier.send(agent_removed_email(agent))
        logger.info("agent.deleted", agent_id=agent_id)

    # ─── Public directory ───────────────────────────────

    def _public(self):
        return select(Agent).where(
            Agent.status == AgentStatus.APPROVED.value,
            Agent.is_active.is_(True),
        )

    async def list_public(self) -> list[Agent]:
        result = await self.db.execute(
            self._public().order_by(Agent.last_name, Agent.first_name)
        )
        return list(result.scalars().all())

    async def countries(self) -> list[dict]:
        result = await self.db.execute(
            select(Agent.country, func.count(Agent.id))
            .where(
                Agent.status == AgentStatus.APPROVED.value,
                Agent.is_active.is_(True),
            )
            .group_by(Agent.country)
            .order_by(Agent.country)
        )
        return [{"country": c, "count": n} for c, n in result.all()]

    async def search(
        self, q: Optional[str] = None, country: Optional[str] = None
    ) -> list[Agent]:
        stmt = self._public()
        if q and q.strip():
            term = q.strip().lower()
            stmt = stmt.where(
                or_(
                    *(
                        func.lower(col).contains(term, autoescape=True)
                        for col in (
                            Agent.first_name,
                            Agent.last_name,
                            Agent.city,
                            Agent.company,
                        )
                    )
                )
            )
        if country and country.strip():
            stmt = stmt.where(func.lower(Agent.country) == country.strip().lower())
        result = await self.db.execute(stmt.order_by(Agent.last_name, Agent.first_name))
        return list(result.scalars().all())

    async def get_public_page(self, slug: str) -> tuple[AgentPage, Agent]:
        result = await self.db.execute(
            select(AgentPage, Agent)
            .join(Agent, Agent.id == AgentPage.agent_id)
            .where(
                AgentPage.slug == slug.strip("/").lower(),
                AgentPage.is_active.is_(True),
                Agent.status == AgentStatus.APPROVED.value,
                Agent.is_active.is_(True),
            )
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Agent page not found")
        return row[0], row[1]
