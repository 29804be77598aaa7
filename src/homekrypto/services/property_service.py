"""Property service — listings and fractional share purchases.

A property is split into at most 52 shares (one week each). Users buy
shares into a single accumulated holding per property; the sum of all
holdings never exceeds total_shares. Admins manage listings; removal is
a soft deactivation so existing holdings keep pointing at a real row.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.db.models import Agent, AgentStatus, Property, PropertyShare
from homekrypto.errors import ConflictError, NotFoundError, ValidationError
from homekrypto.events.store import EventStore
from homekrypto.events.types import (
    PROPERTY_CREATED,
    PROPERTY_DEACTIVATED,
    PROPERTY_UPDATED,
    SHARES_PURCHASED,
)

logger = structlog.get_logger()


def _agent_location(agent: Agent) -> Optional[str]:
    parts = [p for p in (agent.city, agent.state) if p]
    return ", ".join(parts) or None


class PropertyService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    # ─── Reads ──────────────────────────────────────────

    def _sold_subquery(self):
        return (
            select(
                PropertyShare.property_id,
                func.sum(PropertyShare.shares_owned).label("sold"),
            )
            .group_by(PropertyShare.property_id)
            .subquery()
        )

    def _enrich(self, prop: Property, agent: Optional[Agent], sold: int) -> dict:
        data = {c.key: getattr(prop, c.key) for c in Property.__table__.columns}
        data["shares_sold"] = int(sold or 0)
        if agent is not None:
            data.update(
                agent_name=agent.first_name,
                agent_last_name=agent.last_name,
                agent_email=agent.email,
                agent_phone=agent.phone,
                agent_location=_agent_location(agent),
            )
        return data

    async def list_active(self) -> list[dict]:
        """Active listings, newest first, with agent contact and shares sold."""
        sold = self._sold_subquery()
        result = await self.db.execute(
            select(Property, Agent, sold.c.sold)
            .outerjoin(Agent, Agent.id == Property.agent_id)
            .outerjoin(sold, sold.c.property_id == Property.id)
            .where(Property.is_active.is_(True))
            .order_by(Property.created_at.desc())
        )
        return [self._enrich(p, a, s) for p, a, s in result.all()]

    async def get_active(self, property_id: str) -> dict:
        sold = self._sold_subquery()
        result = await self.db.execute(
            select(Property, Agent, sold.c.sold)
            .outerjoin(Agent, Agent.id == Property.agent_id)
            .outerjoin(sold, sold.c.property_id == Property.id)
            .where(Property.id == property_id, Property.is_active.is_(True))
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Property not found")
        return self._enrich(*row)

    async def approved_agents(self) -> list[dict]:
        """Agents an admin may assign a listing to."""
        result = await self.db.execute(
            select(Agent)
            .where(
                Agent.status == AgentStatus.APPROVED.value,
                Agent.is_active.is_(True),
            )
            .order_by(Agent.first_name, Agent.last_name)
        )
        return [
            {
                "id": a.id,
                "first_name": a.first_name,
                "last_name": a.last_name,
                "email": a.email,
                "location": _agent_location(a),
                "phone": a.phone,
            }
            for a in result.scalars().all()
        ]

    async def _shares_sold(self, property_id: str) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(PropertyShare.shares_owned), 0)).where(
                PropertyShare.property_id == property_id
            )
        )
        return int(result.scalar() or 0)

    async def _check_agent(self, agent_id: Optional[int]) -> None:
        if agent_id is None:
            return
        agent = await self.db.get(Agent, agent_id)
        if agent is None or agent.status != AgentStatus.APPROVED.value:
            raise ValidationError("Agent not found or not approved")

    # ─── Admin writes ───────────────────────────────────

    async def create(self, admin_id: int, **fields) -> Property:
        if await self.db.get(Property, fields["id"]) is not None:
            raise ConflictError("Property with this ID already exists")
        await self._check_agent(fields.get("agent_id"))

        prop = Property(**fields)
        self.db.add(prop)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Property with this ID already exists")

        await self.events.append(
            stream_id=f"property:{prop.id}",
            event_type=PROPERTY_CREATED,
            data={"created_by": admin_id, "total_shares": prop.total_shares},
        )
        await self.db.commit()
        logger.info("property.created", property_id=prop.id)
        return prop

    async def update(self, property_id: str, admin_id: int, **changes) -> Property:
        prop = await self.db.get(Property, property_id)
        if prop is None:
            raise NotFoundError("Property not found")
        if "agent_id" in changes:
            await self._check_agent(changes["agent_id"])
        if "total_shares" in changes:
            sold = await self._shares_sold(property_id)
            if changes["total_shares"] < sold:
                raise ValidationError(
                    f"Total shares cannot be less than the {sold} already sold"
                )

        for key, value in changes.items():
            setattr(prop, key, value)
        await self.events.append(
            stream_id=f"property:{prop.id}",
            event_type=PROPERTY_UPDATED,
            data={"updated_by": admin_id, "fields": sorted(changes)},
        )
        await self.db.commit()
        return prop

    async def deactivate(self, property_id: str, admin_id: int) -> None:
        prop = await self.db.get(Property, property_id)
        if prop is None:
            raise NotFoundError("Property not found")
        prop.is_active = False
        await self.events.append(
            stream_id=f"property:{prop.id}",
            event_type=PROPERTY_DEACTIVATED,
            data={"deactivated_by": admin_id},
        )
        await self.db.commit()

    # ─── Shares ─────────────────────────────────────────

    async def shares_for(self, user_id: int) -> list[PropertyShare]:
        result = await self.db.execute(
            select(PropertyShare)
            .where(PropertyShare.user_id == user_id)
            .order_by(PropertyShare.created_at)
        )
        return list(result.scalars().all())

    async def purchase(
        self,
        user_id: int,
        property_id: str,
        shares_count: int,
        wallet_address: str,
    ) -> PropertyShare:
        """Buy shares, adding to the user's existing holding if any."""
        result = await self.db.execute(
            select(Property)
            .where(Property.id == property_id, Property.is_active.is_(True))
            .with_for_update()
        )
        prop = result.scalars().first()
        if prop is None:
            raise NotFoundError("Property not found")

        remaining = prop.total_shares - await self._shares_sold(prop.id)
        if shares_count > remaining:
            raise ValidationError(f"Only {remaining} shares remaining")

        result = await self.db.execute(
            select(PropertyShare).where(
                PropertyShare.user_id == user_id,
                PropertyShare.property_id == prop.id,
            )
        )
        holding = result.scalars().first()
        if holding is None:
            holding = PropertyShare(
                user_id=user_id,
                property_id=prop.id,
                shares_owned=shares_count,
                user_wallet=wallet_address,
            )
            self.db.add(holding)
        else:
            holding.shares_owned += shares_count
            holding.user_wallet = wallet_address

        await self.db.flush()
        await self.events.append(
            stream_id=f"property:{prop.id}",
            event_type=SHARES_PURCHASED,
            data={"user_id": user_id, "shares": shares_count},
        )
        await self.db.commit()
        logger.info(
            "property.shares_purchased",
            property_id=prop.id,
            user_id=user_id,
            shares=shares_count,
        )
        return holding
