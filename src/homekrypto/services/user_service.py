"""User management for admins: listing, role changes, deletion.

Admin accounts are never deletable here, and an admin cannot delete or
demote themselves, so the system can't be left without an admin by a
single careless click. A deleted user's approvals survive: the agents
they approved keep their status with approved_by cleared.
"""

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.config import Settings, settings as default_settings
from homekrypto.db.models import Agent, AgentStatus, Role, User
from homekrypto.errors import AuthorizationError, NotFoundError, ValidationError
from homekrypto.events.store import EventStore
from homekrypto.events.types import USER_DELETED, USER_ROLE_CHANGED
from homekrypto.notifications.notifier import EmailNotifier
from homekrypto.notifications.templates import admin_user_deleted_email

logger = structlog.get_logger()


class UserService:
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

    async def _approved_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Agent.id)).where(
                Agent.approved_by == user_id,
                Agent.status == AgentStatus.APPROVED.value,
            )
        )
        return result.scalar() or 0

    async def list_users(self) -> list[dict]:
        """All users, newest first, each with how many agents they approved."""
        approved = (
            select(Agent.approved_by, func.count(Agent.id).label("n"))
            .where(Agent.status == AgentStatus.APPROVED.value)
            .group_by(Agent.approved_by)
            .subquery()
        )
        result = await self.db.execute(
            select(User, func.coalesce(approved.c.n, 0))
            .outerjoin(approved, approved.c.approved_by == User.id)
            .order_by(User.created_at.desc(), User.id.desc())
        )
        rows = []
        for user, count in result.all():
            rows.append(
                {
                    "id": user.id,
                    "email": user.email,
                    "first_name": user.first_name,
                    "last_name": user.last_name,
                    "role": user.role,
                    "is_email_verified": user.is_email_verified,
                    "created_at": user.created_at,
                    "last_login_at": user.last_login_at,
                    "agent_count": count,
                }
            )
        return rows

    async def _get(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def delete_user(self, user_id: int, actor_id: int) -> int:
        """Delete a non-admin user. Returns how many agents they had approved."""
        if user_id == actor_id:
            raise ValidationError("You cannot delete your own account")
        user = await self._get(user_id)
        if user.role == Role.ADMIN.value:
            raise AuthorizationError("Admin accounts cannot be deleted")

        approved = await self._approved_count(user.id)
        await self.db.execute(
            update(Agent)
            .where(Agent.approved_by == user.id)
            .values(approved_by=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(user)
        await self.events.append(
            stream_id=f"user:{user_id}",
            event_type=USER_DELETED,
            data={"deleted_by": actor_id, "role": user.role, "agents_approved": approved},
        )
        await self.db.commit()

        self.notifier.send(admin_user_deleted_email(user, approved, self.config))
        logger.info("user.deleted", user_id=user_id, by=actor_id)
        return approved

    async def change_role(self, user_id: int, role: Role, actor_id: int) -> User:
        """Promote or demote. Takes effect on the user's next request."""
        user = await self._get(user_id)
        if user.id == actor_id and role is not Role.ADMIN:
            raise ValidationError("You cannot remove your own admin role")

        previous = user.role
        if previous != role.value:
            user.role = role.value
            await self.events.append(
                stream_id=f"user:{user.id}",
                event_type=USER_ROLE_CHANGED,
                data={"from": previous, "to": role.value, "changed_by": actor_id},
            )
        await self.db.commit()
        logger.info("user.role_changed", user_id=user.id, role=role.value)
        return user
