"""Admin user API — list, delete and re-role accounts."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.dependencies import CurrentUser, require_admin
from homekrypto.db.engine import get_db
from homekrypto.db.models import Role
from homekrypto.notifications.notifier import EmailNotifier, get_notifier
from homekrypto.schemas.user import AdminUserRead, RoleUpdate, UserDeleted
from homekrypto.services.user_service import UserService

router = APIRouter(prefix="/admin/users")


def _svc(
    db: AsyncSession = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> UserService:
    return UserService(db, notifier)


@router.get("", response_model=list[AdminUserRead])
async def list_users(svc: UserService = Depends(_svc)):
    return await svc.list_users()


@router.delete("/{user_id}", response_model=UserDeleted)
async def delete_user(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    svc: UserService = Depends(_svc),
):
    """Admins are never deletable here (403)."""
    approved = await svc.delete_user(user_id, admin.id)
    return {"message": "User deleted successfully", "agent_count": approved}


@router.patch("/{user_id}/role", response_model=AdminUserRead)
async def change_role(
    user_id: int,
    body: RoleUpdate,
    admin: CurrentUser = Depends(require_admin),
    svc: UserService = Depends(_svc),
):
    user = await svc.change_role(user_id, Role(body.role), admin.id)
    return user
