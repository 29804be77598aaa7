"""Property API — public listings, admin management, share purchases.

Learn: one router, three access levels. Listing reads are open,
share endpoints need a session, and listing writes need an admin; each
route declares the dependency it needs instead of the whole router
carrying one.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.dependencies import CurrentUser, get_current_user, require_admin
from homekrypto.db.engine import get_db
from homekrypto.schemas.auth import MessageResponse
from homekrypto.schemas.property import (
    AgentOption,
    PropertyCreate,
    PropertyRead,
    PropertyUpdate,
    PropertyWithAgent,
    PurchaseResult,
    SharePurchase,
    ShareRead,
)
from homekrypto.services.property_service import PropertyService

router = APIRouter(prefix="/properties")


def _svc(db: AsyncSession = Depends(get_db)) -> PropertyService:
    return PropertyService(db)


# ─── Admin helpers (declared before /{property_id}) ─────

@router.get(
    "/agents/approved",
    response_model=list[AgentOption],
    dependencies=[Depends(require_admin)],
)
async def approved_agents(svc: PropertyService = Depends(_svc)):
    return await svc.approved_agents()


# ─── Shares ─────────────────────────────────────────────

@router.get("/shares/mine", response_model=list[ShareRead])
async def my_shares(
    user: CurrentUser = Depends(get_current_user),
    svc: PropertyService = Depends(_svc),
):
    return await svc.shares_for(user.id)


@router.post("/shares/purchase", response_model=PurchaseResult, status_code=201)
async def purchase_shares(
    body: SharePurchase,
    user: CurrentUser = Depends(get_current_user),
    svc: PropertyService = Depends(_svc),
):
    holding = await svc.purchase(
        user.id, body.property_id, body.shares_count, body.wallet_address
    )
    return {
        "message": "Shares purchased successfully",
        "shares": holding,
        "total_shares": holding.shares_owned,
    }


# ─── Listings ───────────────────────────────────────────

@router.get("", response_model=list[PropertyWithAgent])
async def list_properties(svc: PropertyService = Depends(_svc)):
    return await svc.list_active()


@router.get("/{property_id}", response_model=PropertyWithAgent)
async def get_property(property_id: str, svc: PropertyService = Depends(_svc)):
    return await svc.get_active(property_id)


@router.post("", response_model=PropertyRead, status_code=201)
async def create_property(
    body: PropertyCreate,
    admin: CurrentUser = Depends(require_admin),
    svc: PropertyService = Depends(_svc),
):
    return await svc.create(admin.id, **body.model_dump())


@router.put("/{property_id}", response_model=PropertyRead)
async def update_property(
    property_id: str,
    body: PropertyUpdate,
    admin: CurrentUser = Depends(require_admin),
    svc: PropertyService = Depends(_svc),
):
    """Partial update: only fields present in the body change."""
    return await svc.update(
        property_id, admin.id, **body.model_dump(exclude_unset=True)
    )


@router.delete("/{property_id}", response_model=MessageResponse)
async def delete_property(
    property_id: str,
    admin: CurrentUser = Depends(require_admin),
    svc: PropertyService = Depends(_svc),
):
    """Soft delete. Existing share holdings keep referencing the row."""
    await svc.deactivate(property_id, admin.id)
    return {"message": "Property deactivated successfully"}
