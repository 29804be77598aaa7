"""API route aggregation.

All routers registered here get mounted in main.py under /api.

Learn: Admin routers get require_admin at the include_router level
using FastAPI's dependencies parameter, so no admin route can be added
without the role check. Health, auth, the public agent directory and
properties are mounted open; their individual routes declare
get_current_user / require_admin where they need it.
"""

from fastapi import APIRouter, Depends

from homekrypto.api.admin_agents import router as admin_agents_router
from homekrypto.api.admin_users import router as admin_users_router
from homekrypto.api.agents import router as agents_router
from homekrypto.api.auth import router as auth_router
from homekrypto.api.health import router as health_router
from homekrypto.api.properties import router as properties_router
from homekrypto.auth.dependencies import require_admin

_admin = [Depends(require_admin)]

api_router = APIRouter(prefix="/api")

# Open routes (per-route auth where needed)
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(agents_router, tags=["agents"])
api_router.include_router(properties_router, tags=["properties"])

# Admin-only routes
api_router.include_router(admin_agents_router, tags=["admin"], dependencies=_admin)
api_router.include_router(admin_users_router, tags=["admin"], dependencies=_admin)
