"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Every route of this service is open — it *is* the authentication
boundary. /auth/validate is the endpoint the gateway calls on each
downstream request.
"""

from fastapi import APIRouter

from newtab_auth.api.auth import router as auth_router
from newtab_auth.api.health import router as health_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
