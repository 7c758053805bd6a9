"""
Router principal de l'API.
"""
from fastapi import APIRouter

from .routes import health, relay, supervisor

# Router principal
api_router = APIRouter()

# Inclusion des sous-routers
api_router.include_router(health.router, prefix="", tags=["health"])
api_router.include_router(relay.router, prefix="/api/relay", tags=["relay"])
api_router.include_router(supervisor.router, prefix="/api/supervisor", tags=["supervisor"])
