"""
Routes API pour le health check.
"""
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check: indique quels composants sont attachés et actifs."""
    relay = getattr(request.app.state, "relay", None)
    supervisor = getattr(request.app.state, "supervisor", None)

    return {
        "status": "ok",
        "relay": relay is not None and relay.running,
        "supervisor": supervisor is not None and not supervisor.state.is_terminal,
    }
