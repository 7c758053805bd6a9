"""
Routes API pour le relay TCP (lecture seule).
"""
from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


def _get_relay(request: Request):
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(status_code=404, detail="Aucun relay actif dans ce processus")
    return relay


@router.get("")
async def get_relay_status(request: Request):
    """Retourne les compteurs et l'adresse du relay."""
    return _get_relay(request).snapshot()


@router.get("/sessions")
async def list_relay_sessions(request: Request):
    """Liste les sessions ouvertes."""
    sessions = _get_relay(request).list_sessions()
    return {"sessions": sessions, "total": len(sessions)}
