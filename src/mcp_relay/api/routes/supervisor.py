"""
Routes API pour le superviseur (lecture seule).
"""
from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


@router.get("")
async def get_supervisor_status(request: Request):
    """Retourne l'état de la machine à états et le dernier statut de sortie."""
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None:
        raise HTTPException(status_code=404, detail="Aucun superviseur actif dans ce processus")

    snapshot = supervisor.snapshot()
    if supervisor.sink is not None:
        snapshot["output_tail"] = supervisor.sink.tail()
    return snapshot
