from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from deliverybi.services.dependencies import get_objective_service
from deliverybi.services.objectives import ObjectiveService

router = APIRouter(prefix="/share", tags=["share"])


# -----------------------------------------------------------------------------
# Endpoints públicos (sin autenticación)
# -----------------------------------------------------------------------------

@router.get("/objective/{token}")
def shared_objective(
    token: str,
    email: Optional[str] = Query(None, description="Email del visitante si el enlace está restringido"),
    service: ObjectiveService = Depends(get_objective_service),
):
    """
    Vista de solo lectura de un objetivo compartido.

    Cada consulta válida suma una visita al enlace.
    """
    return service.resolve_shared(token, email=email)
