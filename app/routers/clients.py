"""
NapKeeper - Router de Clientes
Los clientes se dan de alta al asignar un puerto. Aquí solo consulta y baja:
la baja finaliza sus conexiones vivas y libera los puertos en la misma transacción.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.database import get_db
from app.dependencies import get_current_user, require_role
from app.models.user import User, UserRole
from app.models.client import Client
from app.schemas.client import ClientResponse, ClientDeleteResponse
from app.services import connection_lifecycle
from app.services.errors import CoreError, ClientNotFound, http_error

router = APIRouter(prefix="/api/v1/clients", tags=["Clients"])


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = await db.execute(select(Client).where(Client.id == client_id))
    client = result.scalar_one_or_none()
    if not client:
        raise http_error(ClientNotFound(client_id))
    return client


@router.delete("/{client_id}", response_model=ClientDeleteResponse)
async def delete_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN, UserRole.SUPERVISOR)),
):
    """Elimina el cliente finalizando antes todas sus conexiones vivas."""
    try:
        finalized = await connection_lifecycle.delete_client(db, client_id, current_user.id)
    except CoreError as e:
        raise http_error(e)
    return ClientDeleteResponse(
        message=f"Cliente {client_id} eliminado",
        finalized_connections=finalized,
    )
