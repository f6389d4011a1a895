"""
NapKeeper - Router: Puertos NAP
Consulta de puertos, cambios manuales del operador y liberación.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from app.dependencies import get_db, get_current_user
from app.models.client import Client
from app.models.connection import Connection, LIVE_STATUSES
from app.models.network import Nap, NapPort, NapStatus, PortStatus
from app.models.user import User
from app.schemas.network import (
    NapPortUpdate, NapPortResponse, NapPortDetailResponse, NapPortsResponse, NapOccupancyResponse,
)
from app.services import capacity_monitor, connection_lifecycle, network_service
from app.services.errors import CoreError, NapNotFound, PortNotFound, http_error

router = APIRouter(prefix="/ports", tags=["Puertos"])


async def _port_detail(db: AsyncSession, port_id: int) -> NapPortDetailResponse:
    result = await db.execute(
        select(NapPort, Nap.code)
        .join(Nap, NapPort.nap_id == Nap.id)
        .where(NapPort.id == port_id)
        .execution_options(populate_existing=True)
    )
    row = result.first()
    if not row:
        raise http_error(PortNotFound(port_id))
    port, nap_code = row

    live = await db.execute(
        select(Connection.id, Client.first_name, Client.last_name)
        .join(Client, Connection.client_id == Client.id, isouter=True)
        .where(Connection.port_id == port_id, Connection.status.in_(LIVE_STATUSES))
    )
    conn_row = live.first()

    return NapPortDetailResponse(
        id=port.id,
        nap_id=port.nap_id,
        port_number=port.port_number,
        status=port.status,
        note=port.note,
        nap_code=nap_code,
        connection_id=conn_row[0] if conn_row else None,
        client_name=f"{conn_row[1] or ''} {conn_row[2] or ''}".strip() if conn_row else None,
    )


@router.get("/nap/{nap_id}", response_model=NapPortsResponse)
async def list_nap_ports(
    nap_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Puertos de un NAP con sus totales de ocupación."""
    occupancy = await capacity_monitor.nap_occupancy(db, [nap_id])
    if not occupancy:
        raise http_error(NapNotFound(nap_id))

    result = await db.execute(
        select(NapPort).where(NapPort.nap_id == nap_id).order_by(NapPort.port_number)
    )
    return NapPortsResponse(
        nap=NapOccupancyResponse.model_validate(occupancy[0]),
        ports=[NapPortResponse.model_validate(p) for p in result.scalars().all()],
    )


@router.get("/free", response_model=List[NapPortResponse])
async def list_free_ports(
    nap_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Puertos disponibles para asignar (excluye NAPs en mantenimiento)."""
    q = (
        select(NapPort)
        .join(Nap, NapPort.nap_id == Nap.id)
        .where(NapPort.status == PortStatus.FREE, Nap.status != NapStatus.MAINTENANCE)
    )
    if nap_id:
        q = q.where(NapPort.nap_id == nap_id)
    result = await db.execute(q.order_by(NapPort.nap_id, NapPort.port_number).limit(limit))
    return result.scalars().all()


@router.get("/{port_id}", response_model=NapPortDetailResponse)
async def get_port(
    port_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    return await _port_detail(db, port_id)


@router.patch("/{port_id}", response_model=NapPortDetailResponse)
async def update_port(
    port_id: int,
    data: NapPortUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Mantenimiento / nota del puerto. OCCUPIED solo se alcanza asignando una conexión."""
    try:
        await network_service.update_port(db, port_id, user.id, status=data.status, note=data.note)
    except CoreError as e:
        raise http_error(e)
    return await _port_detail(db, port_id)


@router.post("/{port_id}/release", response_model=NapPortDetailResponse)
async def release_port(
    port_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Libera el puerto finalizando su conexión viva. Sobre un puerto FREE no hace nada."""
    try:
        await connection_lifecycle.release(db, port_id, user.id)
    except CoreError as e:
        raise http_error(e)
    return await _port_detail(db, port_id)
