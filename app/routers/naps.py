"""
NapKeeper - Router: NAPs
Alta de NAPs con sus puertos, ocupación, estado del operador y escaneo de capacidad.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
import logging

from app.dependencies import get_db, get_current_user, require_role
from app.models.network import Nap, NapPort, NapStatus
from app.models.user import User, UserRole
from app.schemas.network import (
    NapCreate, NapStatusUpdate, NapResponse, NapListItem, NapPortResponse, CapacityScanResponse,
)
from app.services import capacity_monitor, network_service
from app.services.errors import CoreError, NapNotFound, http_error

logger = logging.getLogger("naps_router")

router = APIRouter(prefix="/naps", tags=["NAPs"])

supervisors = require_role(UserRole.ADMIN, UserRole.SUPERVISOR)


async def _list_item(db: AsyncSession, nap: Nap) -> NapListItem:
    await db.refresh(nap)
    occ = (await capacity_monitor.nap_occupancy(db, [nap.id]))[0]
    return NapListItem(
        **NapResponse.model_validate(nap).model_dump(),
        occupied=occ.occupied,
        free=occ.free,
        maintenance=occ.maintenance,
        occupancy_pct=occ.occupancy_pct,
    )


@router.get("/", response_model=List[NapListItem])
async def list_naps(
    status: Optional[NapStatus] = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """NAPs con su ocupación actual."""
    q = select(Nap).order_by(Nap.code)
    if status:
        q = q.where(Nap.status == status)
    naps = (await db.execute(q)).scalars().all()

    occupancy = {o.nap_id: o for o in await capacity_monitor.nap_occupancy(db, [n.id for n in naps])}
    items = []
    for nap in naps:
        occ = occupancy[nap.id]
        items.append(NapListItem(
            **NapResponse.model_validate(nap).model_dump(),
            occupied=occ.occupied,
            free=occ.free,
            maintenance=occ.maintenance,
            occupancy_pct=occ.occupancy_pct,
        ))
    return items


@router.post("/capacity-scan", response_model=CapacityScanResponse)
async def capacity_scan(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(supervisors)
):
    """Reconcilia NAPs saturados y reporta alertas de capacidad."""
    try:
        result = await capacity_monitor.scan(db, user.id)
    except CoreError as e:
        raise http_error(e)
    return CapacityScanResponse.model_validate(result)


@router.get("/{nap_id}", response_model=NapListItem)
async def get_nap(
    nap_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    nap = await db.get(Nap, nap_id)
    if not nap:
        raise http_error(NapNotFound(nap_id))
    return await _list_item(db, nap)


@router.post("/", response_model=NapListItem, status_code=201)
async def create_nap(
    data: NapCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(supervisors)
):
    """Crea el NAP y sus puertos 1..total_ports en estado FREE."""
    try:
        nap = await network_service.create_nap(db, data.model_dump(), user.id)
    except CoreError as e:
        raise http_error(e)
    return await _list_item(db, nap)


@router.patch("/{nap_id}/status", response_model=NapListItem)
async def set_nap_status(
    nap_id: int,
    data: NapStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(supervisors)
):
    """ACTIVE o MAINTENANCE. SATURATED lo calcula el sistema."""
    try:
        nap = await network_service.set_nap_status(db, nap_id, data.status, user.id)
    except CoreError as e:
        raise http_error(e)
    return await _list_item(db, nap)


@router.post("/{nap_id}/ports/fill", response_model=List[NapPortResponse])
async def fill_missing_ports(
    nap_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(supervisors)
):
    """Genera los puertos que falten en el rango 1..total_ports."""
    try:
        created = await network_service.fill_missing_ports(db, nap_id, user.id)
    except CoreError as e:
        raise http_error(e)
    if not created:
        return []
    result = await db.execute(
        select(NapPort)
        .where(NapPort.id.in_([p.id for p in created]))
        .order_by(NapPort.port_number)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()
