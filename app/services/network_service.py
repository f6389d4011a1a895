"""
NapKeeper - Servicio de red (NAPs y puertos)
Alta de NAPs con sus puertos, relleno de puertos faltantes y cambios del operador
sobre puertos y NAPs. Todo auditado a través de la unidad de trabajo.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.network import Nap, NapPort, NapStatus, PortStatus
from app.services.capacity_monitor import derived_status, refresh_nap_state
from app.services.connection_lifecycle import conflict_from_integrity, live_connection
from app.services.errors import (
    NapNotFound, PortNotFound, DuplicateKey, PortStateConflict, ValidationFailed,
)
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger("network_service")

MAX_PORTS = 1000


def _validate_nap_data(data: Dict[str, Any]) -> None:
    total = data.get("total_ports")
    if not isinstance(total, int) or not 1 <= total <= MAX_PORTS:
        raise ValidationFailed(f"total_ports debe estar entre 1 y {MAX_PORTS}")
    lat, lon = data.get("latitude"), data.get("longitude")
    if lat is None or not -90 <= float(lat) <= 90:
        raise ValidationFailed("La latitud debe estar entre -90 y 90")
    if lon is None or not -180 <= float(lon) <= 180:
        raise ValidationFailed("La longitud debe estar entre -180 y 180")


# ================================================================
# NAPs
# ================================================================

async def create_nap(db: AsyncSession, data: Dict[str, Any], actor_id: Optional[int]) -> Nap:
    """Crea el NAP y sus puertos 1..total_ports, todos FREE."""
    _validate_nap_data(data)

    async with UnitOfWork(db, actor_id) as uow:
        existing = await uow.db.scalar(select(Nap.id).where(Nap.code == data["code"]))
        if existing:
            raise DuplicateKey(f"Ya existe un NAP con código '{data['code']}'")

        try:
            nap = await uow.add(Nap(
                code=data["code"],
                model=data["model"],
                firmware=data.get("firmware"),
                location=data["location"],
                total_ports=data["total_ports"],
                latitude=data["latitude"],
                longitude=data["longitude"],
                status=NapStatus.ACTIVE,
            ))
        except IntegrityError as e:
            raise conflict_from_integrity(e) from e

        for number in range(1, nap.total_ports + 1):
            await uow.add(NapPort(nap_id=nap.id, port_number=number, status=PortStatus.FREE))

    logger.info(f"NAP {nap.code} creado con {nap.total_ports} puertos (actor {actor_id})")
    return nap


async def fill_missing_ports(db: AsyncSession, nap_id: int, actor_id: Optional[int]) -> List[NapPort]:
    """Crea los puertos que falten en 1..total_ports (NAPs cargados antes de generar puertos)."""
    async with UnitOfWork(db, actor_id) as uow:
        nap = await uow.get_for_update(Nap, nap_id)
        if not nap:
            raise NapNotFound(nap_id)

        result = await uow.db.execute(select(NapPort.port_number).where(NapPort.nap_id == nap_id))
        existing = set(result.scalars().all())

        created = []
        for number in range(1, nap.total_ports + 1):
            if number not in existing:
                created.append(await uow.add(NapPort(nap_id=nap.id, port_number=number, status=PortStatus.FREE)))

    if created:
        logger.info(f"NAP {nap.code}: {len(created)} puertos faltantes creados (actor {actor_id})")
    return created


async def set_nap_status(db: AsyncSession, nap_id: int, status: NapStatus, actor_id: Optional[int]) -> Nap:
    """
    El operador solo fija ACTIVE o MAINTENANCE. Al volver a ACTIVE el estado
    se re-deriva de inmediato (puede quedar SATURATED si está lleno).
    """
    if status == NapStatus.SATURATED:
        raise ValidationFailed("SATURATED es un estado derivado, no se asigna manualmente")

    async with UnitOfWork(db, actor_id) as uow:
        nap = await uow.get_for_update(Nap, nap_id)
        if not nap:
            raise NapNotFound(nap_id)

        occupied = await uow.db.scalar(
            select(func.count(NapPort.id)).where(
                NapPort.nap_id == nap_id, NapPort.status == PortStatus.OCCUPIED
            )
        ) or 0
        previous = nap.status
        await uow.update(nap, status=derived_status(status, occupied, nap.total_ports))

    if previous != nap.status:
        logger.info(f"NAP {nap.code}: {previous.value} → {nap.status.value} (actor {actor_id})")
    return nap


# ================================================================
# PUERTOS
# ================================================================

async def update_port(
    db: AsyncSession,
    port_id: int,
    actor_id: Optional[int],
    status: Optional[PortStatus] = None,
    note: Optional[str] = None,
) -> NapPort:
    """
    Cambio manual de un puerto.
      - Con conexión viva solo se puede cambiar la nota.
      - OCCUPIED solo se alcanza asignando una conexión.
    """
    async with UnitOfWork(db, actor_id) as uow:
        port = await uow.get_for_update(NapPort, port_id)
        if not port:
            raise PortNotFound(port_id)

        changes: Dict[str, Any] = {}
        if status is not None and status != port.status:
            if await live_connection(uow.db, port_id):
                raise PortStateConflict(
                    f"El puerto {port_id} tiene una conexión viva; finalícela antes de cambiar su estado"
                )
            if status == PortStatus.OCCUPIED:
                raise PortStateConflict("Un puerto solo se ocupa asignándole una conexión")
            changes["status"] = status
        if note is not None:
            changes["note"] = note

        changed = await uow.update(port, **changes)
        if "status" in changed:
            await refresh_nap_state(uow, port.nap_id)

    return port
