"""
NapKeeper - Monitor de capacidad de NAPs
Ocupación por NAP, estado derivado (SATURATED) y escaneo de alertas a demanda.

Política de estado derivado (ansiosa, en cada checkpoint):
  - ACTIVE con 100% de puertos ocupados → SATURATED
  - SATURATED por debajo del 100%       → ACTIVE
  - MAINTENANCE lo fija el operador; el monitor nunca lo toca.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.network import Nap, NapPort, NapStatus, PortStatus
from app.services.errors import NapNotFound
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger("capacity_monitor")


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


SEVERITY_ORDER = {AlertSeverity.CRITICAL: 0, AlertSeverity.WARNING: 1}

NAP_SATURATED = "NAP_SATURATED"
NAP_MAINTENANCE = "NAP_MAINTENANCE"
NAP_NEAR_SATURATION = "NAP_NEAR_SATURATION"


@dataclass
class NapOccupancy:
    nap_id: int
    code: str
    status: NapStatus
    total_ports: int
    occupied: int = 0
    free: int = 0
    maintenance: int = 0

    @property
    def occupancy_pct(self) -> int:
        return occupancy_pct(self.occupied, self.total_ports)

    @property
    def is_full(self) -> bool:
        return self.total_ports > 0 and self.occupied >= self.total_ports


@dataclass
class CapacityAlert:
    type: str
    severity: AlertSeverity
    nap_id: int
    code: str
    message: str
    occupancy_pct: int


@dataclass
class CapacityScanResult:
    scanned: int = 0
    saturated: List[int] = field(default_factory=list)       # NAPs que pasaron a SATURATED
    reactivated: List[int] = field(default_factory=list)     # NAPs que volvieron a ACTIVE
    near_saturation: List[NapOccupancy] = field(default_factory=list)
    alerts: List[CapacityAlert] = field(default_factory=list)


def occupancy_pct(occupied: int, total: int) -> int:
    """Porcentaje entero redondeado hacia arriba en .5; 0 si no hay puertos."""
    if not total:
        return 0
    return int(occupied * 100 / total + 0.5)


def derived_status(current: NapStatus, occupied: int, total: int) -> NapStatus:
    if current == NapStatus.MAINTENANCE:
        return current
    if total > 0 and occupied >= total:
        return NapStatus.SATURATED
    return NapStatus.ACTIVE


# ================================================================
# LECTURA
# ================================================================

async def nap_occupancy(db: AsyncSession, nap_ids: Optional[Iterable[int]] = None) -> List[NapOccupancy]:
    """Conteo de puertos por estado para cada NAP (o solo los pedidos)."""
    nap_q = select(Nap).order_by(Nap.code)
    count_q = (
        select(NapPort.nap_id, NapPort.status, func.count(NapPort.id))
        .group_by(NapPort.nap_id, NapPort.status)
    )
    if nap_ids is not None:
        ids = list(nap_ids)
        nap_q = nap_q.where(Nap.id.in_(ids))
        count_q = count_q.where(NapPort.nap_id.in_(ids))

    naps = (await db.execute(nap_q)).scalars().all()
    counts: Dict[int, Dict[PortStatus, int]] = {}
    for nap_id, status, count in (await db.execute(count_q)).all():
        counts.setdefault(nap_id, {})[status] = count

    result = []
    for nap in naps:
        c = counts.get(nap.id, {})
        result.append(NapOccupancy(
            nap_id=nap.id,
            code=nap.code,
            status=nap.status,
            total_ports=nap.total_ports,
            occupied=c.get(PortStatus.OCCUPIED, 0),
            free=c.get(PortStatus.FREE, 0),
            maintenance=c.get(PortStatus.MAINTENANCE, 0),
        ))
    return result


# ================================================================
# CHECKPOINT (dentro de la unidad de trabajo del llamador)
# ================================================================

async def refresh_nap_state(uow: UnitOfWork, nap_id: int) -> Nap:
    """Recalcula el estado derivado del NAP tras asignar, liberar o finalizar."""
    nap = await uow.get_for_update(Nap, nap_id)
    if not nap:
        raise NapNotFound(nap_id)

    if nap.status == NapStatus.MAINTENANCE:
        return nap

    occupied = await uow.db.scalar(
        select(func.count(NapPort.id)).where(
            NapPort.nap_id == nap_id,
            NapPort.status == PortStatus.OCCUPIED,
        )
    ) or 0

    target = derived_status(nap.status, occupied, nap.total_ports)
    if await uow.update(nap, status=target):
        logger.info(
            f"NAP {nap.code}: {target.value} "
            f"({occupied}/{nap.total_ports}, {occupancy_pct(occupied, nap.total_ports)}%)"
        )
    return nap


# ================================================================
# ESCANEO A DEMANDA
# ================================================================

async def scan(db: AsyncSession, actor_id: Optional[int]) -> CapacityScanResult:
    """
    Recorre todos los NAPs: reconcilia el estado derivado y arma las alertas.
    Los NAPs cerca de saturación solo se reportan, no cambian de estado.
    """
    settings = get_settings()
    result = CapacityScanResult()

    async with UnitOfWork(db, actor_id) as uow:
        # Primero el lock de los NAPs, después el conteo sobre esos mismos NAPs
        naps = (await db.execute(
            select(Nap).order_by(Nap.code).with_for_update().execution_options(populate_existing=True)
        )).scalars().all()
        occupancy = {o.nap_id: o for o in await nap_occupancy(db, [n.id for n in naps])}

        for nap in naps:
            occ = occupancy[nap.id]
            pct = occ.occupancy_pct
            result.scanned += 1

            target = derived_status(nap.status, occ.occupied, nap.total_ports)
            previous = nap.status
            if await uow.update(nap, status=target):
                if target == NapStatus.SATURATED:
                    result.saturated.append(nap.id)
                elif previous == NapStatus.SATURATED:
                    result.reactivated.append(nap.id)
            occ.status = nap.status

            if nap.status == NapStatus.SATURATED:
                result.alerts.append(CapacityAlert(
                    type=NAP_SATURATED,
                    severity=AlertSeverity.CRITICAL,
                    nap_id=nap.id,
                    code=nap.code,
                    message=f"NAP {nap.code} saturado: {occ.occupied}/{nap.total_ports} puertos ocupados",
                    occupancy_pct=pct,
                ))
            elif nap.status == NapStatus.MAINTENANCE:
                result.alerts.append(CapacityAlert(
                    type=NAP_MAINTENANCE,
                    severity=AlertSeverity.WARNING,
                    nap_id=nap.id,
                    code=nap.code,
                    message=f"NAP {nap.code} en mantenimiento",
                    occupancy_pct=pct,
                ))
            elif settings.NEAR_SATURATION_PCT <= pct and not occ.is_full:
                result.near_saturation.append(occ)
                result.alerts.append(CapacityAlert(
                    type=NAP_NEAR_SATURATION,
                    severity=AlertSeverity.WARNING,
                    nap_id=nap.id,
                    code=nap.code,
                    message=f"NAP {nap.code} al {pct}% de capacidad",
                    occupancy_pct=pct,
                ))

    result.alerts.sort(key=lambda a: (SEVERITY_ORDER[a.severity], -a.occupancy_pct, a.code))
    logger.info(
        f"Escaneo de capacidad: {result.scanned} NAPs, {len(result.saturated)} saturados, "
        f"{len(result.reactivated)} reactivados, {len(result.near_saturation)} cerca de saturación"
    )
    return result
