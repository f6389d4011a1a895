"""
NapKeeper - Ciclo de vida de conexiones
Asignar / transicionar / liberar puertos y dar de baja clientes.

Cada operación pública es UNA unidad de trabajo:
  - Bloquea las filas disputadas (puerto → conexión → cliente → NAP, en ese orden).
  - Todas las mutaciones pasan por el interceptor y quedan auditadas con el actor.
  - Refresca el estado derivado del NAP antes del commit.
  - Cualquier error revierte todo (puerto, cliente, conexión y auditoría).
"""
import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.client import Client
from app.models.connection import Connection, ConnectionStatus, LIVE_STATUSES
from app.models.network import NapPort, PortStatus
from app.models.plan import ServicePlan
from app.services.capacity_monitor import refresh_nap_state
from app.services.errors import (
    CoreError, PortNotFound, PlanNotFound, ConnectionNotFound, ClientNotFound,
    PortUnavailable, AlreadyFinalized, DuplicateKey, ValidationFailed,
)
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger("connection_lifecycle")

CLIENT_CONTACT_FIELDS = ("first_name", "last_name", "phone", "email", "address")


def conflict_from_integrity(e: IntegrityError) -> CoreError:
    """Traduce una violación de unicidad al error de negocio correspondiente."""
    msg = str(e.orig).lower()
    if "uq_connections_live_port" in msg or "connections.port_id" in msg:
        return PortUnavailable("El puerto ya tiene una conexión viva")
    if "document_number" in msg:
        return DuplicateKey("Ya existe un cliente con ese número de documento")
    if "code" in msg and "naps" in msg:
        return DuplicateKey("Ya existe un NAP con ese código")
    return DuplicateKey(f"Registro duplicado: {e.orig}")


async def live_connection(db: AsyncSession, port_id: int) -> Optional[Connection]:
    result = await db.execute(
        select(Connection)
        .where(Connection.port_id == port_id, Connection.status.in_(LIVE_STATUSES))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _upsert_client(uow: UnitOfWork, client_data: Dict[str, Any]) -> Client:
    """Busca al cliente por documento: si existe actualiza contacto, si no lo crea."""
    document = client_data["document_number"]
    result = await uow.db.execute(
        select(Client)
        .where(Client.document_number == document)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    client = result.scalar_one_or_none()
    contact = {k: client_data[k] for k in CLIENT_CONTACT_FIELDS if k in client_data}

    if client:
        # first_name es obligatorio: no se borra con un valor vacío
        if not contact.get("first_name", client.first_name):
            contact.pop("first_name", None)
        await uow.update(client, **contact)
        return client

    if not contact.get("first_name"):
        raise ValidationFailed("El nombre del cliente es obligatorio para darlo de alta")
    return await uow.add(Client(document_number=document, **contact))


async def _apply_transition(
    uow: UnitOfWork, connection: Connection, port: NapPort, changes: Dict[str, Any]
) -> None:
    """Conexión primero, luego el puerto; cada fila deja su propio registro de auditoría."""
    new_status = changes["status"]
    await uow.update(connection, **changes)

    port_status = PortStatus.FREE if new_status == ConnectionStatus.FINALIZED else PortStatus.OCCUPIED
    if await uow.update(port, status=port_status):
        await refresh_nap_state(uow, port.nap_id)


def _finalize_changes(connection: Connection, end_date: Optional[date] = None) -> Dict[str, Any]:
    return {
        "status": ConnectionStatus.FINALIZED,
        "end_date": end_date or connection.end_date or date.today(),
    }


# ================================================================
# LECTURA
# ================================================================

async def load_connection(db: AsyncSession, connection_id: int) -> Connection:
    """Conexión con puerto (y su NAP), cliente y plan cargados, lista para serializar."""
    result = await db.execute(
        select(Connection)
        .options(
            selectinload(Connection.port).selectinload(NapPort.nap),
            selectinload(Connection.client),
            selectinload(Connection.service_plan),
        )
        .where(Connection.id == connection_id)
        .execution_options(populate_existing=True)
    )
    connection = result.scalar_one_or_none()
    if not connection:
        raise ConnectionNotFound(connection_id)
    return connection


# ================================================================
# ASIGNAR PUERTO
# ================================================================

async def allocate(
    db: AsyncSession,
    port_id: int,
    client_data: Dict[str, Any],
    plan_id: int,
    actor_id: Optional[int],
    start_date: Optional[date] = None,
    initial_status: ConnectionStatus = ConnectionStatus.ACTIVE,
) -> Connection:
    """
    Asigna un puerto FREE a un cliente con un plan.

    Raises:
        PortNotFound, PortUnavailable, PlanNotFound, DuplicateKey, ValidationFailed
    """
    if initial_status not in LIVE_STATUSES:
        raise ValidationFailed("Una conexión nueva solo puede iniciar ACTIVE o SUSPENDED")
    if not client_data.get("document_number"):
        raise ValidationFailed("El número de documento del cliente es obligatorio")

    async with UnitOfWork(db, actor_id) as uow:
        port = await uow.get_for_update(NapPort, port_id)
        if not port:
            raise PortNotFound(port_id)
        if port.status != PortStatus.FREE:
            raise PortUnavailable(f"El puerto {port_id} no está libre ({port.status.value})")
        if await live_connection(uow.db, port_id):
            # Puerto marcado FREE pero con conexión viva: no se asigna encima
            logger.warning(f"Puerto {port_id} FREE con conexión viva; asignación rechazada")
            raise PortUnavailable(f"El puerto {port_id} ya tiene una conexión viva")

        plan = await uow.get(ServicePlan, plan_id)
        if not plan:
            raise PlanNotFound(plan_id)

        try:
            client = await _upsert_client(uow, client_data)
            connection = await uow.add(Connection(
                port_id=port.id,
                client_id=client.id,
                plan_id=plan.id,
                start_date=start_date or date.today(),
                status=initial_status,
                created_by=actor_id,
            ))
        except IntegrityError as e:
            raise conflict_from_integrity(e) from e

        await uow.update(port, status=PortStatus.OCCUPIED)
        await refresh_nap_state(uow, port.nap_id)

    logger.info(
        f"Puerto {port_id} asignado: conexión {connection.id}, cliente {client.document_number}, "
        f"plan {plan_id} (actor {actor_id})"
    )
    return connection


# ================================================================
# TRANSICIONES DE ESTADO
# ================================================================

async def transition(
    db: AsyncSession,
    connection_id: int,
    new_status: ConnectionStatus,
    actor_id: Optional[int],
    plan_id: Optional[int] = None,
    end_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Connection:
    """
    ACTIVE / SUSPENDED: el puerto queda OCCUPIED.
    FINALIZED: se estampa la fecha de fin y el puerto queda FREE.
    Misma transición que el estado actual: solo se guardan los demás cambios.

    Raises:
        ConnectionNotFound, AlreadyFinalized, PlanNotFound
    """
    async with UnitOfWork(db, actor_id) as uow:
        connection = await uow.get(Connection, connection_id)
        if not connection:
            raise ConnectionNotFound(connection_id)

        port = await uow.get_for_update(NapPort, connection.port_id)
        connection = await uow.get_for_update(Connection, connection_id)
        if connection.status == ConnectionStatus.FINALIZED:
            raise AlreadyFinalized(connection_id)

        if plan_id is not None and plan_id != connection.plan_id:
            if not await uow.get(ServicePlan, plan_id):
                raise PlanNotFound(plan_id)

        if new_status == ConnectionStatus.FINALIZED:
            changes = _finalize_changes(connection, end_date)
        else:
            changes = {"status": new_status}
            if end_date is not None:
                changes["end_date"] = end_date
        if plan_id is not None:
            changes["plan_id"] = plan_id
        if notes is not None:
            changes["notes"] = notes

        previous = connection.status
        await _apply_transition(uow, connection, port, changes)

    logger.info(
        f"Conexión {connection_id}: {previous.value} → {connection.status.value} (actor {actor_id})"
    )
    return connection


async def finalize(db: AsyncSession, connection_id: int, actor_id: Optional[int]) -> Connection:
    return await transition(db, connection_id, ConnectionStatus.FINALIZED, actor_id)


# ================================================================
# LIBERAR PUERTO
# ================================================================

async def release(db: AsyncSession, port_id: int, actor_id: Optional[int]) -> NapPort:
    """
    Deja el puerto FREE. Si tenía conexión viva, la finaliza.
    Liberar un puerto ya FREE no hace nada (ni escribe auditoría).
    """
    async with UnitOfWork(db, actor_id) as uow:
        port = await uow.get_for_update(NapPort, port_id)
        if not port:
            raise PortNotFound(port_id)

        live = await live_connection(uow.db, port_id)
        if live:
            await _apply_transition(uow, live, port, _finalize_changes(live))
            logger.info(f"Puerto {port_id} liberado, conexión {live.id} finalizada (actor {actor_id})")
        elif await uow.update(port, status=PortStatus.FREE):
            await refresh_nap_state(uow, port.nap_id)
            logger.info(f"Puerto {port_id} marcado FREE sin conexión viva (actor {actor_id})")

    return port


# ================================================================
# BAJA DE CLIENTE
# ================================================================

async def delete_client(db: AsyncSession, client_id: int, actor_id: Optional[int]) -> int:
    """
    Finaliza las conexiones vivas del cliente (liberando sus puertos),
    desvincula su historial y elimina el registro.

    Returns:
        Cantidad de conexiones finalizadas.
    """
    async with UnitOfWork(db, actor_id) as uow:
        if not await uow.get(Client, client_id):
            raise ClientNotFound(client_id)

        client_connections = (
            select(Connection).where(Connection.client_id == client_id).order_by(Connection.id)
        )
        candidates = (await uow.db.execute(
            client_connections.execution_options(populate_existing=True)
        )).scalars().all()

        # Puertos primero (mismo orden de bloqueo que allocate)
        ports = {}
        for port_id in sorted({c.port_id for c in candidates if c.is_live}):
            ports[port_id] = await uow.get_for_update(NapPort, port_id)

        # Con los puertos tomados se relee el estado: la conexión pudo finalizarse
        # y su puerto reasignarse a otro cliente entre la primera lectura y el lock.
        connections = (await uow.db.execute(
            client_connections.with_for_update().execution_options(populate_existing=True)
        )).scalars().all()
        client = await uow.get_for_update(Client, client_id)

        finalized = 0
        for connection in connections:
            if not connection.is_live:
                continue
            port = ports.get(connection.port_id)
            if port is None:
                port = await uow.get_for_update(NapPort, connection.port_id)
            await _apply_transition(uow, connection, port, _finalize_changes(connection))
            finalized += 1

        for connection in connections:
            await uow.update(connection, client_id=None)

        document = client.document_number
        await uow.delete(client)

    logger.info(
        f"Cliente {document} eliminado: {finalized} conexiones finalizadas (actor {actor_id})"
    )
    return finalized
