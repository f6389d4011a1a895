"""
NapKeeper - Router: Conexiones
Asignar un puerto NAP a un cliente, cambiar de estado y finalizar.
Cada escritura es una unidad de trabajo auditada con el usuario actual como actor.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from typing import List, Optional
import logging

from app.dependencies import get_db, get_current_user
from app.models.connection import Connection, ConnectionStatus
from app.models.network import NapPort
from app.models.user import User
from app.schemas.common import PaginatedResponse, page_count
from app.schemas.connection import (
    ConnectionCreate, ConnectionTransition, ConnectionDetailResponse,
)
from app.services import connection_lifecycle
from app.services.errors import CoreError, http_error

logger = logging.getLogger("connections_router")

router = APIRouter(prefix="/connections", tags=["Conexiones"])


# ========== HELPERS ==========

def _with_relations(q):
    return q.options(
        selectinload(Connection.port).selectinload(NapPort.nap),
        selectinload(Connection.client),
        selectinload(Connection.service_plan),
    )


def to_detail(conn: Connection) -> ConnectionDetailResponse:
    port, client, plan = conn.port, conn.client, conn.service_plan
    return ConnectionDetailResponse(
        id=conn.id,
        port_id=conn.port_id,
        client_id=conn.client_id,
        plan_id=conn.plan_id,
        start_date=conn.start_date,
        end_date=conn.end_date,
        status=conn.status,
        notes=conn.notes,
        created_by=conn.created_by,
        created_at=conn.created_at,
        updated_at=conn.updated_at,
        nap_id=port.nap_id if port else None,
        nap_code=port.nap.code if port and port.nap else "",
        port_number=port.port_number if port else None,
        client_name=client.full_name if client else "",
        client_document=client.document_number if client else "",
        plan_name=plan.name if plan else "",
        bandwidth_mbps=plan.bandwidth_mbps if plan else None,
    )


# ========== LISTAR ==========

@router.get("/", response_model=PaginatedResponse[ConnectionDetailResponse])
async def list_connections(
    status: Optional[ConnectionStatus] = None,
    client_id: Optional[int] = None,
    nap_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    q = select(Connection)
    count_q = select(func.count(Connection.id))
    if nap_id:
        q = q.join(NapPort, Connection.port_id == NapPort.id).where(NapPort.nap_id == nap_id)
        count_q = count_q.join(NapPort, Connection.port_id == NapPort.id).where(NapPort.nap_id == nap_id)
    if status:
        q = q.where(Connection.status == status)
        count_q = count_q.where(Connection.status == status)
    if client_id:
        q = q.where(Connection.client_id == client_id)
        count_q = count_q.where(Connection.client_id == client_id)

    total = await db.scalar(count_q) or 0
    q = _with_relations(q).order_by(Connection.id.desc()).offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(q)

    return PaginatedResponse[ConnectionDetailResponse](
        items=[to_detail(c) for c in result.scalars().all()],
        total=total,
        page=page,
        per_page=per_page,
        pages=page_count(total, per_page),
    )


@router.get("/client/{client_id}", response_model=List[ConnectionDetailResponse])
async def list_client_connections(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Historial de conexiones de un cliente (vivas y finalizadas)."""
    result = await db.execute(
        _with_relations(select(Connection))
        .where(Connection.client_id == client_id)
        .order_by(Connection.start_date.desc(), Connection.id.desc())
    )
    return [to_detail(c) for c in result.scalars().all()]


@router.get("/{connection_id}", response_model=ConnectionDetailResponse)
async def get_connection(
    connection_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    try:
        conn = await connection_lifecycle.load_connection(db, connection_id)
    except CoreError as e:
        raise http_error(e)
    return to_detail(conn)


# ========== ASIGNAR ==========

@router.post("/", response_model=ConnectionDetailResponse, status_code=201)
async def allocate_port(
    data: ConnectionCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """
    Asigna un puerto FREE a un cliente (alta o actualización por documento) con un plan.
    El puerto queda OCCUPIED y el NAP se marca SATURATED si se llenó.
    """
    try:
        conn = await connection_lifecycle.allocate(
            db,
            port_id=data.port_id,
            client_data=data.client.model_dump(exclude_unset=True),
            plan_id=data.plan_id,
            actor_id=user.id,
            start_date=data.start_date,
            initial_status=data.status,
        )
        conn = await connection_lifecycle.load_connection(db, conn.id)
    except CoreError as e:
        logger.info(f"Asignación del puerto {data.port_id} rechazada: {e.message}")
        raise http_error(e)
    return to_detail(conn)


# ========== TRANSICIONES ==========

@router.patch("/{connection_id}", response_model=ConnectionDetailResponse)
async def transition_connection(
    connection_id: int,
    data: ConnectionTransition,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """ACTIVE ↔ SUSPENDED, o FINALIZED (libera el puerto). FINALIZED es terminal."""
    try:
        await connection_lifecycle.transition(
            db, connection_id, data.status, user.id,
            plan_id=data.plan_id, end_date=data.end_date, notes=data.notes,
        )
        conn = await connection_lifecycle.load_connection(db, connection_id)
    except CoreError as e:
        raise http_error(e)
    return to_detail(conn)


@router.post("/{connection_id}/finalize", response_model=ConnectionDetailResponse)
async def finalize_connection(
    connection_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user)
):
    try:
        await connection_lifecycle.finalize(db, connection_id, user.id)
        conn = await connection_lifecycle.load_connection(db, connection_id)
    except CoreError as e:
        raise http_error(e)
    return to_detail(conn)
