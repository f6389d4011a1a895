"""
NapKeeper - Router: Auditoría
Consulta de la bitácora: historial filtrado, estadísticas, tablas auditadas
y línea de tiempo de un registro. Solo lectura.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import List, Optional

from app.config import get_settings
from app.dependencies import get_db, require_role
from app.models.audit import AuditAction, AuditRecord
from app.models.user import User, UserRole
from app.schemas.audit import (
    AuditRecordResponse, AuditHistoryItem, FieldChange, AuditStatsResponse, TrackedTableResponse,
)
from app.schemas.common import PaginatedResponse, page_count
from app.services.audit import AuditFilters, audit_ledger, interceptor

settings = get_settings()

router = APIRouter(prefix="/audit", tags=["Auditoría"])

auditors = require_role(UserRole.ADMIN, UserRole.SUPERVISOR)


def _record(record: AuditRecord, actor_name: Optional[str], actor_email: Optional[str]) -> dict:
    return {
        "id": record.id,
        "table_name": record.table_name,
        "record_id": record.record_id,
        "action": record.action,
        "before_data": record.before_data,
        "after_data": record.after_data,
        "actor_id": record.actor_id,
        "actor_name": actor_name,
        "actor_email": actor_email,
        "created_at": record.created_at,
    }


def _filters(
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    actor_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> AuditFilters:
    return AuditFilters(
        table_name=table_name,
        record_id=record_id,
        action=action,
        actor_id=actor_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/", response_model=PaginatedResponse[AuditRecordResponse])
async def list_audit_records(
    filters: AuditFilters = Depends(_filters),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.AUDIT_DEFAULT_PAGE_SIZE, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(auditors)
):
    rows, total = await audit_ledger.query(db, filters, page, per_page)
    return PaginatedResponse[AuditRecordResponse](
        items=[AuditRecordResponse(**_record(*row)) for row in rows],
        total=total,
        page=page,
        per_page=per_page,
        pages=page_count(total, per_page),
    )


@router.get("/stats", response_model=AuditStatsResponse)
async def audit_stats(
    filters: AuditFilters = Depends(_filters),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(auditors)
):
    return await audit_ledger.stats(db, filters)


@router.get("/tables", response_model=List[TrackedTableResponse])
async def tracked_tables(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(auditors)
):
    """Todas las tablas auditadas, incluso las que aún no tienen cambios."""
    return await audit_ledger.list_tracked_tables(db, interceptor.tracked_tables())


@router.get("/history/{table_name}/{record_id}", response_model=List[AuditHistoryItem])
async def record_history(
    table_name: str,
    record_id: str,
    limit: int = Query(settings.AUDIT_HISTORY_LIMIT, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(auditors)
):
    """Línea de tiempo de un registro con el detalle campo por campo."""
    rows = await audit_ledger.record_history(db, table_name, record_id, limit)
    return [
        AuditHistoryItem(
            **_record(record, name, email),
            changes=[FieldChange(**c) for c in record.changes],
        )
        for record, name, email in rows
    ]
