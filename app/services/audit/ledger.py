"""
NapKeeper - Bitácora de auditoría (AuditLedger)
Registro append-only de quién cambió qué y cuándo, más las consultas de solo lectura
que usa la pantalla de auditoría.

Reglas:
  - Sin actor no se registra nada (operaciones del sistema no se auditan).
  - El registro se escribe dentro de la MISMA transacción del cambio, en un SAVEPOINT:
    si falla, se revierte solo el savepoint, se loguea y la operación de negocio sigue.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditRecord, AuditAction
from app.models.user import User

logger = logging.getLogger("audit_ledger")


def normalize_value(value: Any) -> Any:
    """Reduce un valor de columna a un tipo primitivo serializable en JSON."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def normalize_snapshot(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not data:
        return None
    return {field: normalize_value(value) for field, value in data.items()}


@dataclass
class AuditFilters:
    """Filtros de la pantalla de auditoría (todos opcionales)."""
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    action: Optional[AuditAction] = None
    actor_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def conditions(self) -> list:
        conds = []
        if self.table_name:
            conds.append(AuditRecord.table_name == self.table_name)
        if self.record_id:
            conds.append(AuditRecord.record_id == str(self.record_id))
        if self.action:
            conds.append(AuditRecord.action == self.action)
        if self.actor_id:
            conds.append(AuditRecord.actor_id == self.actor_id)
        if self.date_from:
            conds.append(AuditRecord.created_at >= self.date_from)
        if self.date_to:
            conds.append(AuditRecord.created_at <= self.date_to)
        return conds


class AuditLedger:

    # ================================================================
    # ESCRITURA
    # ================================================================

    async def record(
        self,
        db: AsyncSession,
        table_name: str,
        record_id: Any,
        action: AuditAction,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_id: Optional[int],
    ) -> Optional[AuditRecord]:
        """
        Agrega un registro inmutable a la bitácora.

        Returns:
            El AuditRecord creado, o None si no hubo actor o si la escritura falló.
        """
        if actor_id is None:
            return None

        try:
            async with db.begin_nested():
                entry = AuditRecord(
                    table_name=table_name,
                    record_id=str(record_id),
                    action=action,
                    before_data=normalize_snapshot(before),
                    after_data=normalize_snapshot(after),
                    actor_id=actor_id,
                )
                db.add(entry)
            return entry
        except Exception as e:
            # La bitácora es best-effort: nunca bloquea la operación de negocio
            logger.exception(
                f"No se pudo registrar auditoría {action.value} en {table_name}:{record_id} "
                f"(actor {actor_id}): {e}"
            )
            return None

    # ================================================================
    # CONSULTAS
    # ================================================================

    async def query(
        self,
        db: AsyncSession,
        filters: Optional[AuditFilters] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Tuple[AuditRecord, Optional[str], Optional[str]]], int]:
        """Historial paginado, más reciente primero. Cada fila: (registro, nombre actor, email actor)."""
        conditions = (filters or AuditFilters()).conditions()

        count_q = select(func.count(AuditRecord.id))
        q = (
            select(AuditRecord, User.full_name, User.email)
            .join(User, AuditRecord.actor_id == User.id, isouter=True)
        )
        for cond in conditions:
            count_q = count_q.where(cond)
            q = q.where(cond)

        total = await db.scalar(count_q) or 0
        q = (
            q.order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(q)
        return [tuple(row) for row in result.all()], total

    async def stats(self, db: AsyncSession, filters: Optional[AuditFilters] = None) -> Dict[str, Any]:
        """Totales por acción, por tabla y por actor."""
        conditions = (filters or AuditFilters()).conditions()

        def _filtered(q):
            for cond in conditions:
                q = q.where(cond)
            return q

        total = await db.scalar(_filtered(select(func.count(AuditRecord.id)))) or 0

        r = await db.execute(
            _filtered(select(AuditRecord.action, func.count(AuditRecord.id))).group_by(AuditRecord.action)
        )
        by_action = {action.value: count for action, count in r.all()}

        r = await db.execute(
            _filtered(select(AuditRecord.table_name, func.count(AuditRecord.id))).group_by(AuditRecord.table_name)
        )
        by_table = dict(r.all())

        r = await db.execute(
            _filtered(
                select(AuditRecord.actor_id, User.full_name, User.email, func.count(AuditRecord.id))
                .join(User, AuditRecord.actor_id == User.id, isouter=True)
            ).group_by(AuditRecord.actor_id, User.full_name, User.email)
        )
        by_actor = [
            {"actor_id": actor_id, "full_name": name, "email": email, "count": count}
            for actor_id, name, email, count in r.all()
        ]

        return {
            "total_changes": total,
            "by_action": by_action,
            "by_table": by_table,
            "by_actor": by_actor,
        }

    async def list_tracked_tables(self, db: AsyncSession, registered: Iterable[str] = ()) -> List[Dict[str, Any]]:
        """
        Tablas auditadas con su total de cambios y fecha del último.
        Las tablas registradas sin cambios aparecen con total 0.
        """
        r = await db.execute(
            select(AuditRecord.table_name, func.count(AuditRecord.id), func.max(AuditRecord.created_at))
            .group_by(AuditRecord.table_name)
        )
        seen = {name: (count, last) for name, count, last in r.all()}

        names = sorted(set(registered) | set(seen))
        return [
            {
                "table_name": name,
                "total_changes": seen.get(name, (0, None))[0],
                "last_change": seen.get(name, (0, None))[1],
            }
            for name in names
        ]

    async def record_history(
        self, db: AsyncSession, table_name: str, record_id: Any, limit: int = 50
    ) -> List[Tuple[AuditRecord, Optional[str], Optional[str]]]:
        """Línea de tiempo de un registro puntual, más reciente primero."""
        result = await db.execute(
            select(AuditRecord, User.full_name, User.email)
            .join(User, AuditRecord.actor_id == User.id, isouter=True)
            .where(AuditRecord.table_name == table_name, AuditRecord.record_id == str(record_id))
            .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .limit(limit)
        )
        return [tuple(row) for row in result.all()]
