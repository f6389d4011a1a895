"""
NapKeeper - Interceptor de mutaciones
Envuelve create / update / delete de las entidades registradas y deja el rastro
en la bitácora con el actor de la unidad de trabajo.

No usa eventos implícitos del ORM: cada mutación pasa explícitamente por aquí,
y el actor llega como parámetro (uow.actor_id), nunca desde estado global.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import inspect

from app.models.audit import AuditAction
from app.services.audit.ledger import AuditLedger, normalize_value

if TYPE_CHECKING:
    from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger("mutation_interceptor")

# Columnas de mantenimiento que nunca se auditan
DEFAULT_EXCLUDE = frozenset({"created_at", "updated_at"})


@dataclass(frozen=True)
class TrackedEntity:
    """Una entidad auditada: su modelo, el nombre que aparece en la bitácora y columnas omitidas."""
    model: type
    table_name: str
    exclude: frozenset = field(default=DEFAULT_EXCLUDE)


class MutationInterceptor:

    def __init__(self, ledger: AuditLedger):
        self.ledger = ledger
        self._tracked: Dict[type, TrackedEntity] = {}

    # ========== REGISTRO ==========

    def register(self, model: type, table_name: Optional[str] = None, exclude=()) -> TrackedEntity:
        if model in self._tracked:
            raise ValueError(f"{model.__name__} ya está registrado para auditoría")
        entry = TrackedEntity(
            model=model,
            table_name=table_name or model.__tablename__,
            exclude=DEFAULT_EXCLUDE | frozenset(exclude),
        )
        self._tracked[model] = entry
        return entry

    def tracked_for(self, entity: Any) -> Optional[TrackedEntity]:
        return self._tracked.get(type(entity))

    def is_tracked(self, model: type) -> bool:
        return model in self._tracked

    def tracked_tables(self) -> List[str]:
        return sorted(t.table_name for t in self._tracked.values())

    # ========== CAPTURA ==========

    @staticmethod
    def snapshot(entity: Any, tracked: TrackedEntity) -> Dict[str, Any]:
        """
        Valores de columna ya cargados en la instancia.
        Solo lee el estado en memoria: las columnas con default del servidor
        que aún no se recargaron simplemente no aparecen.
        """
        state = inspect(entity)
        return {
            attr.key: state.dict[attr.key]
            for attr in state.mapper.column_attrs
            if attr.key not in tracked.exclude and attr.key in state.dict
        }

    # ========== MUTACIONES ==========

    async def create(self, uow: "UnitOfWork", entity: Any) -> Any:
        uow.db.add(entity)
        await uow.db.flush()

        tracked = self.tracked_for(entity)
        if tracked:
            await self.ledger.record(
                uow.db, tracked.table_name, entity.id, AuditAction.CREATE,
                None, self.snapshot(entity, tracked), uow.actor_id,
            )
        return entity

    async def update(self, uow: "UnitOfWork", entity: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Aplica solo los campos cuyo valor realmente cambia.

        Returns:
            Mapa campo → valor nuevo de lo que cambió ({} si nada cambió; en ese
            caso no hay escritura ni registro de auditoría).
        """
        before: Dict[str, Any] = {}
        after: Dict[str, Any] = {}
        for name, new_value in changes.items():
            old_value = getattr(entity, name)
            if normalize_value(old_value) == normalize_value(new_value):
                continue
            before[name] = old_value
            after[name] = new_value

        if not after:
            return {}

        for name, value in after.items():
            setattr(entity, name, value)
        await uow.db.flush()

        tracked = self.tracked_for(entity)
        if tracked:
            audited = [k for k in after if k not in tracked.exclude]
            if audited:
                await self.ledger.record(
                    uow.db, tracked.table_name, entity.id, AuditAction.UPDATE,
                    {k: before[k] for k in audited},
                    {k: after[k] for k in audited},
                    uow.actor_id,
                )
        return after

    async def delete(self, uow: "UnitOfWork", entity: Any) -> None:
        tracked = self.tracked_for(entity)
        before = self.snapshot(entity, tracked) if tracked else None
        record_id = entity.id

        await uow.db.delete(entity)
        await uow.db.flush()

        if tracked:
            await self.ledger.record(
                uow.db, tracked.table_name, record_id, AuditAction.DELETE,
                before, None, uow.actor_id,
            )
