"""
NapKeeper - Unidad de trabajo
Frontera atómica de cada operación pública: una sesión, un actor explícito,
commit al salir sin errores y rollback completo ante cualquier excepción.

Uso:
    async with UnitOfWork(db, actor_id=current_user.id) as uow:
        port = await uow.get_for_update(NapPort, port_id)
        await uow.update(port, status=PortStatus.OCCUPIED)
"""
import logging
from typing import Any, Dict, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.audit.interceptor import MutationInterceptor
from app.services.audit.registry import interceptor as default_interceptor
from app.services.errors import CoreError, InternalError

logger = logging.getLogger("unit_of_work")


class UnitOfWork:

    def __init__(
        self,
        db: AsyncSession,
        actor_id: Optional[int] = None,
        interceptor: Optional[MutationInterceptor] = None,
    ):
        self.db = db
        self.actor_id = actor_id
        self.interceptor = interceptor or default_interceptor

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            await self.db.rollback()
            if isinstance(exc, SQLAlchemyError):
                logger.error(f"Rollback por error de persistencia (actor {self.actor_id}): {exc}")
                raise InternalError("Error de persistencia, la operación se revirtió") from exc
            if not isinstance(exc, CoreError):
                logger.error(f"Rollback por error inesperado (actor {self.actor_id}): {exc!r}")
            return False

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error en commit (actor {self.actor_id}): {e}")
            raise InternalError("Error de persistencia, la operación se revirtió") from e
        return False

    # ========== LECTURAS ==========

    async def get(self, model: Type[Any], ident: Any) -> Optional[Any]:
        result = await self.db.execute(select(model).where(model.id == ident))
        return result.scalar_one_or_none()

    async def get_for_update(self, model: Type[Any], ident: Any) -> Optional[Any]:
        """SELECT ... FOR UPDATE; recarga la fila aunque ya esté en la sesión."""
        result = await self.db.execute(
            select(model)
            .where(model.id == ident)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ========== MUTACIONES (siempre auditadas) ==========

    async def add(self, entity: Any) -> Any:
        return await self.interceptor.create(self, entity)

    async def update(self, entity: Any, **changes: Any) -> Dict[str, Any]:
        return await self.interceptor.update(self, entity, changes)

    async def delete(self, entity: Any) -> None:
        await self.interceptor.delete(self, entity)
