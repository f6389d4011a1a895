"""
NapKeeper - Modelo AuditRecord
Bitácora INMUTABLE de cambios: INSERT-only, no existe ruta de UPDATE/DELETE.
before_data / after_data son mapas campo → valor ya normalizados a tipos primitivos.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, ForeignKey, JSON, func
from app.database import Base
import enum


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditRecord(Base):
    __tablename__ = "audit_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # --- Qué cambió ---
    table_name = Column(String(100), nullable=False, index=True)     # ej: "nap_ports"
    record_id = Column(String(64), nullable=False, index=True)
    action = Column(Enum(AuditAction), nullable=False, index=True)

    # --- Cómo cambió ---
    before_data = Column(JSON, nullable=True)      # UPDATE: solo campos modificados / DELETE: snapshot
    after_data = Column(JSON, nullable=True)       # CREATE: snapshot / UPDATE: solo campos modificados

    # --- Quién y cuándo ---
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    @property
    def changes(self) -> list[dict]:
        """Lista campo por campo (valor anterior / nuevo) para el historial de un registro."""
        before = self.before_data or {}
        after = self.after_data or {}
        fields = list(after.keys()) + [k for k in before.keys() if k not in after]
        return [
            {"field": f, "old_value": before.get(f), "new_value": after.get(f)}
            for f in fields
            if before.get(f) != after.get(f)
        ]

    def __repr__(self):
        return f"<AuditRecord {self.action.value} {self.table_name}:{self.record_id} by {self.actor_id}>"
