"""
NapKeeper - Modelo Connection
Vincula un Cliente y un Plan a un Puerto NAP durante un periodo.
Un puerto tiene como máximo UNA conexión viva (ACTIVE o SUSPENDED).
"""
from sqlalchemy import (
    Column, Integer, Enum, Text, Date, ForeignKey, Index, text
)
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.base import TimestampMixin
import enum


class ConnectionStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    FINALIZED = "finalized"          # Terminal


LIVE_STATUSES = (ConnectionStatus.ACTIVE, ConnectionStatus.SUSPENDED)

_LIVE_PREDICATE = text("status IN ('ACTIVE', 'SUSPENDED')")


class Connection(Base, TimestampMixin):
    __tablename__ = "connections"
    __table_args__ = (
        # Respaldo en BD del invariante "una conexión viva por puerto"
        Index(
            "uq_connections_live_port",
            "port_id",
            unique=True,
            postgresql_where=_LIVE_PREDICATE,
            sqlite_where=_LIVE_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # --- Relaciones principales ---
    port_id = Column(Integer, ForeignKey("nap_ports.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    plan_id = Column(Integer, ForeignKey("service_plans.id"), nullable=False)

    # --- Periodo y estado ---
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    status = Column(Enum(ConnectionStatus), default=ConnectionStatus.ACTIVE, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)   # Actor que asignó el puerto

    # --- Relationships ---
    port = relationship("NapPort", foreign_keys=[port_id])
    client = relationship("Client", foreign_keys=[client_id], passive_deletes=True)
    service_plan = relationship("ServicePlan", foreign_keys=[plan_id])

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def __repr__(self):
        return f"<Connection {self.id} port={self.port_id} ({self.status.value})>"
