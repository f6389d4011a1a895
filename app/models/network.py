"""
NapKeeper - Modelos de red FIBRA
NAP → Puerto NAP
Cada NAP = caja de distribución. Cada puerto = hilo de fibra asignable a una conexión.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Enum, ForeignKey,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.base import TimestampMixin
import enum


class NapStatus(str, enum.Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"      # Fijado por el operador
    SATURATED = "saturated"          # Derivado: 100% de puertos ocupados


class PortStatus(str, enum.Enum):
    FREE = "free"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class Nap(Base, TimestampMixin):
    """NAP = caja de distribución en la calle."""
    __tablename__ = "naps"
    __table_args__ = (
        CheckConstraint("total_ports >= 1 AND total_ports <= 1000", name="ck_naps_total_ports"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)   # ej: "NAP-001"
    model = Column(String(200), nullable=False)                          # ej: "Huawei 16P"
    firmware = Column(String(100), nullable=True)
    location = Column(String(500), nullable=False)                       # Dirección física
    total_ports = Column(Integer, nullable=False)                        # No cambia después de crear
    status = Column(Enum(NapStatus), default=NapStatus.ACTIVE, nullable=False)

    # Coordenadas
    latitude = Column(Numeric(10, 8), nullable=False)
    longitude = Column(Numeric(11, 8), nullable=False)

    # Relationships
    ports = relationship("NapPort", back_populates="nap", cascade="all, delete-orphan",
                         order_by="NapPort.port_number")

    def __repr__(self):
        return f"<NAP {self.code} ({self.total_ports} ports, {self.status.value})>"


class NapPort(Base, TimestampMixin):
    """Puerto de NAP = hilo de fibra individual."""
    __tablename__ = "nap_ports"
    __table_args__ = (
        UniqueConstraint("nap_id", "port_number", name="uq_nap_ports_nap_number"),
        CheckConstraint("port_number >= 1", name="ck_nap_ports_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    nap_id = Column(Integer, ForeignKey("naps.id", ondelete="CASCADE"), nullable=False, index=True)

    port_number = Column(Integer, nullable=False)              # 1..total_ports
    status = Column(Enum(PortStatus), default=PortStatus.FREE, nullable=False)
    note = Column(Text, nullable=True)

    # Relationships
    nap = relationship("Nap", back_populates="ports")

    def __repr__(self):
        return f"<NapPort {self.nap_id}/{self.port_number} ({self.status.value})>"
