"""
NapKeeper - Modelo de Planes de Servicio
Datos de referencia: no cambian mientras una conexión los usa.
"""
from sqlalchemy import Column, Integer, String, Text, CheckConstraint
from app.database import Base
from app.models.base import TimestampMixin


class ServicePlan(Base, TimestampMixin):
    __tablename__ = "service_plans"
    __table_args__ = (
        CheckConstraint("bandwidth_mbps >= 1", name="ck_service_plans_bandwidth"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    bandwidth_mbps = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Plan {self.name} {self.bandwidth_mbps}Mbps>"
