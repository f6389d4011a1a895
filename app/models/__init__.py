"""
NapKeeper - Models
Importa todos los modelos para que SQLAlchemy los registre.
"""
# Base
from app.models.base import TimestampMixin

# Operadores
from app.models.user import User, UserRole

# Red
from app.models.network import Nap, NapPort, NapStatus, PortStatus

# Clientes y Planes
from app.models.client import Client
from app.models.plan import ServicePlan

# Conexiones
from app.models.connection import Connection, ConnectionStatus, LIVE_STATUSES

# Auditoría
from app.models.audit import AuditRecord, AuditAction

__all__ = [
    # Base
    "TimestampMixin",
    # Operadores
    "User", "UserRole",
    # Red
    "Nap", "NapPort", "NapStatus", "PortStatus",
    # Clientes y Planes
    "Client", "ServicePlan",
    # Conexiones
    "Connection", "ConnectionStatus", "LIVE_STATUSES",
    # Auditoría
    "AuditRecord", "AuditAction",
]
