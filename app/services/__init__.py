"""
NapKeeper - Services
Núcleo de asignación de puertos NAP y bitácora de auditoría.
"""
from app.services.errors import CoreError, http_error
from app.services.unit_of_work import UnitOfWork
from app.services import capacity_monitor, connection_lifecycle, network_service

__all__ = [
    "CoreError",
    "http_error",
    "UnitOfWork",
    "capacity_monitor",
    "connection_lifecycle",
    "network_service",
]
