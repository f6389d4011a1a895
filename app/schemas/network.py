"""
NapKeeper - Schemas: Red (NAPs y Puertos)
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.models.network import NapStatus, PortStatus
from app.services.capacity_monitor import AlertSeverity


# --- NAP ---
class NapCreate(BaseModel):
    code: str = Field(..., max_length=50)
    model: str = Field(..., max_length=200)
    firmware: Optional[str] = Field(None, max_length=100)
    location: str = Field(..., max_length=500)
    total_ports: int = Field(default=16, ge=1, le=1000)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class NapStatusUpdate(BaseModel):
    status: NapStatus


class NapResponse(BaseModel):
    id: int
    code: str
    model: str
    firmware: Optional[str]
    location: str
    total_ports: int
    status: NapStatus
    latitude: float
    longitude: float
    created_at: datetime

    class Config:
        from_attributes = True


class NapOccupancyResponse(BaseModel):
    nap_id: int
    code: str
    status: NapStatus
    total_ports: int
    occupied: int
    free: int
    maintenance: int
    occupancy_pct: int

    class Config:
        from_attributes = True


class NapListItem(NapResponse):
    occupied: int = 0
    free: int = 0
    maintenance: int = 0
    occupancy_pct: int = 0


# --- Puertos ---
class NapPortUpdate(BaseModel):
    status: Optional[PortStatus] = None
    note: Optional[str] = None


class NapPortResponse(BaseModel):
    id: int
    nap_id: int
    port_number: int
    status: PortStatus
    note: Optional[str]

    class Config:
        from_attributes = True


class NapPortDetailResponse(NapPortResponse):
    nap_code: str = ""
    connection_id: Optional[int] = None
    client_name: Optional[str] = None


class NapPortsResponse(BaseModel):
    """Puertos de un NAP con sus totales."""
    nap: NapOccupancyResponse
    ports: List[NapPortResponse]


# --- Escaneo de capacidad ---
class CapacityAlertResponse(BaseModel):
    type: str
    severity: AlertSeverity
    nap_id: int
    code: str
    message: str
    occupancy_pct: int

    class Config:
        from_attributes = True


class CapacityScanResponse(BaseModel):
    scanned: int
    saturated: List[int]
    reactivated: List[int]
    near_saturation: List[NapOccupancyResponse]
    alerts: List[CapacityAlertResponse]

    class Config:
        from_attributes = True
