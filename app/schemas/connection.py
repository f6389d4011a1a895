"""
NapKeeper - Schemas: Conexiones
Asignación de un puerto a un cliente y transiciones de estado.
"""
from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from app.models.connection import ConnectionStatus
from app.schemas.client import ClientData


# --- Asignar puerto ---
class ConnectionCreate(BaseModel):
    port_id: int
    plan_id: int
    client: ClientData
    start_date: Optional[date] = None
    status: ConnectionStatus = ConnectionStatus.ACTIVE


# --- Transición ---
class ConnectionTransition(BaseModel):
    status: ConnectionStatus
    plan_id: Optional[int] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None


# --- Responses ---
class ConnectionResponse(BaseModel):
    id: int
    port_id: int
    client_id: Optional[int]
    plan_id: int
    start_date: date
    end_date: Optional[date]
    status: ConnectionStatus
    notes: Optional[str]
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ConnectionDetailResponse(ConnectionResponse):
    nap_id: Optional[int] = None
    nap_code: str = ""
    port_number: Optional[int] = None
    client_name: str = ""
    client_document: str = ""
    plan_name: str = ""
    bandwidth_mbps: Optional[int] = None
