"""
NapKeeper - Schemas: Clientes
El alta/actualización de clientes ocurre al asignar un puerto (upsert por documento).
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ClientData(BaseModel):
    """Datos del cliente que viajan en la asignación de un puerto."""
    document_number: str = Field(..., min_length=1, max_length=30)
    first_name: Optional[str] = Field(None, max_length=200)
    last_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None


class ClientResponse(BaseModel):
    id: int
    document_number: str
    first_name: str
    last_name: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ClientDeleteResponse(BaseModel):
    message: str
    finalized_connections: int
