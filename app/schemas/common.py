"""
NapKeeper - Schemas comunes
Paginación, mensajes simples y el detalle de error del núcleo.
"""
from pydantic import BaseModel
from typing import Generic, TypeVar, List, Optional

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    per_page: int
    pages: int


class MessageResponse(BaseModel):
    message: str
    detail: Optional[str] = None


class ErrorDetail(BaseModel):
    """Contenido de `detail` en las respuestas de error del núcleo."""
    error: str            # Código estable, ej: "port_unavailable"
    kind: str             # not_found | conflict | validation_failed | internal
    message: str


def page_count(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page if per_page else 0
