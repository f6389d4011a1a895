"""
NapKeeper - Mixins comunes de modelos
"""
from sqlalchemy import Column, DateTime, func


class TimestampMixin:
    """Agrega created_at y updated_at a cualquier modelo."""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
