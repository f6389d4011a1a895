"""
NapKeeper - Modelo Client
Suscriptores. Se crean o actualizan (por número de documento) al asignar un puerto.
"""
from sqlalchemy import Column, Integer, String, Text
from app.database import Base
from app.models.base import TimestampMixin


class Client(Base, TimestampMixin):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_number = Column(String(30), unique=True, nullable=False, index=True)  # Cédula / DNI

    first_name = Column(String(200), nullable=False)
    last_name = Column(String(200), nullable=True)

    # --- Contacto ---
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name or ''}".strip()

    def __repr__(self):
        return f"<Client {self.document_number} {self.full_name}>"
