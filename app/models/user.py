"""
NapKeeper - Modelo User
Operadores del back office (admin, supervisor, técnico).
Su id es la identidad de actor que queda en auditoría y en las conexiones creadas.
"""
from sqlalchemy import Column, Integer, String, Boolean, Enum
from app.database import Base
from app.models.base import TimestampMixin
import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    TECHNICIAN = "technician"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.TECHNICIAN, nullable=False)
    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"
