from modules.common.context import utcnow
from enum import Enum as PyEnum
from sqlalchemy import Column, String, Enum, DateTime, Boolean, JSON

from database import Base


class UserRole(PyEnum):
    admin = "admin"
    prevencionista = "prevencionista"
    supervisor = "supervisor"
    trabajador = "trabajador"


class User(Base):
    """Identidad legacy de una persona; puede estar vinculada a un Worker."""

    __tablename__ = 'users'

    user_id = Column(String(36), primary_key=True)
    rut = Column(String(16), nullable=False, index=True)
    nombre = Column(String, nullable=False)
    apellido = Column(String, nullable=False, default="")
    email = Column(String, nullable=True)
    rol = Column(Enum(UserRole), nullable=False, default=UserRole.trabajador)
    empresa_id = Column(String, nullable=False, default="default")

    worker_id = Column(String(36), nullable=True, index=True)

    habilitado = Column(Boolean, nullable=False, default=False)
    pin_hash = Column(String(64), nullable=True)
    pin_created_at = Column(DateTime, nullable=True)
    firma_enrolamiento = Column(JSON, nullable=True)

    estado = Column(String(16), nullable=False, default="activo")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombre} {self.apellido or ''}".strip()

    @property
    def cargo(self) -> str:
        return self.rol.value if self.rol else ""
