from modules.common.context import utcnow
from sqlalchemy import Column, String, DateTime, Boolean, JSON

from database import Base


class Worker(Base):
    __tablename__ = 'workers'

    worker_id = Column(String(36), primary_key=True)
    rut = Column(String(16), nullable=False, index=True)
    nombre = Column(String, nullable=False)
    apellido = Column(String, nullable=False, default="")
    cargo = Column(String, nullable=False)
    email = Column(String, nullable=True)
    empresa_id = Column(String, nullable=False, default="default")

    # Identidad legacy vinculada (tabla users)
    user_id = Column(String(36), nullable=True, index=True)

    habilitado = Column(Boolean, nullable=False, default=False)
    pin_hash = Column(String(64), nullable=True)
    pin_created_at = Column(DateTime, nullable=True)
    firma_enrolamiento = Column(JSON, nullable=True)

    # activo / inactivo: nunca se borra, solo se desactiva
    estado = Column(String(16), nullable=False, default="activo")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombre} {self.apellido or ''}".strip()
