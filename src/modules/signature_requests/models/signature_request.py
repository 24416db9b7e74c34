from enum import Enum as PyEnum

from sqlalchemy import Column, String, Text, DateTime, Boolean, JSON, Enum, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from modules.common.context import utcnow


class RequestStatus(PyEnum):
    pendiente = "pendiente"
    en_proceso = "en_proceso"
    completada = "completada"
    cancelada = "cancelada"
    vencida = "vencida"


TERMINAL_STATES = {RequestStatus.cancelada, RequestStatus.vencida}


class SignatureRequest(Base):
    __tablename__ = "signature_requests"

    request_id = Column(String(36), primary_key=True)
    tipo = Column(String(32), nullable=False)
    titulo = Column(String(255), nullable=False)
    descripcion = Column(Text, nullable=True)
    ubicacion = Column(String(255), nullable=True)
    documentos = Column(JSON, nullable=False, default=list)

    solicitante_id = Column(String(36), nullable=False, index=True)
    solicitante_nombre = Column(String, nullable=False)
    solicitante_rut = Column(String(16), nullable=True)
    empresa_id = Column(String, nullable=False, default="default")

    fecha_limite = Column(DateTime, nullable=True)
    estado = Column(Enum(RequestStatus), nullable=False, default=RequestStatus.pendiente)

    motivo_cancelacion = Column(Text, nullable=True)
    fecha_cancelacion = Column(DateTime, nullable=True)

    # lote recolectado sin conexión (charla en terreno)
    offline = Column(Boolean, nullable=False, default=False)
    offline_batch_id = Column(String(64), unique=True, nullable=True)
    fecha_creacion_offline = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Miembros (orden de la solicitud)
    members = relationship("RequestMember", back_populates="request", order_by="RequestMember.position",
                           cascade="all, delete-orphan")

    @property
    def total_requeridos(self) -> int:
        return len(self.members)

    @property
    def total_firmados(self) -> int:
        return sum(1 for m in self.members if m.firmado)


class RequestMember(Base):
    __tablename__ = "signature_request_members"
    __table_args__ = (
        UniqueConstraint("request_id", "worker_id", name="uq_request_member"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(36), ForeignKey("signature_requests.request_id"), nullable=False, index=True)
    worker_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    position = Column(Integer, nullable=False)

    nombre = Column(String, nullable=False)
    rut = Column(String(16), nullable=True)
    cargo = Column(String, nullable=True)

    firmado = Column(Boolean, nullable=False, default=False)
    fecha_firma = Column(DateTime, nullable=True)
    signature_id = Column(String(36), nullable=True)

    request = relationship("SignatureRequest", back_populates="members")
