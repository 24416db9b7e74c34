# src/modules/signatures/models/signature.py

from enum import Enum as PyEnum

from sqlalchemy import Column, String, DateTime, Boolean, JSON, Enum, UniqueConstraint, event, inspect
from database import Base
from modules.common.context import utcnow


class SignatureStatus(PyEnum):
    valida = "valida"
    disputada = "disputada"
    revocada = "revocada"


class SignatureImmutableError(RuntimeError):
    """Intento de modificar la evidencia o borrar una firma."""


class Signature(Base):
    __tablename__ = "signatures"
    __table_args__ = (
        UniqueConstraint("worker_id", "tipo_firma", "referencia_id", name="uq_signature_subject_target"),
    )

    signature_id = Column(String(36), primary_key=True)
    token        = Column(String(64), unique=True, nullable=False, index=True)

    # Objetivo firmado
    tipo_firma      = Column(String(32), nullable=False)   # enrolamiento / solicitud / documento / actividad / encuesta
    referencia_id   = Column(String(64), nullable=False, index=True)
    referencia_tipo = Column(String(32), nullable=False)
    request_id      = Column(String(36), nullable=True, index=True)
    request_tipo    = Column(String(32), nullable=True)
    request_titulo  = Column(String(255), nullable=True)
    solicitante_id  = Column(String(36), nullable=True)
    documentos_firmados = Column(JSON, nullable=True)

    # Firmante (instantánea)
    worker_id     = Column(String(36), nullable=False, index=True)
    user_id       = Column(String(36), nullable=True, index=True)
    worker_rut    = Column(String(16), nullable=False)
    worker_nombre = Column(String, nullable=False)
    worker_cargo  = Column(String, nullable=True)
    empresa_id    = Column(String, nullable=False, default="default")

    # Evidencia DS44
    fecha             = Column(String(10), nullable=False)
    horario           = Column(String(8), nullable=False)
    timestamp         = Column(DateTime, nullable=False, default=utcnow, index=True)
    ip_address        = Column(String(64), nullable=False, default="unknown")
    user_agent        = Column(String(500), nullable=False, default="unknown")
    metodo_validacion = Column(String(32), nullable=False, default="PIN")
    extra_metadata    = Column("metadata", JSON, nullable=True)
    offline           = Column(Boolean, nullable=False, default=False)

    # Únicos campos mutables
    estado       = Column(Enum(SignatureStatus), nullable=False, default=SignatureStatus.valida)
    disputa_info = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)


_MUTABLE_FIELDS = {"estado", "disputa_info"}


@event.listens_for(Signature, "before_update")
def _reject_evidence_changes(mapper, connection, target):
    state = inspect(target)
    for attr in mapper.column_attrs:
        if attr.key in _MUTABLE_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            raise SignatureImmutableError(
                f"El campo '{attr.key}' de la firma {target.signature_id} es inmutable"
            )


@event.listens_for(Signature, "before_delete")
def _reject_delete(mapper, connection, target):
    raise SignatureImmutableError(f"La firma {target.signature_id} no puede eliminarse")
