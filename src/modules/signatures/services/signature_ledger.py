import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modules.common.context import RequestContext, utcnow
from modules.common.errors import ConflictError, ErrorCode, InvalidInputError, NotFoundError
from modules.identity.services.identity_resolver import IdentityResolver, ResolvedIdentity, SigningSubject
from modules.signatures.models.signature import Signature, SignatureStatus
from modules.signatures.services.tokens import generate_signature_token

logger = logging.getLogger(__name__)

TIPO_ENROLAMIENTO = "enrolamiento"
TIPO_SOLICITUD = "solicitud"


@dataclass
class SignatureTarget:
    """Lo que se firma: enrolamiento, miembro de solicitud, documento, actividad o encuesta."""

    tipo_firma: str
    referencia_id: str
    referencia_tipo: str
    titulo: Optional[str] = None
    request_id: Optional[str] = None
    request_tipo: Optional[str] = None
    solicitante_id: Optional[str] = None
    documentos: List[Dict[str, Any]] = field(default_factory=list)


class SignatureLedger:
    """Registro append-only de firmas con sub-máquina de disputa por firma."""

    @staticmethod
    def find_for_target(session: Session, worker_id: str, tipo_firma: str,
                        referencia_id: str) -> Optional[Signature]:
        return (
            session.query(Signature)
            .filter(
                Signature.worker_id == worker_id,
                Signature.tipo_firma == tipo_firma,
                Signature.referencia_id == referencia_id,
            )
            .first()
        )

    @staticmethod
    def find_first_of_kind(session: Session, worker_id: str, tipo_firma: str) -> Optional[Signature]:
        """Primera firma de un tipo para la persona, sin importar la referencia."""
        return (
            session.query(Signature)
            .filter(Signature.worker_id == worker_id, Signature.tipo_firma == tipo_firma)
            .order_by(Signature.timestamp.asc())
            .first()
        )

    @staticmethod
    def record(
        session: Session,
        subject: SigningSubject,
        target: SignatureTarget,
        contexto: RequestContext,
        metadata: Optional[Dict[str, Any]] = None,
        metodo_validacion: str = "PIN",
        offline: bool = False,
    ) -> Signature:
        """
        Agrega una firma. Hace flush pero no commit: el llamador confirma junto
        con el resto de su operación.
        """
        if SignatureLedger.find_for_target(session, subject.worker_id, target.tipo_firma,
                                           target.referencia_id) is not None:
            raise ConflictError(ErrorCode.ALREADY_SIGNED, "Ya existe una firma para este objetivo")

        sig = Signature(
            signature_id=str(uuid.uuid4()),
            token=generate_signature_token(),
            tipo_firma=target.tipo_firma,
            referencia_id=target.referencia_id,
            referencia_tipo=target.referencia_tipo,
            request_id=target.request_id,
            request_tipo=target.request_tipo,
            request_titulo=target.titulo,
            solicitante_id=target.solicitante_id,
            documentos_firmados=list(target.documentos or []),
            worker_id=subject.worker_id,
            user_id=subject.user_id,
            worker_rut=subject.rut,
            worker_nombre=subject.nombre,
            worker_cargo=subject.cargo,
            empresa_id=subject.empresa_id,
            fecha=contexto.fecha,
            horario=contexto.horario,
            timestamp=contexto.now,
            ip_address=contexto.ip_address,
            user_agent=contexto.user_agent,
            metodo_validacion=metodo_validacion,
            extra_metadata=metadata,
            offline=offline,
            estado=SignatureStatus.valida,
            disputa_info=None,
        )
        session.add(sig)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise ConflictError(ErrorCode.ALREADY_SIGNED, "Ya existe una firma para este objetivo")

        logger.info("Firma %s registrada: %s %s por %s",
                    sig.signature_id, target.tipo_firma, target.referencia_id, subject.worker_id)
        return sig

    @staticmethod
    def get(session: Session, signature_id: str) -> Signature:
        sig = session.get(Signature, signature_id)
        if sig is None:
            raise NotFoundError(ErrorCode.SIGNATURE_NOT_FOUND, "Firma no encontrada")
        return sig

    @staticmethod
    def dispute(session: Session, signature_id: str, motivo: str, reportado_por: str) -> Signature:
        """valida -> disputada"""
        sig = SignatureLedger.get(session, signature_id)

        if sig.estado == SignatureStatus.disputada:
            raise ConflictError(ErrorCode.ALREADY_DISPUTED, "Esta firma ya está en disputa")
        if sig.estado == SignatureStatus.revocada:
            raise ConflictError(ErrorCode.SIGNATURE_REVOKED, "La firma está revocada")

        sig.estado = SignatureStatus.disputada
        sig.disputa_info = {
            "motivo": motivo,
            "reportadoPor": reportado_por,
            "fechaReporte": utcnow().isoformat(),
            "resolucion": None,
            "resueltoPor": None,
            "fechaResolucion": None,
        }
        session.commit()
        logger.info("Firma %s en disputa (reportada por %s)", signature_id, reportado_por)
        return sig

    @staticmethod
    def resolve(session: Session, signature_id: str, resolucion: str, resuelto_por: str,
                nuevo_estado: str) -> Signature:
        """disputada -> valida | revocada"""
        try:
            target_state = SignatureStatus(nuevo_estado)
        except ValueError:
            target_state = None
        if target_state not in (SignatureStatus.valida, SignatureStatus.revocada):
            raise InvalidInputError(ErrorCode.INVALID_TARGET_STATE,
                                    'Estado inválido. Debe ser "valida" o "revocada"')

        sig = SignatureLedger.get(session, signature_id)
        if sig.estado != SignatureStatus.disputada:
            raise ConflictError(ErrorCode.NOT_DISPUTED, "Esta firma no está en disputa")

        sig.estado = target_state
        sig.disputa_info = {
            **(sig.disputa_info or {}),
            "resolucion": resolucion,
            "resueltoPor": resuelto_por,
            "fechaResolucion": utcnow().isoformat(),
        }
        session.commit()
        logger.info("Disputa de firma %s resuelta: %s", signature_id, target_state.value)
        return sig

    @staticmethod
    def list_by_worker(session: Session, any_id: str) -> Tuple[ResolvedIdentity, List[Signature]]:
        """
        Historial por cualquiera de los ids de la persona. Los registros
        antiguos usan convenciones distintas (workerId, userId o referenciaId),
        así que se busca por las tres columnas contra ambos ids.
        """
        resolved = IdentityResolver.resolve(session, any_id)
        ids = list(resolved.ids)

        rows = (
            session.query(Signature)
            .filter(or_(
                Signature.worker_id.in_(ids),
                Signature.user_id.in_(ids),
                Signature.referencia_id.in_(ids),
            ))
            .all()
        )
        unique = {s.signature_id: s for s in rows}
        firmas = sorted(unique.values(), key=lambda s: s.timestamp, reverse=True)
        return resolved, firmas

    @staticmethod
    def list_by_request(session: Session, request_id: str) -> List[Signature]:
        return (
            session.query(Signature)
            .filter(Signature.request_id == request_id)
            .order_by(Signature.timestamp.asc())
            .all()
        )

    @staticmethod
    def verify_by_token(session: Session, token: str) -> Signature:
        sig = session.query(Signature).filter(Signature.token == token).first()
        if sig is None:
            raise NotFoundError(ErrorCode.SIGNATURE_NOT_FOUND, "Firma no encontrada")
        return sig

    @staticmethod
    def list_disputes(session: Session, empresa_id: Optional[str] = None) -> List[Signature]:
        query = session.query(Signature).filter(Signature.estado == SignatureStatus.disputada)
        if empresa_id:
            query = query.filter(Signature.empresa_id == empresa_id)
        return sorted(
            query.all(),
            key=lambda s: (s.disputa_info or {}).get("fechaReporte") or "",
            reverse=True,
        )
