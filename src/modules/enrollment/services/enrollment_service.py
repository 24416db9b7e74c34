"""
Enrolamiento de firma: NOT_ENROLLED -> PIN_SET -> ENABLED.

La habilitación queda respaldada por una firma de enrolamiento en el ledger.
Si la persona tiene identidad vinculada (user legacy), se replica la
habilitación con el PIN re-hasheado bajo el id vinculado; ese paso es
best-effort y nunca revierte el enrolamiento principal.
"""
import logging
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from modules.common.context import RequestContext
from modules.common.errors import AuthorizationError, ConflictError, ErrorCode
from modules.identity.models.user import User
from modules.identity.models.worker import Worker
from modules.identity.services.identity_resolver import USER, WORKER, IdentityResolver, SigningSubject
from modules.identity.services.linked_identity import try_propagate_to_linked, write_identity
from modules.identity.services.pin_credentials import PinCredentialStore
from modules.signatures.services.signature_ledger import TIPO_ENROLAMIENTO, SignatureLedger, SignatureTarget

logger = logging.getLogger(__name__)


class EnrollmentState(str, Enum):
    NOT_ENROLLED = "NOT_ENROLLED"
    PIN_SET = "PIN_SET"
    ENABLED = "ENABLED"


def _state_of(record: Optional[Union[Worker, User]]) -> Optional[EnrollmentState]:
    if record is None:
        return None
    if record.habilitado:
        return EnrollmentState.ENABLED
    if record.pin_hash:
        return EnrollmentState.PIN_SET
    return EnrollmentState.NOT_ENROLLED


class EnrollmentService:

    @staticmethod
    def enrollment_state(session: Session, subject_id: str) -> dict:
        subject = IdentityResolver.signing_subject(session, subject_id)
        return {
            "subject_id": subject.subject_id,
            "kind": subject.kind,
            "estado": _state_of(subject.record),
            "habilitado": subject.habilitado,
            "tiene_pin": bool(subject.pin_hash),
            "linked_id": subject.linked_id,
            "linked_kind": subject.linked_kind,
            "linked_estado": _state_of(subject.linked),
        }

    @staticmethod
    def set_pin(session: Session, subject_id: str, new_pin: str,
                current_pin: Optional[str] = None) -> dict:
        return PinCredentialStore.set_pin(session, subject_id, new_pin, current_pin)

    @staticmethod
    def authorize_signer(subject: SigningSubject, pin: Optional[str]) -> None:
        """Habilitación y PIN del firmante; lo comparten todos los caminos de firma."""
        if not subject.habilitado:
            raise AuthorizationError(ErrorCode.WORKER_NOT_ENABLED,
                                     "El trabajador no está habilitado para firmar")
        if not PinCredentialStore.verify(pin, subject.pin_hash, subject.subject_id):
            raise AuthorizationError(ErrorCode.INVALID_PIN, "PIN incorrecto")

    @staticmethod
    def complete_enrollment(session: Session, subject_id: str, pin: str,
                            contexto: RequestContext) -> dict:
        """
        Habilita a la persona con una única firma de enrolamiento, archivada
        bajo el worker canónico. Si esa firma ya existe (un lado quedó sin
        habilitar), solo se completa el lado pendiente, se entre por el
        worker o por el user legacy.
        """
        subject = IdentityResolver.signing_subject(session, subject_id)

        if not subject.pin_hash:
            raise ConflictError(ErrorCode.PIN_NOT_SET, "Debe configurar un PIN antes de enrolarse")

        linked_pending = subject.linked is not None and not subject.linked.habilitado
        if subject.habilitado and not linked_pending:
            raise ConflictError(ErrorCode.ALREADY_ENABLED, "El trabajador ya está habilitado")

        if not PinCredentialStore.verify(pin, subject.pin_hash, subject.subject_id):
            raise AuthorizationError(ErrorCode.INVALID_PIN, "PIN incorrecto")

        firma = SignatureLedger.find_first_of_kind(session, subject.worker_id, TIPO_ENROLAMIENTO)
        reparado = firma is not None

        if firma is None:
            # user legacy sin worker: la referencia es el propio user
            referencia_tipo = USER if subject.kind == USER and subject.linked is None else WORKER
            firma = SignatureLedger.record(
                session,
                subject,
                SignatureTarget(
                    tipo_firma=TIPO_ENROLAMIENTO,
                    referencia_id=subject.worker_id,
                    referencia_tipo=referencia_tipo,
                    titulo="Firma de Enrolamiento",
                    request_tipo="ENROLAMIENTO",
                ),
                contexto,
                metadata={"tipo": "enrolamiento"},
                metodo_validacion="PIN_INICIAL",
            )

        firma_enrolamiento = {
            "signatureId": firma.signature_id,
            "token": firma.token,
            "fecha": firma.fecha,
            "horario": firma.horario,
            "timestamp": firma.timestamp.isoformat(),
        }
        if not subject.habilitado:
            write_identity(session, subject.kind, subject.subject_id, {
                "habilitado": True,
                "firma_enrolamiento": firma_enrolamiento,
            })
        session.commit()

        sincronizado = None
        if subject.linked is not None and subject.linked.habilitado:
            sincronizado = True
        elif subject.linked is not None:
            cross_link = ({"worker_id": subject.worker_id} if subject.linked_kind == USER
                          else {"user_id": subject.user_id})
            sincronizado = try_propagate_to_linked(session, subject, {
                "habilitado": True,
                "pin_hash": PinCredentialStore.hash_pin(pin, subject.linked_id),
                "firma_enrolamiento": firma_enrolamiento,
                **cross_link,
            })

        logger.info("Enrolamiento %s de %s:%s (firma %s, sincronizado=%s)",
                    "reparado" if reparado else "completado",
                    subject.kind, subject.subject_id, firma.signature_id, sincronizado)
        return {
            "signature": firma,
            "habilitado": True,
            "reparado": reparado,
            "sincronizado": sincronizado,
        }
