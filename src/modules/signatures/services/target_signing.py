import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from modules.common.context import RequestContext
from modules.common.errors import ErrorCode, InvalidInputError
from modules.enrollment.services.enrollment_service import EnrollmentService
from modules.identity.services.identity_resolver import IdentityResolver
from modules.signatures.models.signature import Signature
from modules.signatures.services.signature_ledger import SignatureLedger, SignatureTarget

logger = logging.getLogger(__name__)

TARGET_TYPES = ("documento", "actividad", "encuesta")


class TargetSigningService:
    """Firma de objetivos externos (documento, actividad o encuesta) con PIN."""

    @staticmethod
    def sign_target(
        session: Session,
        worker_id: str,
        pin: str,
        target_type: str,
        target_id: str,
        contexto: RequestContext,
        target_title: Optional[str] = None,
        survey_answers: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        offline: bool = False,
    ) -> Signature:
        if target_type not in TARGET_TYPES:
            raise InvalidInputError(ErrorCode.INVALID_TARGET_TYPE,
                                    f"Tipo de objetivo inválido. Tipos válidos: {', '.join(TARGET_TYPES)}")
        if not target_id:
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "El id del objetivo es requerido")

        subject = IdentityResolver.signing_subject(session, worker_id)
        EnrollmentService.authorize_signer(subject, pin)

        datos = dict(metadata or {})
        if target_type == "encuesta" and survey_answers is not None:
            datos["respuestas"] = survey_answers

        firma = SignatureLedger.record(
            session,
            subject,
            SignatureTarget(
                tipo_firma=target_type,
                referencia_id=target_id,
                referencia_tipo=target_type,
                titulo=target_title,
            ),
            contexto,
            metadata=datos or None,
            offline=offline,
        )
        session.commit()

        logger.info("Firma de %s %s por %s", target_type, target_id, subject.worker_id)
        return firma
