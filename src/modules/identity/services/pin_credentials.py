"""
Credencial PIN de 4 dígitos.

El hash es determinista en (pin, subject_id): sha256 de "pin-subjectId-pepper".
No se guarda sal aleatoria, así que el id del sujeto hace de sal y el mismo
PIN produce hashes distintos para un worker y su user legacy. Siempre hay que
verificar contra el id bajo el que se guardó el hash.
"""
import logging
import re
from typing import Optional

from passlib.hash import hex_sha256
from sqlalchemy.orm import Session

from config import get_settings
from modules.common.context import utcnow
from modules.common.errors import AuthorizationError, ErrorCode, InvalidInputError
from modules.identity.services.identity_resolver import IdentityResolver
from modules.identity.services.linked_identity import try_propagate_to_linked, write_identity

logger = logging.getLogger(__name__)

_PIN_RE = re.compile(r"[0-9]{4}")

PINES_OBVIOS = {str(d) * 4 for d in range(10)} | {"1234", "4321"}


class PinCredentialStore:

    @staticmethod
    def validate_format(pin: Optional[str]) -> None:
        if not pin:
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "PIN es requerido")
        if not isinstance(pin, str) or not _PIN_RE.fullmatch(pin):
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "PIN debe ser de 4 dígitos numéricos")
        if pin in PINES_OBVIOS:
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "PIN demasiado simple, elija otro")

    @staticmethod
    def hash_pin(pin: str, subject_id: str) -> str:
        if not isinstance(pin, str) or not _PIN_RE.fullmatch(pin):
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "PIN debe ser de 4 dígitos numéricos")
        return hex_sha256.hash(f"{pin}-{subject_id}-{get_settings().pin_salt}")

    @staticmethod
    def verify(pin: Optional[str], stored_hash: Optional[str], subject_id: Optional[str]) -> bool:
        if not pin or not stored_hash or not subject_id:
            return False
        if not isinstance(pin, str) or not _PIN_RE.fullmatch(pin):
            return False
        try:
            return hex_sha256.verify(f"{pin}-{subject_id}-{get_settings().pin_salt}", stored_hash)
        except ValueError:
            # hash almacenado con formato inválido
            return False

    @staticmethod
    def new_hash(subject_id: str, new_pin: str, stored_hash: Optional[str],
                 current_pin: Optional[str] = None) -> str:
        """
        Calcula el hash de un PIN nuevo aplicando las reglas de cambio:
        formato válido y, si ya existe un PIN, el PIN actual correcto.
        """
        PinCredentialStore.validate_format(new_pin)
        if stored_hash:
            if not current_pin:
                raise AuthorizationError(ErrorCode.WRONG_CURRENT_PIN,
                                         "PIN actual es requerido para cambiar el PIN")
            if not PinCredentialStore.verify(current_pin, stored_hash, subject_id):
                raise AuthorizationError(ErrorCode.WRONG_CURRENT_PIN, "PIN actual incorrecto")
        return PinCredentialStore.hash_pin(new_pin, subject_id)

    @staticmethod
    def set_pin(session: Session, subject_id: str, new_pin: str,
                current_pin: Optional[str] = None) -> dict:
        """
        Configura o cambia el PIN del sujeto y lo replica, re-hasheado con su
        propio id, en la identidad vinculada (best-effort).
        """
        subject = IdentityResolver.signing_subject(session, subject_id)
        pin_hash = PinCredentialStore.new_hash(subject_id, new_pin, subject.pin_hash, current_pin)

        now = utcnow()
        write_identity(session, subject.kind, subject_id, {"pin_hash": pin_hash, "pin_created_at": now})
        session.commit()

        sincronizado = None
        if subject.linked is not None:
            sincronizado = try_propagate_to_linked(session, subject, {
                "pin_hash": PinCredentialStore.hash_pin(new_pin, subject.linked_id),
                "pin_created_at": now,
            })

        logger.info("PIN %s para %s:%s", "actualizado" if subject.pin_hash else "configurado",
                    subject.kind, subject_id)
        return {
            "subject_id": subject_id,
            "actualizado": bool(subject.pin_hash),
            "pin_created_at": now,
            "sincronizado": sincronizado,
        }
