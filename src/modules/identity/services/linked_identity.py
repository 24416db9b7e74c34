import logging
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.common.errors import UpstreamSyncError
from modules.identity.repositories.identity_repository import IdentityRepository
from modules.identity.services.identity_resolver import USER, SigningSubject

logger = logging.getLogger(__name__)


def write_identity(session: Session, kind: str, record_id: str, data: Dict) -> int:
    repo = IdentityRepository(session)
    if kind == USER:
        return repo.update_user(record_id, data)
    return repo.update_worker(record_id, data)


def propagate_to_linked(session: Session, subject: SigningSubject, data: Dict) -> None:
    """
    Escritura en la identidad vinculada en su propia transacción.

    Lanza UpstreamSyncError si falla; la operación primaria ya está confirmada
    y no se revierte.
    """
    if subject.linked is None:
        return
    try:
        write_identity(session, subject.linked_kind, subject.linked_id, data)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise UpstreamSyncError(
            f"No se pudo sincronizar la identidad vinculada {subject.linked_kind}:{subject.linked_id}: {exc}"
        ) from exc


def try_propagate_to_linked(session: Session, subject: SigningSubject, data: Dict) -> Optional[bool]:
    """Versión best-effort: registra el fallo y devuelve False. None si no hay vínculo."""
    if subject.linked is None:
        return None
    try:
        propagate_to_linked(session, subject, data)
    except UpstreamSyncError as exc:
        logger.warning("UPSTREAM_SYNC_FAILURE: %s", exc.message)
        return False
    return True
