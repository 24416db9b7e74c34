"""
Resolución de identidad worker <-> user legacy.

Una persona puede existir como Worker, como User o como ambos vinculados
(``worker.user_id`` / ``user.worker_id``). El historial de firmas, el PIN y la
habilitación tienen que poder consultarse por cualquiera de los dos ids.
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional, Union

from sqlalchemy.orm import Session

from modules.common.errors import ErrorCode, NotFoundError
from modules.identity.models.user import User
from modules.identity.models.worker import Worker
from modules.identity.repositories.identity_repository import IdentityRepository

WORKER = "worker"
USER = "user"


@dataclass(frozen=True)
class ResolvedIdentity:
    worker_id: str
    user_id: str
    worker: Optional[Worker] = None
    user: Optional[User] = None

    @property
    def ids(self) -> FrozenSet[str]:
        return frozenset({self.worker_id, self.user_id})

    @property
    def found(self) -> bool:
        return self.worker is not None or self.user is not None


@dataclass
class SigningSubject:
    """Instantánea de quien firma, tomada del registro dueño del id pedido."""

    subject_id: str
    kind: str
    nombre: str
    rut: str
    cargo: str
    habilitado: bool
    pin_hash: Optional[str]
    empresa_id: str
    record: Union[Worker, User]
    linked: Optional[Union[Worker, User]] = None

    @property
    def linked_id(self) -> Optional[str]:
        if self.linked is None:
            return None
        return self.linked.user_id if isinstance(self.linked, User) else self.linked.worker_id

    @property
    def linked_kind(self) -> Optional[str]:
        if self.linked is None:
            return None
        return USER if isinstance(self.linked, User) else WORKER

    @property
    def worker_id(self) -> str:
        if self.kind == WORKER:
            return self.subject_id
        return self.linked_id or self.subject_id

    @property
    def user_id(self) -> Optional[str]:
        if self.kind == USER:
            return self.subject_id
        return self.linked_id


class IdentityResolver:

    @staticmethod
    def resolve(session: Session, any_id: str) -> ResolvedIdentity:
        repo = IdentityRepository(session)

        worker = repo.get_worker(any_id)
        if worker is not None:
            user = repo.get_user(worker.user_id) if worker.user_id else None
            return ResolvedIdentity(
                worker_id=worker.worker_id,
                user_id=worker.user_id or any_id,
                worker=worker,
                user=user,
            )

        user = repo.get_user(any_id)
        if user is not None:
            linked_worker = repo.get_worker(user.worker_id) if user.worker_id else None
            return ResolvedIdentity(
                worker_id=user.worker_id or any_id,
                user_id=user.user_id,
                worker=linked_worker,
                user=user,
            )

        return ResolvedIdentity(worker_id=any_id, user_id=any_id)

    @staticmethod
    def signing_subject(session: Session, any_id: str) -> SigningSubject:
        resolved = IdentityResolver.resolve(session, any_id)

        if resolved.worker is not None and resolved.worker.worker_id == any_id:
            record, kind, linked = resolved.worker, WORKER, resolved.user
        elif resolved.user is not None and resolved.user.user_id == any_id:
            record, kind, linked = resolved.user, USER, resolved.worker
        else:
            raise NotFoundError(ErrorCode.WORKER_NOT_FOUND, "Trabajador no encontrado")

        return SigningSubject(
            subject_id=any_id,
            kind=kind,
            nombre=record.nombre_completo,
            rut=record.rut,
            cargo=record.cargo,
            habilitado=bool(record.habilitado),
            pin_hash=record.pin_hash,
            empresa_id=record.empresa_id or "default",
            record=record,
            linked=linked,
        )
