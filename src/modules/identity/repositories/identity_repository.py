from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modules.common.context import utcnow
from modules.common.errors import ConflictError, ErrorCode
from modules.identity.models.user import User
from modules.identity.models.worker import Worker
from modules.identity.services.rut import clean_rut


def _rut_key(column):
    # mismo criterio que clean_rut: sin puntos, guion ni espacios, en mayúsculas
    return func.upper(func.replace(func.replace(func.replace(column, ".", ""), "-", ""), " ", ""))


class IdentityRepository:
    """Acceso al almacén de identidades (workers y users legacy)."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_worker(self, worker_id: str) -> Optional[Worker]:
        if not worker_id:
            return None
        return self.db.get(Worker, worker_id)

    def get_user(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        return self.db.get(User, user_id)

    def find_worker_by_rut(self, rut: str) -> Optional[Worker]:
        key = clean_rut(rut)
        if not key:
            return None
        return self.db.query(Worker).filter(_rut_key(Worker.rut) == key).first()

    def find_user_by_rut(self, rut: str) -> Optional[User]:
        key = clean_rut(rut)
        if not key:
            return None
        return self.db.query(User).filter(_rut_key(User.rut) == key).first()

    def put_worker(self, worker: Worker) -> Worker:
        """Alta condicional: falla si ya existe un worker con ese id."""
        if self.db.get(Worker, worker.worker_id) is not None:
            raise ConflictError(ErrorCode.WORKER_EXISTS, "El trabajador ya existe")
        self.db.add(worker)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(ErrorCode.WORKER_EXISTS, "El trabajador ya existe")
        self.db.refresh(worker)
        return worker

    def update_worker(self, worker_id: str, data: Dict) -> int:
        """Actualiza atributos sin confirmar; el llamador hace commit."""
        values = dict(data, updated_at=utcnow())
        return (
            self.db.query(Worker)
            .filter(Worker.worker_id == worker_id)
            .update(values, synchronize_session="fetch")
        )

    def update_user(self, user_id: str, data: Dict) -> int:
        values = dict(data, updated_at=utcnow())
        return (
            self.db.query(User)
            .filter(User.user_id == user_id)
            .update(values, synchronize_session="fetch")
        )
