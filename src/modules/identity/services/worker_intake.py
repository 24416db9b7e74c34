import logging
import uuid

from sqlalchemy.orm import Session

from modules.common.errors import ConflictError, ErrorCode, InvalidInputError
from modules.identity.models.worker import Worker
from modules.identity.repositories.identity_repository import IdentityRepository
from modules.identity.schemas.worker_schemas import WorkerCreate
from modules.identity.services.rut import format_rut

logger = logging.getLogger(__name__)


class WorkerIntakeService:

    @staticmethod
    def register(session: Session, data: WorkerCreate) -> Worker:
        """
        Alta de enrolamiento: el trabajador nace sin PIN y sin habilitar.
        Si viene un userId se deja el vínculo en ambas identidades.
        """
        rut = format_rut(data.rut)
        if rut is None:
            raise InvalidInputError(ErrorCode.INVALID_RUT, "RUT inválido")

        repo = IdentityRepository(session)
        # los lotes offline identifican al firmante por RUT
        if repo.find_worker_by_rut(rut) is not None:
            raise ConflictError(ErrorCode.WORKER_EXISTS, "Ya existe un trabajador con ese RUT")

        worker = Worker(
            worker_id=str(uuid.uuid4()),
            rut=rut,
            nombre=data.nombre,
            apellido=data.apellido or "",
            cargo=data.cargo,
            email=data.email,
            empresa_id=data.empresa_id or "default",
            user_id=data.user_id,
            habilitado=False,
            pin_hash=None,
        )
        worker = repo.put_worker(worker)

        if data.user_id and repo.get_user(data.user_id) is not None:
            repo.update_user(data.user_id, {"worker_id": worker.worker_id})
            session.commit()

        logger.info("Trabajador %s registrado (rut %s)", worker.worker_id, worker.rut)
        return worker
