from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from modules.identity.schemas.worker_schemas import (
    ResolvedIdentityResponse, WorkerCreate, WorkerResponse,
)
from modules.identity.services.identity_resolver import IdentityResolver
from modules.identity.services.worker_intake import WorkerIntakeService

router = APIRouter(prefix="/workers", tags=["workers"])


@router.post("", response_model=WorkerResponse, status_code=status.HTTP_201_CREATED)
def register_worker(payload: WorkerCreate, db: Session = Depends(get_db)):
    """Alta de un trabajador para enrolamiento (sin PIN, no habilitado)."""
    return WorkerIntakeService.register(db, payload)


@router.get("/{worker_id}/identity", response_model=ResolvedIdentityResponse)
def resolve_identity(worker_id: str, db: Session = Depends(get_db)):
    resolved = IdentityResolver.resolve(db, worker_id)
    return ResolvedIdentityResponse(
        input_id=worker_id,
        resolved_worker_id=resolved.worker_id,
        resolved_user_id=resolved.user_id,
        worker_found=resolved.worker is not None,
        user_found=resolved.user is not None,
    )
