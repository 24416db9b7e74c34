from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from modules.common.context import RequestContext, get_request_context
from modules.enrollment.schemas.enrollment_schemas import (
    EnrollmentStateResponse, EnrollRequest, EnrollResponse, SetPinRequest, SetPinResponse,
)
from modules.enrollment.services.enrollment_service import EnrollmentService

router = APIRouter(tags=["enrollment"])


@router.post("/workers/{worker_id}/pin", response_model=SetPinResponse)
def set_pin(worker_id: str, payload: SetPinRequest, db: Session = Depends(get_db)):
    """Configura el PIN (o lo cambia, exigiendo el PIN actual)."""
    return EnrollmentService.set_pin(db, worker_id, payload.pin, payload.current_pin)


@router.get("/workers/{worker_id}/enrollment", response_model=EnrollmentStateResponse)
def enrollment_state(worker_id: str, db: Session = Depends(get_db)):
    return EnrollmentService.enrollment_state(db, worker_id)


@router.post("/signatures/enroll", response_model=EnrollResponse, status_code=status.HTTP_201_CREATED)
def complete_enrollment(
    payload: EnrollRequest,
    db: Session = Depends(get_db),
    contexto: RequestContext = Depends(get_request_context),
):
    result = EnrollmentService.complete_enrollment(db, payload.worker_id, payload.pin, contexto)
    firma = result["signature"]
    return EnrollResponse(
        signature_id=firma.signature_id,
        token=firma.token,
        fecha=firma.fecha,
        horario=firma.horario,
        habilitado=result["habilitado"],
        reparado=result["reparado"],
        sincronizado=result["sincronizado"],
    )
