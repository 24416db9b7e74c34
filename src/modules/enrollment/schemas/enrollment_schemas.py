from datetime import datetime
from typing import Optional

from modules.common.schemas import CamelModel
from modules.enrollment.services.enrollment_service import EnrollmentState


class SetPinRequest(CamelModel):
    pin: str
    current_pin: Optional[str] = None


class SetPinResponse(CamelModel):
    subject_id: str
    actualizado: bool
    pin_created_at: datetime
    sincronizado: Optional[bool] = None


class EnrollmentStateResponse(CamelModel):
    subject_id: str
    kind: str
    estado: EnrollmentState
    habilitado: bool
    tiene_pin: bool
    linked_id: Optional[str] = None
    linked_kind: Optional[str] = None
    linked_estado: Optional[EnrollmentState] = None


class EnrollRequest(CamelModel):
    worker_id: str
    pin: str


class EnrollResponse(CamelModel):
    signature_id: str
    token: str
    fecha: str
    horario: str
    habilitado: bool
    reparado: bool
    sincronizado: Optional[bool] = None
