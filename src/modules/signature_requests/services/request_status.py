from datetime import datetime
from typing import Iterable, Optional

from modules.signature_requests.models.signature_request import RequestMember, RequestStatus


def derive_request_status(
    estado_actual: Optional[RequestStatus],
    members: Iterable[RequestMember],
    fecha_limite: Optional[datetime],
    now: datetime,
) -> RequestStatus:
    """
    Estado de la solicitud a partir de la lista de miembros.

    cancelada gana siempre; luego completada (todos firmaron), vencida
    (pasó la fecha límite), en_proceso (alguien firmó) y pendiente.
    """
    if estado_actual == RequestStatus.cancelada:
        return RequestStatus.cancelada

    firmados = [m.firmado for m in members]
    if firmados and all(firmados):
        return RequestStatus.completada
    if fecha_limite is not None and now > fecha_limite:
        return RequestStatus.vencida
    if any(firmados):
        return RequestStatus.en_proceso
    return RequestStatus.pendiente
