from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from modules.common.schemas import CamelModel
from modules.signature_requests.models.signature_request import RequestStatus
from modules.signatures.schemas.signature_schemas import SignatureResponse


class SignatureRequestCreate(CamelModel):
    tipo: str
    titulo: str
    documentos: List[Dict[str, Any]] = []
    trabajadores_ids: List[str] = []
    solicitante_id: str
    fecha_limite: Optional[datetime] = None
    descripcion: Optional[str] = None
    ubicacion: Optional[str] = None


class CancelRequest(CamelModel):
    motivo: Optional[str] = None


class MemberResponse(CamelModel):
    worker_id: str
    user_id: Optional[str] = None
    nombre: str
    rut: Optional[str] = None
    cargo: Optional[str] = None
    firmado: bool
    fecha_firma: Optional[datetime] = None
    signature_id: Optional[str] = None


class SignatureRequestResponse(CamelModel):
    request_id: str
    tipo: str
    titulo: str
    descripcion: Optional[str] = None
    ubicacion: Optional[str] = None
    documentos: List[Dict[str, Any]] = []
    solicitante_id: str
    solicitante_nombre: str
    empresa_id: str
    fecha_limite: Optional[datetime] = None
    estado: RequestStatus
    total_firmados: int
    total_requeridos: int
    trabajadores: List[MemberResponse] = Field(
        default_factory=list, validation_alias="members", serialization_alias="trabajadores"
    )
    motivo_cancelacion: Optional[str] = None
    fecha_cancelacion: Optional[datetime] = None
    offline: bool = False
    fecha_creacion_offline: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SignatureRequestDetail(SignatureRequestResponse):
    firmas: List[SignatureResponse] = []


class SignResponse(CamelModel):
    signature_id: str
    token: str
    fecha: str
    horario: str
    estado: RequestStatus
    solicitud: SignatureRequestResponse


class PendingResponse(CamelModel):
    pendientes: List[SignatureRequestResponse]
    total: int


class HistoryItem(CamelModel):
    firma: SignatureResponse
    solicitud: Optional[SignatureRequestResponse] = None


class HistoryResponse(CamelModel):
    resolved_worker_id: str
    resolved_user_id: str
    total_firmas: int
    historial: List[HistoryItem]


class RequestTypeResponse(CamelModel):
    tipo: str
    label: str
    requires_doc: bool


class StatsResponse(CamelModel):
    total: int
    pendientes: int
    en_proceso: int
    completadas: int
    canceladas: int
    vencidas: int
    total_firmas_requeridas: int
    total_firmas_obtenidas: int
    por_tipo: Dict[str, Dict[str, Any]]


class OfflineBatchSignature(CamelModel):
    rut: str
    pin: str
    nombre: Optional[str] = None
    timestamp_local: Optional[datetime] = None


class OfflineBatchRequest(CamelModel):
    tipo: str
    titulo: str
    solicitante_id: str
    firmas_offline: List[OfflineBatchSignature] = []
    descripcion: Optional[str] = None
    ubicacion: Optional[str] = None
    fecha_creacion_offline: Optional[datetime] = None
    # id local del lote; hace idempotente el reenvío
    batch_id: Optional[str] = None


class OfflineBatchResult(CamelModel):
    rut: str
    success: bool
    signature_id: Optional[str] = None
    token: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


class OfflineBatchResponse(CamelModel):
    message: str
    request_id: Optional[str] = None
    firmas_validas: int
    firmas_invalidas: int
    resultados_firmas: List[OfflineBatchResult]
    solicitud: Optional[SignatureRequestResponse] = None
