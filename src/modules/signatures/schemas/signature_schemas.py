from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from modules.common.schemas import CamelModel
from modules.signatures.models.signature import SignatureStatus


class SignRequest(CamelModel):
    worker_id: str
    pin: str
    request_id: str
    metadata: Optional[Dict[str, Any]] = None
    offline: bool = False


class SignTargetRequest(CamelModel):
    worker_id: str
    pin: str
    target_type: str
    target_id: str
    target_title: Optional[str] = None
    survey_answers: Optional[List[Dict[str, Any]]] = None
    metadata: Optional[Dict[str, Any]] = None
    offline: bool = False


class DisputeRequest(CamelModel):
    motivo: str = Field(..., min_length=1)
    reportado_por: str = Field(..., min_length=1)


class ResolveRequest(CamelModel):
    resolucion: str = Field(..., min_length=1)
    resuelto_por: str = Field(..., min_length=1)
    nuevo_estado: str


class SignatureResponse(CamelModel):
    signature_id: str
    token: str
    tipo_firma: str
    referencia_id: str
    referencia_tipo: str
    request_id: Optional[str] = None
    request_tipo: Optional[str] = None
    request_titulo: Optional[str] = None
    solicitante_id: Optional[str] = None
    documentos_firmados: Optional[List[Dict[str, Any]]] = None
    worker_id: str
    user_id: Optional[str] = None
    worker_rut: str
    worker_nombre: str
    worker_cargo: Optional[str] = None
    empresa_id: str
    fecha: str
    horario: str
    timestamp: datetime
    ip_address: str
    user_agent: str
    metodo_validacion: str
    # la columna se llama "metadata", que en el modelo ORM está reservado
    extra_metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias="extra_metadata", serialization_alias="metadata"
    )
    offline: bool
    estado: SignatureStatus
    disputa_info: Optional[Dict[str, Any]] = None


class WorkerSignaturesResponse(CamelModel):
    resolved_worker_id: str
    resolved_user_id: str
    total_firmas: int
    firmas: List[SignatureResponse]
