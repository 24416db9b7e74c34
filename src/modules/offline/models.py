import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from modules.common.schemas import CamelModel


class QueueItemType(str, Enum):
    solicitud = "solicitud"
    documento = "documento"
    actividad = "actividad"
    encuesta = "encuesta"


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    SYNCING = "SYNCING"


def _new_item_id() -> str:
    return f"offline_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OfflineSignatureItem(CamelModel):
    """Firma capturada sin conexión, pendiente de enviar al servidor."""

    id: str = Field(default_factory=_new_item_id)
    type: QueueItemType
    target_id: str
    target_title: str = ""
    worker_id: str
    worker_name: str = ""
    # en claro hasta sincronizar; el archivo de la cola es solo del dueño
    pin: str
    timestamp: str = Field(default_factory=_now_iso)
    synced: bool = False
    survey_answers: Optional[List[Dict[str, Any]]] = None
    metadata: Optional[Dict[str, Any]] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    intentos: int = 0
    ultimo_error: Optional[str] = None


class SignOutcome(CamelModel):
    success: bool
    offline: bool
    data: Optional[Dict[str, Any]] = None
    item: Optional[OfflineSignatureItem] = None
    error: Optional[str] = None
    code: Optional[str] = None


class SyncReport(CamelModel):
    synced: int = 0
    already_signed: int = 0
    failed: int = 0
    pending: int = 0
    skipped: bool = False


class BatchSyncStatus(str, Enum):
    pending = "pending"
    syncing = "syncing"
    synced = "synced"
    error = "error"


class CollectedSignature(CamelModel):
    """Firma de un asistente tomada en terreno: RUT + PIN."""

    id: str = Field(default_factory=_new_item_id)
    rut: str
    # se borra al sincronizar el lote
    pin: str
    nombre: Optional[str] = None
    timestamp_local: str = Field(default_factory=_now_iso)


class OfflineRequestDraft(CamelModel):
    """Solicitud completa armada sin conexión; se envía como un solo lote."""

    id: str = Field(default_factory=_new_item_id)
    tipo: str
    titulo: str
    descripcion: str = ""
    ubicacion: str = ""
    solicitante_id: str
    solicitante_nombre: str = ""
    firmas: List[CollectedSignature] = []
    fecha_creacion: str = Field(default_factory=_now_iso)
    sync_status: BatchSyncStatus = BatchSyncStatus.pending
    sync_error: Optional[str] = None
    synced_at: Optional[str] = None
    server_request_id: Optional[str] = None
    resultados_firmas: Optional[List[Dict[str, Any]]] = None
    intentos: int = 0


class BatchSyncResult(CamelModel):
    draft_id: str
    success: bool
    server_request_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    signature_results: Optional[List[Dict[str, Any]]] = None
