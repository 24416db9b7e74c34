import logging
from typing import Any, Dict, Optional

import httpx

from modules.offline.models import OfflineRequestDraft, OfflineSignatureItem, QueueItemType

logger = logging.getLogger(__name__)


class SignatureApiError(Exception):
    """Respuesta de error del servidor de firmas (4xx/5xx con cuerpo JSON)."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code


class SignatureApiClient:
    """
    Cliente HTTP de los endpoints de firma en línea.

    Los errores de red (httpx.TransportError) se propagan tal cual: la cola
    offline los interpreta como "sin conexión".
    """

    def __init__(self, http: httpx.Client):
        self.http = http

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = self.http.post(path, json=body)
        if response.is_success:
            return response.json()

        try:
            data = response.json()
        except ValueError:
            data = {}
        detail = data.get("detail") if isinstance(data, dict) else None
        raise SignatureApiError(
            response.status_code,
            detail if isinstance(detail, str) else (response.text or response.reason_phrase),
            data.get("code") if isinstance(data, dict) else None,
        )

    def sign_request(self, worker_id: str, pin: str, request_id: str,
                     metadata: Optional[Dict[str, Any]] = None, offline: bool = False) -> Dict[str, Any]:
        return self._post("/signatures", {
            "workerId": worker_id,
            "pin": pin,
            "requestId": request_id,
            "metadata": metadata,
            "offline": offline,
        })

    def sign_target(self, worker_id: str, pin: str, target_type: str, target_id: str,
                    target_title: str = "", survey_answers=None,
                    metadata: Optional[Dict[str, Any]] = None, offline: bool = False) -> Dict[str, Any]:
        return self._post("/signatures/targets", {
            "workerId": worker_id,
            "pin": pin,
            "targetType": target_type,
            "targetId": target_id,
            "targetTitle": target_title,
            "surveyAnswers": survey_answers,
            "metadata": metadata,
            "offline": offline,
        })

    def submit_batch(self, draft: OfflineRequestDraft) -> Dict[str, Any]:
        """Envía una solicitud armada offline; el id local del borrador viaja como batchId."""
        return self._post("/signature-requests/offline-batch", {
            "batchId": draft.id,
            "tipo": draft.tipo,
            "titulo": draft.titulo,
            "descripcion": draft.descripcion,
            "ubicacion": draft.ubicacion,
            "solicitanteId": draft.solicitante_id,
            "firmasOffline": [
                {"rut": f.rut, "pin": f.pin, "nombre": f.nombre, "timestampLocal": f.timestamp_local}
                for f in draft.firmas
            ],
            "fechaCreacionOffline": draft.fecha_creacion,
        })

    def submit(self, item: OfflineSignatureItem, offline: bool = False) -> Dict[str, Any]:
        """Envía un item por el endpoint en línea que corresponde a su tipo."""
        if item.type == QueueItemType.solicitud:
            return self.sign_request(item.worker_id, item.pin, item.target_id,
                                     metadata=item.metadata, offline=offline)
        return self.sign_target(
            item.worker_id, item.pin, item.type.value, item.target_id,
            target_title=item.target_title,
            survey_answers=item.survey_answers,
            metadata=item.metadata,
            offline=offline,
        )
