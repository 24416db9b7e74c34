"""
Solicitudes armadas sin conexión (charla en terreno).

El prevencionista crea la solicitud offline, cada asistente firma con RUT y
PIN, y al volver la conexión el borrador completo se envía como un lote a
``/signature-requests/offline-batch``. El id local del borrador viaja como
``batchId``: si el servidor ya lo procesó responde BATCH_ALREADY_PROCESSED y
el borrador se da por sincronizado, así que reenviar nunca duplica.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx

from modules.offline.client import SignatureApiClient, SignatureApiError
from modules.offline.connectivity import ConnectivityMonitor
from modules.offline.models import (
    BatchSyncResult, BatchSyncStatus, CollectedSignature, OfflineRequestDraft,
)
from modules.offline.queue import is_ambiguous
from modules.offline.store import OfflineQueueStore

logger = logging.getLogger(__name__)

BATCH_ALREADY_PROCESSED = "BATCH_ALREADY_PROCESSED"

_EDITABLE = {BatchSyncStatus.pending, BatchSyncStatus.error}


class OfflineRequestQueue:

    def __init__(self, client: SignatureApiClient, store: OfflineQueueStore,
                 monitor: Optional[ConnectivityMonitor] = None):
        self.client = client
        self.store = store
        self.monitor = monitor
        self._sync_lock = threading.Lock()
        self._drafts: List[OfflineRequestDraft] = self._load()
        self._unsubscribe = monitor.subscribe(self._on_online) if monitor else None

    def _load(self) -> List[OfflineRequestDraft]:
        drafts = self.store.load()
        stuck = [d for d in drafts if d.sync_status == BatchSyncStatus.syncing]
        for draft in stuck:
            draft.sync_status = BatchSyncStatus.pending
        if stuck:
            logger.warning("%d solicitudes offline en syncing vuelven a pending", len(stuck))
            self.store.save(drafts)
        return drafts

    def _save(self) -> None:
        self.store.save(self._drafts)

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online if self.monitor else True

    @property
    def drafts(self) -> List[OfflineRequestDraft]:
        return list(self._drafts)

    @property
    def pending(self) -> List[OfflineRequestDraft]:
        return [d for d in self._drafts if d.sync_status in _EDITABLE]

    @property
    def pending_signatures_count(self) -> int:
        return sum(len(d.firmas) for d in self.pending)

    def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def get(self, draft_id: str) -> Optional[OfflineRequestDraft]:
        return next((d for d in self._drafts if d.id == draft_id), None)

    def _editable(self, draft_id: str) -> OfflineRequestDraft:
        draft = self.get(draft_id)
        if draft is None:
            raise KeyError(draft_id)
        if draft.sync_status not in _EDITABLE:
            raise ValueError(f"La solicitud {draft_id} ya fue enviada")
        return draft

    def create_request(self, tipo: str, titulo: str, solicitante_id: str, solicitante_nombre: str = "",
                       descripcion: str = "", ubicacion: str = "") -> OfflineRequestDraft:
        draft = OfflineRequestDraft(
            tipo=tipo,
            titulo=titulo,
            solicitante_id=solicitante_id,
            solicitante_nombre=solicitante_nombre,
            descripcion=descripcion,
            ubicacion=ubicacion,
        )
        self._drafts.append(draft)
        self._save()
        logger.info("Solicitud offline %s creada (%s)", draft.id, tipo)
        return draft

    def add_signature(self, draft_id: str, rut: str, pin: str,
                      nombre: Optional[str] = None) -> CollectedSignature:
        draft = self._editable(draft_id)
        firma = CollectedSignature(rut=rut, pin=pin, nombre=nombre)
        draft.firmas.append(firma)
        self._save()
        return firma

    def remove_signature(self, draft_id: str, signature_id: str) -> bool:
        draft = self._editable(draft_id)
        before = len(draft.firmas)
        draft.firmas = [f for f in draft.firmas if f.id != signature_id]
        if len(draft.firmas) == before:
            return False
        self._save()
        return True

    def delete(self, draft_id: str) -> bool:
        before = len(self._drafts)
        self._drafts = [d for d in self._drafts if d.id != draft_id]
        if len(self._drafts) == before:
            return False
        self._save()
        return True

    def _mark_synced(self, draft: OfflineRequestDraft, data: Optional[dict]) -> None:
        draft.sync_status = BatchSyncStatus.synced
        draft.synced_at = datetime.now(timezone.utc).isoformat()
        draft.sync_error = None
        if data is not None:
            draft.server_request_id = data.get("requestId")
            draft.resultados_firmas = data.get("resultadosFirmas")
        for firma in draft.firmas:
            firma.pin = ""

    def sync_one(self, draft_id: str) -> BatchSyncResult:
        """Envía un borrador. Los errores de red se propagan como httpx.TransportError."""
        draft = self.get(draft_id)
        if draft is None:
            return BatchSyncResult(draft_id=draft_id, success=False, error="Solicitud no encontrada")
        if not draft.firmas:
            return BatchSyncResult(draft_id=draft_id, success=False, error="La solicitud no tiene firmas")

        draft.sync_status = BatchSyncStatus.syncing
        self._save()
        logger.info("Sincronizando solicitud offline %s con %d firmas", draft.id, len(draft.firmas))

        try:
            data = self.client.submit_batch(draft)
        except httpx.TransportError:
            draft.sync_status = BatchSyncStatus.pending
            self._save()
            raise
        except SignatureApiError as exc:
            if exc.code == BATCH_ALREADY_PROCESSED:
                logger.info("Solicitud offline %s ya estaba sincronizada", draft.id)
                self._mark_synced(draft, None)
                self._save()
                return BatchSyncResult(draft_id=draft.id, success=True)
            if is_ambiguous(exc):
                draft.sync_status = BatchSyncStatus.pending
            else:
                draft.sync_status = BatchSyncStatus.error
                draft.intentos += 1
            draft.sync_error = exc.message
            self._save()
            logger.warning("Solicitud offline %s no sincronizada (%s): %s", draft.id, exc.code, exc.message)
            return BatchSyncResult(draft_id=draft.id, success=False, error=exc.message, code=exc.code)
        except ValueError as exc:
            draft.sync_status = BatchSyncStatus.pending
            draft.sync_error = str(exc)
            self._save()
            return BatchSyncResult(draft_id=draft.id, success=False, error=str(exc))

        self._mark_synced(draft, data)
        self._save()
        logger.info("Solicitud offline %s sincronizada: %s/%d firmas válidas",
                    draft.id, data.get("firmasValidas"), len(draft.firmas))
        return BatchSyncResult(
            draft_id=draft.id,
            success=True,
            server_request_id=draft.server_request_id,
            signature_results=draft.resultados_firmas,
        )

    def sync_all(self) -> List[BatchSyncResult]:
        """Envía los borradores pendientes en orden. No es re-entrante."""
        if not self.is_online:
            return []
        if not self._sync_lock.acquire(blocking=False):
            logger.info("Sincronización de solicitudes offline ya en curso")
            return []

        results = []
        try:
            for draft in self.pending:
                try:
                    results.append(self.sync_one(draft.id))
                except httpx.TransportError as exc:
                    logger.warning("Sin red al sincronizar %s: %s", draft.id, exc)
                    results.append(BatchSyncResult(draft_id=draft.id, success=False, error=str(exc)))
                    break
        finally:
            self._sync_lock.release()

        fallidas = [r for r in results if not r.success]
        if fallidas:
            logger.warning("%d solicitud(es) offline no se pudieron sincronizar", len(fallidas))
        return results

    def cleanup_synced(self, days_old: int = 7, now: Optional[datetime] = None) -> int:
        """Borra del almacenamiento local las solicitudes ya sincronizadas hace más de ``days_old`` días."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_old)
        keep, deleted = [], 0
        for draft in self._drafts:
            if (draft.sync_status == BatchSyncStatus.synced and draft.synced_at
                    and datetime.fromisoformat(draft.synced_at) < cutoff):
                deleted += 1
            else:
                keep.append(draft)
        if deleted:
            self._drafts = keep
            self._save()
        return deleted

    def _on_online(self) -> None:
        self.sync_all()
