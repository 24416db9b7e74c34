"""
Cola de firmas offline del lado cliente.

Cada item pasa PENDING -> SYNCING -> (eliminado | PENDING). Solo se elimina
con una respuesta explícita de éxito, o con ALREADY_SIGNED, que para una
re-ejecución de la misma firma significa que ya quedó registrada. Cualquier
resultado ambiguo deja el item pendiente para no perder la firma.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

import httpx

from modules.offline.client import SignatureApiClient, SignatureApiError
from modules.offline.connectivity import ConnectivityMonitor
from modules.offline.models import (
    OfflineSignatureItem, QueueItemType, SignOutcome, SyncReport, SyncStatus,
)
from modules.offline.store import OfflineQueueStore

logger = logging.getLogger(__name__)

_NETWORK_MARKERS = (
    "failed to fetch",
    "networkerror",
    "network",
    "fetch",
    "err_name_not_resolved",
    "err_internet_disconnected",
    "timed out",
    "connection refused",
)

ALREADY_SIGNED = "ALREADY_SIGNED"


def is_network_error_message(message: Optional[str]) -> bool:
    msg = (message or "").lower()
    return any(marker in msg for marker in _NETWORK_MARKERS)


def is_ambiguous(exc: SignatureApiError) -> bool:
    # 5xx sin código de dominio: no se sabe si la firma quedó registrada
    return is_network_error_message(exc.message) or (exc.status_code >= 500 and exc.code is None)


class OfflineSignatureQueue:

    def __init__(self, client: SignatureApiClient, store: OfflineQueueStore,
                 monitor: Optional[ConnectivityMonitor] = None):
        self.client = client
        self.store = store
        self.monitor = monitor
        self._sync_lock = threading.Lock()
        self._items_lock = threading.Lock()
        self._items: List[OfflineSignatureItem] = self._load()
        self._unsubscribe = monitor.subscribe(self._on_online) if monitor else None

    def _load(self) -> List[OfflineSignatureItem]:
        items = self.store.load()
        stuck = [i for i in items if i.sync_status == SyncStatus.SYNCING]
        for item in stuck:
            # quedó a medio sincronizar (cierre inesperado)
            item.sync_status = SyncStatus.PENDING
        if stuck:
            logger.warning("%d firmas offline en SYNCING vuelven a PENDING", len(stuck))
            self.store.save(items)
        return items

    def _save(self) -> None:
        self.store.save(self._items)

    @property
    def items(self) -> List[OfflineSignatureItem]:
        return list(self._items)

    @property
    def pending_count(self) -> int:
        return len(self._items)

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online if self.monitor else True

    def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def enqueue(self, item: OfflineSignatureItem) -> OfflineSignatureItem:
        item.sync_status = SyncStatus.PENDING
        with self._items_lock:
            self._items = self._items + [item]
        self._save()
        logger.info("Firma %s %s de %s guardada offline", item.type.value, item.target_id, item.worker_id)
        return item

    def _drop(self, item_id: str) -> bool:
        with self._items_lock:
            before = len(self._items)
            self._items = [i for i in self._items if i.id != item_id]
            return len(self._items) != before

    def discard(self, item_id: str) -> bool:
        if not self._drop(item_id):
            return False
        self._save()
        logger.info("Firma offline %s descartada", item_id)
        return True

    def sign(
        self,
        item_type: QueueItemType,
        target_id: str,
        worker_id: str,
        pin: str,
        target_title: str = "",
        worker_name: str = "",
        survey_answers: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SignOutcome:
        """
        Firma en línea si hay conexión; si no, o si falla la red, la deja en
        la cola y responde success=True, offline=True.
        """
        item = OfflineSignatureItem(
            type=item_type,
            target_id=target_id,
            target_title=target_title,
            worker_id=worker_id,
            worker_name=worker_name,
            pin=pin,
            survey_answers=survey_answers,
            metadata=metadata,
        )

        if not self.is_online:
            return SignOutcome(success=True, offline=True, item=self.enqueue(item))

        try:
            data = self.client.submit(item)
        except httpx.TransportError as exc:
            logger.warning("Error de red al firmar, se guarda offline: %s", exc)
            return SignOutcome(success=True, offline=True, item=self.enqueue(item))
        except SignatureApiError as exc:
            if is_network_error_message(exc.message):
                return SignOutcome(success=True, offline=True, item=self.enqueue(item))
            return SignOutcome(success=False, offline=False, error=exc.message, code=exc.code)

        return SignOutcome(success=True, offline=False, data=data)

    def sync(self) -> SyncReport:
        """Re-envía en orden los items PENDING. No es re-entrante."""
        if not self.is_online:
            return SyncReport(pending=self.pending_count, skipped=True)
        if not self._sync_lock.acquire(blocking=False):
            logger.info("Sincronización offline ya en curso")
            return SyncReport(pending=self.pending_count, skipped=True)

        report = SyncReport()
        try:
            for item in [i for i in self._items if i.sync_status == SyncStatus.PENDING]:
                item.sync_status = SyncStatus.SYNCING
                self._save()

                try:
                    self.client.submit(item, offline=True)
                except httpx.TransportError as exc:
                    logger.warning("Sin red al sincronizar %s: %s", item.id, exc)
                    item.sync_status = SyncStatus.PENDING
                    report.failed += 1
                    self._save()
                    # se perdió la conexión, el resto quedaría igual
                    break
                except SignatureApiError as exc:
                    if exc.code == ALREADY_SIGNED:
                        logger.info("Firma offline %s ya estaba registrada, se elimina", item.id)
                        self._drop(item.id)
                        report.already_signed += 1
                    elif is_ambiguous(exc):
                        item.sync_status = SyncStatus.PENDING
                        report.failed += 1
                    else:
                        item.sync_status = SyncStatus.PENDING
                        item.intentos += 1
                        item.ultimo_error = exc.message
                        report.failed += 1
                        logger.warning("Firma offline %s rechazada (%s): %s", item.id, exc.code, exc.message)
                    self._save()
                    continue
                except ValueError as exc:
                    # 2xx sin JSON válido
                    logger.warning("Respuesta ambigua al sincronizar %s: %s", item.id, exc)
                    item.sync_status = SyncStatus.PENDING
                    report.failed += 1
                    self._save()
                    continue

                self._drop(item.id)
                report.synced += 1
                self._save()
        finally:
            self._sync_lock.release()

        report.pending = self.pending_count
        logger.info("Sincronización offline: %d ok, %d ya firmadas, %d fallidas, %d pendientes",
                    report.synced, report.already_signed, report.failed, report.pending)
        return report

    def _on_online(self) -> None:
        self.sync()
