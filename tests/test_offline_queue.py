import json
import os

import httpx
import pytest

from conftest import OTRO_PIN, PIN
from modules.offline.client import SignatureApiClient
from modules.offline.connectivity import ConnectivityMonitor
from modules.offline.models import OfflineSignatureItem, QueueItemType, SyncStatus
from modules.offline.queue import OfflineSignatureQueue, is_network_error_message
from modules.offline.store import OfflineQueueStore
from modules.signature_requests.services.signature_request_service import SignatureRequestService
from modules.signatures.models.signature import Signature


@pytest.fixture
def store(tmp_path):
    return OfflineQueueStore(tmp_path / "firmas_offline.json")


@pytest.fixture
def firmante(make_worker, enroll):
    worker = make_worker()
    enroll(worker.worker_id)
    return worker


@pytest.fixture
def solicitud(session, solicitante, firmante):
    return SignatureRequestService.create(session, "CHARLA_5MIN", "Charla matinal", [],
                                          [firmante.worker_id], solicitante.user_id)


def _http_sin_red():
    def handler(request):
        raise httpx.ConnectError("[Errno 101] Network is unreachable", request=request)
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://api.local")


def _http_con_respuesta(status_code, body):
    return httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(status_code, json=body)),
                        base_url="http://api.local")


def test_dos_firmas_offline_del_mismo_objetivo(session, client, store, firmante, solicitud):
    monitor = ConnectivityMonitor(online=False)
    queue = OfflineSignatureQueue(SignatureApiClient(client), store, monitor)

    r1 = queue.sign(QueueItemType.solicitud, solicitud.request_id, firmante.worker_id, PIN)
    r2 = queue.sign(QueueItemType.solicitud, solicitud.request_id, firmante.worker_id, PIN)
    assert r1.success and r1.offline
    assert r2.success and r2.offline
    assert queue.pending_count == 2

    # volver la conexión dispara la sincronización
    monitor.set_online(True)

    assert queue.pending_count == 0
    assert store.load() == []
    firmas = session.query(Signature).filter(Signature.request_id == solicitud.request_id).all()
    assert len(firmas) == 1
    assert firmas[0].offline is True


def test_archivo_de_cola_privado_y_en_camel_case(client, store, firmante):
    queue = OfflineSignatureQueue(SignatureApiClient(client), store, ConnectivityMonitor(online=False))
    queue.sign(QueueItemType.documento, "doc-1", firmante.worker_id, PIN, target_title="Reglamento",
               worker_name="Juan Test")

    assert os.stat(store.path).st_mode & 0o777 == 0o600
    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert data[0]["targetId"] == "doc-1"
    assert data[0]["syncStatus"] == "PENDING"
    assert data[0]["workerName"] == "Juan Test"
    assert data[0]["synced"] is False


def test_error_de_red_al_firmar_encola(session, client, store, firmante, solicitud):
    sin_red = OfflineSignatureQueue(SignatureApiClient(_http_sin_red()), store)
    outcome = sin_red.sign(QueueItemType.solicitud, solicitud.request_id, firmante.worker_id, PIN)
    assert outcome.success is True
    assert outcome.offline is True
    assert outcome.item is not None

    # otra sesión del cliente, ya con red
    con_red = OfflineSignatureQueue(SignatureApiClient(client), store)
    report = con_red.sync()
    assert report.synced == 1
    assert report.pending == 0
    assert session.query(Signature).filter(Signature.request_id == solicitud.request_id).count() == 1


def test_firma_en_linea(client, store, firmante, solicitud):
    queue = OfflineSignatureQueue(SignatureApiClient(client), store, ConnectivityMonitor(online=True))
    outcome = queue.sign(QueueItemType.solicitud, solicitud.request_id, firmante.worker_id, PIN)
    assert outcome.success is True
    assert outcome.offline is False
    assert outcome.data["estado"] == "completada"
    assert queue.pending_count == 0


def test_rechazo_en_linea_no_se_encola(client, store, firmante, solicitud):
    queue = OfflineSignatureQueue(SignatureApiClient(client), store)
    outcome = queue.sign(QueueItemType.solicitud, solicitud.request_id, firmante.worker_id, OTRO_PIN)
    assert outcome.success is False
    assert outcome.code == "INVALID_PIN"
    assert queue.pending_count == 0


def test_rechazo_al_sincronizar_queda_pendiente_con_error(client, store, firmante, solicitud):
    monitor = ConnectivityMonitor(online=False)
    queue = OfflineSignatureQueue(SignatureApiClient(client), store, monitor)
    queue.sign(QueueItemType.solicitud, solicitud.request_id, firmante.worker_id, OTRO_PIN)

    monitor.set_online(True)
    [item] = queue.items
    assert item.sync_status == SyncStatus.PENDING
    assert item.intentos == 1
    assert item.ultimo_error == "PIN incorrecto"

    report = queue.sync()
    assert report.failed == 1
    assert queue.items[0].intentos == 2

    assert queue.discard(item.id) is True
    assert queue.discard(item.id) is False
    assert store.load() == []


def test_respuesta_ambigua_no_elimina_ni_cuenta_intento(store):
    item = OfflineSignatureItem(type=QueueItemType.solicitud, target_id="r1", worker_id="w1", pin=PIN)
    store.save([item])

    for http in (_http_con_respuesta(503, {"detail": "Network is unreachable"}),
                 _http_con_respuesta(500, {"detail": "Internal Server Error"})):
        queue = OfflineSignatureQueue(SignatureApiClient(http), store)
        report = queue.sync()
        assert report.failed == 1
        [pendiente] = queue.items
        assert pendiente.sync_status == SyncStatus.PENDING
        assert pendiente.intentos == 0


def test_error_con_mensaje_de_red_al_firmar_encola(store):
    queue = OfflineSignatureQueue(SignatureApiClient(_http_con_respuesta(502, {"detail": "Failed to fetch"})), store)
    outcome = queue.sign(QueueItemType.actividad, "act-1", "w1", PIN)
    assert outcome.offline is True
    assert queue.pending_count == 1


def test_items_en_syncing_vuelven_a_pending_al_cargar(store):
    atascado = OfflineSignatureItem(type=QueueItemType.encuesta, target_id="enc-1", worker_id="w1", pin=PIN,
                                    sync_status=SyncStatus.SYNCING, survey_answers=[{"p": 1}])
    store.save([atascado])

    queue = OfflineSignatureQueue(SignatureApiClient(_http_sin_red()), store, ConnectivityMonitor(online=False))
    assert queue.items[0].sync_status == SyncStatus.PENDING
    assert store.load()[0].sync_status == SyncStatus.PENDING
    assert store.load()[0].survey_answers == [{"p": 1}]


def test_sync_no_es_reentrante(store):
    queue = OfflineSignatureQueue(SignatureApiClient(_http_sin_red()), store)
    queue._sync_lock.acquire()
    try:
        assert queue.sync().skipped is True
    finally:
        queue._sync_lock.release()


def test_sync_sin_conexion_no_hace_nada(store):
    item = OfflineSignatureItem(type=QueueItemType.documento, target_id="doc-1", worker_id="w1", pin=PIN)
    store.save([item])
    queue = OfflineSignatureQueue(SignatureApiClient(_http_sin_red()), store, ConnectivityMonitor(online=False))
    report = queue.sync()
    assert report.skipped is True
    assert report.pending == 1


def test_documento_offline_se_sincroniza_por_targets(session, client, store, firmante):
    monitor = ConnectivityMonitor(online=False)
    queue = OfflineSignatureQueue(SignatureApiClient(client), store, monitor)
    queue.sign(QueueItemType.documento, "doc-7", firmante.worker_id, PIN, target_title="Procedimiento")
    queue.sign(QueueItemType.encuesta, "enc-3", firmante.worker_id, PIN, survey_answers=[{"p": "1", "r": "si"}])

    monitor.set_online(True)
    assert queue.pending_count == 0

    documento = session.query(Signature).filter(Signature.referencia_id == "doc-7").one()
    assert documento.tipo_firma == "documento"
    encuesta = session.query(Signature).filter(Signature.referencia_id == "enc-3").one()
    assert encuesta.extra_metadata["respuestas"] == [{"p": "1", "r": "si"}]


def test_monitor_avisa_solo_al_volver_la_conexion():
    monitor = ConnectivityMonitor(online=True)
    llamadas = []
    unsubscribe = monitor.subscribe(lambda: llamadas.append(1))

    monitor.set_online(True)
    monitor.set_online(False)
    monitor.set_online(True)
    assert llamadas == [1]

    unsubscribe()
    monitor.set_online(False)
    monitor.set_online(True)
    assert llamadas == [1]


def test_chequeo_de_salud(client):
    monitor = ConnectivityMonitor(online=False)
    assert monitor.check_health(client) is True
    assert monitor.is_online is True
    assert monitor.check_health(_http_sin_red()) is False
    assert monitor.is_online is False


@pytest.mark.parametrize("mensaje,esperado", [
    ("TypeError: Failed to fetch", True),
    ("net::ERR_INTERNET_DISCONNECTED", True),
    ("PIN incorrecto", False),
    (None, False),
])
def test_mensajes_de_red(mensaje, esperado):
    assert is_network_error_message(mensaje) is esperado


class _ClienteQueDescarta:
    """Durante el envío el usuario descarta el mismo item desde otra pantalla."""

    def __init__(self):
        self.queue = None

    def submit(self, item, offline=False):
        assert self.queue.discard(item.id) is True
        return {"signatureId": "s-1"}


def test_descartar_durante_la_sincronizacion(store):
    item = OfflineSignatureItem(type=QueueItemType.documento, target_id="doc-1", worker_id="w1", pin=PIN)
    otro = OfflineSignatureItem(type=QueueItemType.documento, target_id="doc-2", worker_id="w1", pin=PIN)
    store.save([item, otro])

    cliente = _ClienteQueDescarta()
    queue = OfflineSignatureQueue(cliente, store)
    cliente.queue = queue

    report = queue.sync()
    assert report.synced == 2
    assert queue.pending_count == 0
    assert store.load() == []
