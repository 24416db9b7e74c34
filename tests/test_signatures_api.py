from conftest import OTRO_PIN, PIN, RUTS


def _alta(client, nombre="Juan", rut="12345678-5", **extra):
    resp = client.post("/workers", json={"rut": rut, "nombre": nombre, "cargo": "Operador", **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _enrolar(client, worker_id, pin=PIN):
    resp = client.post(f"/workers/{worker_id}/pin", json={"pin": pin})
    assert resp.status_code == 200, resp.text
    resp = client.post("/signatures/enroll", json={"workerId": worker_id, "pin": pin})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _completar_enrolamiento(client, worker_id):
    resp = client.post("/signatures/enroll", json={"workerId": worker_id, "pin": PIN})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _solicitud(client, solicitante_id, worker_ids, tipo="CHARLA_5MIN", **extra):
    resp = client.post("/signature-requests", json={
        "tipo": tipo,
        "titulo": "Charla de seguridad",
        "trabajadoresIds": worker_ids,
        "solicitanteId": solicitante_id,
        **extra,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_alta_de_trabajador(client):
    data = _alta(client)
    assert data["rut"] == "12.345.678-5"
    assert data["habilitado"] is False
    assert "workerId" in data
    assert "pinHash" not in data


def test_alta_rut_invalido(client):
    resp = client.post("/workers", json={"rut": "12345678-9", "nombre": "X", "cargo": "Y"})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "RUT inválido", "code": "INVALID_RUT", "kind": "VALIDATION"}


def test_alta_rut_repetido(client):
    _alta(client, rut="12.345.678-5")
    resp = client.post("/workers", json={"rut": "123456785", "nombre": "Otro", "cargo": "Y"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "WORKER_EXISTS"


def test_identidad_resuelta(client, linked_pair):
    worker, user = linked_pair
    resp = client.get(f"/workers/{user.user_id}/identity")
    assert resp.status_code == 200
    body = resp.json()
    assert body["resolvedWorkerId"] == worker.worker_id
    assert body["resolvedUserId"] == user.user_id
    assert body["workerFound"] is True


def test_flujo_de_enrolamiento(client):
    worker = _alta(client)
    wid = worker["workerId"]

    assert client.get(f"/workers/{wid}/enrollment").json()["estado"] == "NOT_ENROLLED"

    resp = client.post("/signatures/enroll", json={"workerId": wid, "pin": PIN})
    assert resp.status_code == 409
    assert resp.json()["code"] == "PIN_NOT_SET"

    resp = client.post(f"/workers/{wid}/pin", json={"pin": "1111"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_FORMAT"

    resp = client.post(f"/workers/{wid}/pin", json={"pin": PIN})
    assert resp.status_code == 200
    assert resp.json()["actualizado"] is False

    resp = client.post("/signatures/enroll", json={"workerId": wid, "pin": OTRO_PIN})
    assert resp.status_code == 401
    assert resp.json()["kind"] == "AUTHORIZATION"

    enrolamiento = _completar_enrolamiento(client, wid)
    assert enrolamiento["habilitado"] is True
    assert enrolamiento["token"].startswith("SIG-")

    resp = client.post("/signatures/enroll", json={"workerId": wid, "pin": PIN})
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_ENABLED"

    resp = client.post(f"/workers/{wid}/pin", json={"pin": OTRO_PIN})
    assert resp.status_code == 401
    assert resp.json()["code"] == "WRONG_CURRENT_PIN"


def test_firma_de_solicitud(client, solicitante):
    a = _alta(client, "Ana", "12345678-5")["workerId"]
    b = _alta(client, "Bruno", "9876543-3")["workerId"]
    _enrolar(client, a)
    _enrolar(client, b)
    solicitud = _solicitud(client, solicitante.user_id, [a, b])
    assert solicitud["estado"] == "pendiente"
    assert solicitud["totalRequeridos"] == 2
    assert len(solicitud["trabajadores"]) == 2

    resp = client.post("/signatures", json={"workerId": a, "pin": PIN, "requestId": solicitud["requestId"]},
                       headers={"user-agent": "tablet-faena", "x-forwarded-for": "190.1.2.3, 10.0.0.1"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["estado"] == "en_proceso"
    assert body["solicitud"]["totalFirmados"] == 1

    firma = client.get(f"/signatures/{body['signatureId']}").json()
    assert firma["ipAddress"] == "190.1.2.3"
    assert firma["userAgent"] == "tablet-faena"
    assert firma["requestId"] == solicitud["requestId"]

    resp = client.post("/signatures", json={"workerId": a, "pin": PIN, "requestId": solicitud["requestId"]})
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_SIGNED"

    resp = client.post("/signatures", json={"workerId": b, "pin": OTRO_PIN, "requestId": solicitud["requestId"]})
    assert resp.status_code == 401
    assert resp.json()["code"] == "INVALID_PIN"

    resp = client.post("/signatures", json={"workerId": b, "pin": PIN, "requestId": solicitud["requestId"]})
    assert resp.json()["estado"] == "completada"

    detalle = client.get(f"/signature-requests/{solicitud['requestId']}").json()
    assert detalle["estado"] == "completada"
    assert len(detalle["firmas"]) == 2
    assert all(t["firmado"] for t in detalle["trabajadores"])

    por_request = client.get(f"/signatures/request/{solicitud['requestId']}").json()
    assert len(por_request) == 2


def test_firma_body_incompleto(client):
    resp = client.post("/signatures", json={"workerId": "w", "requestId": "r"})
    assert resp.status_code == 422


def test_solicitud_validaciones(client, solicitante):
    a = _alta(client)["workerId"]
    resp = client.post("/signature-requests", json={
        "tipo": "CAPACITACION", "titulo": "X", "trabajadoresIds": [a], "solicitanteId": solicitante.user_id,
    })
    assert resp.status_code == 400
    assert resp.json()["code"] == "DOCUMENT_REQUIRED"

    resp = client.post("/signature-requests", json={
        "tipo": "CHARLA_5MIN", "titulo": "X", "trabajadoresIds": [], "solicitanteId": solicitante.user_id,
    })
    assert resp.json()["code"] == "NO_WORKERS"

    resp = client.post("/signature-requests", json={
        "tipo": "CHARLA_5MIN", "titulo": "X", "trabajadoresIds": [a], "solicitanteId": "fantasma",
    })
    assert resp.status_code == 404
    assert resp.json()["code"] == "SOLICITANTE_NOT_FOUND"


def test_cancelar_y_firmar(client, solicitante):
    a = _alta(client)["workerId"]
    _enrolar(client, a)
    solicitud = _solicitud(client, solicitante.user_id, [a])

    resp = client.post(f"/signature-requests/{solicitud['requestId']}/cancel", json={"motivo": "Reprogramada"})
    assert resp.status_code == 200
    assert resp.json()["estado"] == "cancelada"
    assert resp.json()["motivoCancelacion"] == "Reprogramada"

    resp = client.post("/signatures", json={"workerId": a, "pin": PIN, "requestId": solicitud["requestId"]})
    assert resp.status_code == 409
    assert resp.json()["code"] == "REQUEST_TERMINAL"

    resp = client.post(f"/signature-requests/{solicitud['requestId']}/cancel")
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_TERMINAL"


def test_historial_y_pendientes(client, solicitante):
    a = _alta(client)["workerId"]
    _enrolar(client, a)
    s1 = _solicitud(client, solicitante.user_id, [a])
    s2 = _solicitud(client, solicitante.user_id, [a])
    client.post("/signatures", json={"workerId": a, "pin": PIN, "requestId": s1["requestId"]})

    pendientes = client.get(f"/signature-requests/pending/{a}").json()
    assert pendientes["total"] == 1
    assert pendientes["pendientes"][0]["requestId"] == s2["requestId"]

    historial = client.get(f"/signature-requests/history/{a}").json()
    assert historial["resolvedWorkerId"] == a
    assert historial["totalFirmas"] == 2

    firmas = client.get(f"/signatures/worker/{a}").json()
    assert firmas["totalFirmas"] == 2
    assert {f["tipoFirma"] for f in firmas["firmas"]} == {"enrolamiento", "solicitud"}
    enrolamiento = next(f for f in firmas["firmas"] if f["tipoFirma"] == "enrolamiento")
    assert enrolamiento["metadata"] == {"tipo": "enrolamiento"}

    stats = client.get("/signature-requests/stats").json()
    assert stats["total"] == 2
    assert stats["completadas"] == 1
    assert stats["porTipo"]["CHARLA_5MIN"]["total"] == 2

    tipos = client.get("/signature-requests/types").json()
    assert {"tipo": "ENTREGA_EPP", "label": "Entrega de EPP", "requiresDoc": True} in tipos


def test_disputa_y_resolucion(client):
    a = _alta(client)["workerId"]
    firma_id = _enrolar(client, a)["signatureId"]

    resp = client.put(f"/signatures/{firma_id}/resolve",
                      json={"resolucion": "x", "resueltoPor": "admin", "nuevoEstado": "valida"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "NOT_DISPUTED"

    resp = client.post(f"/signatures/{firma_id}/dispute", json={"motivo": "No la reconozco", "reportadoPor": a})
    assert resp.status_code == 200
    assert resp.json()["estado"] == "disputada"
    assert resp.json()["disputaInfo"]["motivo"] == "No la reconozco"

    disputas = client.get("/signatures/disputes").json()
    assert [d["signatureId"] for d in disputas] == [firma_id]

    resp = client.put(f"/signatures/{firma_id}/resolve",
                      json={"resolucion": "x", "resueltoPor": "admin", "nuevoEstado": "borrada"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_TARGET_STATE"

    resp = client.put(f"/signatures/{firma_id}/resolve",
                      json={"resolucion": "Suplantación confirmada", "resueltoPor": "admin", "nuevoEstado": "revocada"})
    assert resp.status_code == 200
    assert resp.json()["estado"] == "revocada"

    token = resp.json()["token"]
    verificada = client.get(f"/signatures/verify/{token}").json()
    assert verificada["estado"] == "revocada"

    assert client.get("/signatures/no-existe").status_code == 404


def test_firma_de_objetivo(client):
    a = _alta(client)["workerId"]
    _enrolar(client, a)
    payload = {"workerId": a, "pin": PIN, "targetType": "encuesta", "targetId": "enc-1",
               "targetTitle": "Clima laboral", "surveyAnswers": [{"p": 1, "r": "bien"}]}

    resp = client.post("/signatures/targets", json=payload)
    assert resp.status_code == 201, resp.text
    assert resp.json()["metadata"]["respuestas"] == [{"p": 1, "r": "bien"}]

    resp = client.post("/signatures/targets", json=payload)
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_SIGNED"

    resp = client.post("/signatures/targets", json={**payload, "targetType": "contrato"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_TARGET_TYPE"


def test_alta_con_user_vinculado(client, make_user):
    user = make_user(rut=RUTS[0])
    data = _alta(client, userId=user.user_id)
    identidad = client.get(f"/workers/{user.user_id}/identity").json()
    assert identidad["resolvedWorkerId"] == data["workerId"]
