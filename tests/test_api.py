from sqlalchemy.exc import OperationalError

from .conftest import DAY, NEXT_DAY


def _free_block(client, facility_id):
    blocks = client.get(f"/bloques/instalacion/{facility_id}/disponibilidad/{DAY.isoformat()}").json()
    return next(b for b in blocks if b["disponible"])


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_generate_range_and_availability(client, seed):
    r = client.post(
        "/bloques/generar-rango",
        json={"instalacionId": seed["standard"], "fechaInicio": "2024-11-20", "fechaFin": "2024-11-21"},
    )
    assert r.status_code == 200
    assert r.json()["creados"] == 10

    blocks = client.get(f"/bloques/instalacion/{seed['standard']}/disponibilidad/2024-11-20").json()
    assert [b["bloque"] for b in blocks] == [1, 2, 3, 4, 5]
    assert blocks[0]["hora_inicio"] == "08:00:00"
    assert all(b["disponible"] for b in blocks)


def test_generate_week(client, seed):
    r = client.post("/bloques/generar-semana", json={"instalacion_id": seed["standard"], "fecha": "2024-11-20"})

    body = r.json()
    assert body["creados"] == 35
    assert body["fecha_inicio"] == "2024-11-18"
    assert body["fecha_fin"] == "2024-11-24"


def test_generate_errors(client, seed):
    r = client.post(
        "/bloques/generar-rango",
        json={"instalacion_id": seed["standard"], "fecha_inicio": "2024-11-21", "fecha_fin": "2024-11-20"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"

    r = client.post(
        "/bloques/generar-rango",
        json={"instalacion_id": 9999, "fecha_inicio": "2024-11-20", "fecha_fin": "2024-11-20"},
    )
    assert r.status_code == 404


def test_book_conflict_and_cancel(client, blocks, seed):
    block = _free_block(client, seed["standard"])

    r = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": block["id"]})
    assert r.status_code == 201
    booking = r.json()
    assert booking["estado"] == "CONFIRMED"
    assert booking["pago"] is None
    assert booking["instalacion_nombre"] == "Cancha 1"

    r = client.post("/reservas", json={"usuario_id": seed["other_user"], "instalacion_bloque_id": block["id"]})
    assert r.status_code == 409
    assert r.json()["error"] == "Unavailable"

    r = client.delete(f"/reservas/{booking['id']}")
    assert r.status_code == 200
    assert r.json()["reserva"]["estado"] == "CANCELLED"
    assert client.get(f"/bloques/instancia/{block['id']}/estado").json() == {"id": block["id"], "disponible": True}


def test_reservation_reads(client, blocks, seed):
    block = _free_block(client, seed["standard"])
    created = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": block["id"]}).json()

    assert client.get(f"/reservas/{created['id']}").json()["instancia_id"] == block["id"]
    assert [r["id"] for r in client.get("/reservas").json()] == [created["id"]]
    assert client.get(f"/reservas/usuario/{seed['user']}/fecha/{DAY.isoformat()}").json() == {
        "usuario_id": seed["user"],
        "fecha": DAY.isoformat(),
        "total": 1,
        "limite": 5,
    }
    assert client.get("/reservas/9999").status_code == 404


def test_quota_exceeded(client, blocks, seed):
    for instance_id in blocks("standard"):
        assert client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": instance_id}).status_code == 201

    r = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("premium")[0]})

    assert r.status_code == 400
    assert r.json()["error"] == "QuotaExceeded"
    assert r.json()["details"] == {"limit": 5, "count": 5}


def test_modify_reservation(client, blocks, seed):
    old, new = blocks("standard")[:2]
    created = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": old}).json()

    r = client.patch(f"/reservas/{created['id']}", json={"instancia_id": new})

    assert r.status_code == 200
    assert r.json()["instancia_id"] == new
    assert client.get(f"/bloques/instancia/{old}/estado").json()["disponible"] is True


def test_patch_rejects_other_fields(client, blocks, seed):
    created = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("standard")[0]}).json()

    r = client.put(f"/reservas/{created['id']}", json={"instancia_id": blocks("standard")[1], "estado": "CONFIRMED"})

    assert r.status_code == 422
    assert client.get(f"/reservas/{created['id']}").json()["instancia_id"] == blocks("standard")[0]


def test_premium_payment_flow(client, blocks, seed, notifier):
    r = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("premium")[0]})
    assert r.status_code == 201
    booking = r.json()
    assert booking["estado"] == "PENDING_PAYMENT"
    token = booking["pago"]["token"]

    r = client.post("/pagos/confirmar", data={"token_ws": token})

    assert r.status_code == 200
    assert r.json() == {
        "token": token,
        "estado_pago": "completed",
        "reserva_id": booking["id"],
        "estado_reserva": "CONFIRMED",
    }
    assert len(notifier.sent) == 1
    # repeated redirect of the browser
    assert client.get("/pagos/confirmar", params={"token_ws": token}).json()["estado_reserva"] == "CONFIRMED"


def test_rejected_payment_callback(client, blocks, seed, gateway):
    booking = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("premium")[0]}).json()
    gateway.outcome = "FAILED"

    r = client.get("/pagos/confirmar", params={"token_ws": booking["pago"]["token"]})

    assert r.status_code == 400
    assert r.json()["error"] == "PaymentError"
    assert r.json()["details"]["estado_reserva"] == "FAILED"
    assert client.get(f"/bloques/instancia/{blocks('premium')[0]}/estado").json()["disponible"] is True


def test_aborted_payment_callback(client, blocks, seed, gateway):
    booking = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("premium")[0]}).json()

    r = client.post("/pagos/confirmar", json={"TBK_TOKEN": booking["pago"]["token"]})

    assert r.status_code == 400
    assert r.json()["details"]["estado_pago"] == "fallido"
    assert gateway.committed == []


def test_callback_without_token(client):
    r = client.get("/pagos/confirmar")
    assert r.status_code == 400
    assert r.json()["message"] == "token_ws is required"


def test_callback_with_malformed_json(client):
    for body in (b"{bad", b"[\"tok-1\"]", b"\"tok-1\""):
        r = client.post("/pagos/confirmar", content=body, headers={"content-type": "application/json"})
        assert r.status_code == 400
        assert r.json()["error"] == "ValidationError"


def test_start_payment_and_result(client, blocks, seed):
    booking = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("premium")[0]}).json()

    r = client.post("/pagos/iniciar", json={"reserva_id": booking["id"]})
    assert r.status_code == 200
    assert r.json()["url"] == "https://webpay.test/init"

    r = client.get("/pagos/resultado", params={"token_ws": r.json()["token"]})
    assert r.json()["status"] == "AUTHORIZED"


def test_templates_endpoints(client, seed):
    assert [t["bloque"] for t in client.get("/bloques/estandar").json()] == [1, 2, 3, 4, 5]

    r = client.post("/bloques/estandar", json={"bloque": 6, "horaInicio": "12:10", "horaFin": "12:55"})
    assert r.status_code == 201
    template_id = r.json()["id"]

    r = client.put(f"/bloques/estandar/{template_id}", json={"hora_inicio": "12:15", "hora_fin": "13:00"})
    assert r.json()["hora_inicio"] == "12:15:00"

    assert client.delete(f"/bloques/estandar/{template_id}").status_code == 204
    assert client.delete(f"/bloques/estandar/{template_id}").status_code == 404


def test_admin_hold_endpoints(client, blocks, seed, registry):
    template_id = registry.list_templates()[0].id
    path = f"/bloques/instalacion/{seed['standard']}/bloquear"

    r = client.post(path, json={"bloque_tiempo_id": template_id, "fecha": DAY.isoformat()})
    assert r.json()["disponible"] is False
    assert client.post(path, json={"bloque_tiempo_id": template_id, "fecha": DAY.isoformat()}).status_code == 409

    r = client.delete(f"{path}/{template_id}", params={"fecha": DAY.isoformat()})
    assert r.json()["disponible"] is True


def test_facility_blocks(client, blocks, seed):
    client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("standard", NEXT_DAY)[0]})

    r = client.get(f"/bloques/instalacion/{seed['standard']}")

    assert r.status_code == 200
    listed = r.json()
    assert [(b["fecha"], b["bloque"]) for b in listed] == [
        (day.isoformat(), slot) for day in (DAY, NEXT_DAY) for slot in range(1, 6)
    ]
    assert [b["disponible"] for b in listed].count(False) == 1
    assert listed[5]["disponible"] is False
    assert client.get("/bloques/instalacion/9999").status_code == 404


def test_block_status_by_template_and_date(client, blocks, seed, registry):
    template_id = registry.list_templates()[1].id
    path = f"/bloques/instalacion/{seed['standard']}/bloque/{template_id}/estado/{DAY.isoformat()}"

    r = client.get(path)
    assert r.status_code == 200
    assert r.json()["id"] == blocks("standard")[1]
    assert r.json()["disponible"] is True

    client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("standard")[1]})
    assert client.get(path).json()["disponible"] is False

    r = client.get(f"/bloques/instalacion/{seed['standard']}/bloque/{template_id}/estado/2030-01-01")
    assert r.status_code == 404
    assert r.json()["error"] == "NotFound"


def test_storage_failure_is_a_json_500(client, blocks, seed, store, monkeypatch):
    def broken_reserve(instance_id):
        raise OperationalError("UPDATE facility_block_instance", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store, "reserve", broken_reserve)

    r = client.post("/reservas", json={"usuario_id": seed["user"], "instancia_id": blocks("standard")[0]})

    assert r.status_code == 500
    assert r.json()["error"] == "InternalError"
    assert "disk I/O" not in r.json()["message"]
