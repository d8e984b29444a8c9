from __future__ import annotations

import pytest

from app.core.errors import NotFoundError
from app.core.extensions import db
from app.core.models import Notificacion, NotificacionTipo, Pedido
from app.notificaciones.services import Notifier, list_notificaciones, mark_all_read, mark_read, unread_count


def test_notifier_targets_active_recipients_only(app, users, pedido_por_codigo):
    users["diseno"].is_active = False
    db.session.commit()
    pedido = pedido_por_codigo("NL-00002")

    enviados = Notifier(db.session).pedido_creado(pedido)

    assert enviados == 2
    destinatarios = {n.usuario_id for n in Notificacion.query.filter_by(tipo=NotificacionTipo.NUEVO_PEDIDO)}
    assert destinatarios == {users["admin"].id, users["tecnico"].id}


def test_clinic_notifications_skip_other_clinics(app, users, pedido_por_codigo):
    notifier = Notifier(db.session)
    assert notifier.pedido_enviado(pedido_por_codigo("NL-00003")) == 1
    aviso = Notificacion.query.filter_by(tipo=NotificacionTipo.ENVIADO).one()
    assert aviso.usuario_id == users["maria"].id
    assert aviso.titulo == "Pedido Enviado"
    assert "NL-00003" in aviso.mensaje


def test_inbox_newest_first_and_unread_filter(app, users, pedido_por_codigo):
    roberto = users["roberto"].id
    notifier = Notifier(db.session)
    notifier.diseno_listo(pedido_por_codigo("NL-00002"))
    notifier.pedido_enviado(pedido_por_codigo("NL-00001"))

    bandeja = list_notificaciones(roberto)
    assert [n.tipo for n in bandeja] == [NotificacionTipo.ENVIADO, NotificacionTipo.APROBACION]
    assert unread_count(roberto) == 2

    mark_read(bandeja[0].id, roberto)
    assert unread_count(roberto) == 1
    assert [n.tipo for n in list_notificaciones(roberto, solo_no_leidas=True)] == [NotificacionTipo.APROBACION]
    assert len(list_notificaciones(roberto, limit=1)) == 1


def test_mark_read_is_scoped_to_owner(app, users):
    admin_aviso = Notificacion.query.filter_by(usuario_id=users["admin"].id).first()
    with pytest.raises(NotFoundError):
        mark_read(admin_aviso.id, users["roberto"].id)
    assert mark_all_read(users["roberto"].id) == 0
    assert mark_all_read(users["admin"].id) == 1
    assert unread_count(users["admin"].id) == 0


def test_inbox_endpoints(client, login_admin):
    login_admin()
    data = client.get("/api/notificaciones").get_json()
    assert data["no_leidas"] == 1
    aviso = data["items"][0]
    assert aviso["titulo"] == "Bienvenido a NewLab"
    assert aviso["tipo"] == "sistema"

    response = client.patch(f"/api/notificaciones/{aviso['id']}/leer")
    assert response.status_code == 200
    assert response.get_json()["leida"] is True
    assert client.get("/api/notificaciones?no_leidas=true").get_json()["items"] == []
    assert client.patch("/api/notificaciones/leer-todas").get_json() == {"actualizadas": 0}
    assert client.patch("/api/notificaciones/9999/leer").status_code == 404


def test_transition_notifications_reach_client_inbox(client, login_tecnico, login_cliente, pedido_por_codigo):
    pedido_id = pedido_por_codigo("NL-00001").id
    login_tecnico()
    client.patch(f"/api/pedidos/{pedido_id}/estado", json={"estado": "terminado"})
    client.patch(f"/api/pedidos/{pedido_id}/estado", json={"estado": "enviado"})

    login_cliente()
    data = client.get("/api/notificaciones").get_json()
    assert data["no_leidas"] == 1
    assert data["items"][0]["link"] == f"/pedidos/{pedido_id}"
    assert db.session.get(Pedido, pedido_id).estado.value == "enviado"
