from __future__ import annotations

from flask import g, jsonify, request
from flask_login import current_user, login_required

from app.core.errors import ValidationError
from app.core.extensions import db
from app.core.models import UsuarioTipo
from app.core.permissions import require_role, require_staff
from app.notificaciones.services import Notifier
from app.pedidos import pedidos_bp
from app.pedidos.repository import PedidoRepository
from app.pedidos.serializers import aprobacion_dict, pedido_detail_dict, pedido_summary
from app.pedidos.services import UNSET, PedidoLifecycle, TransitionOptions


def lifecycle() -> PedidoLifecycle:
    return PedidoLifecycle(PedidoRepository(db.session), Notifier(db.session))


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("body", "Se esperaba un objeto JSON")
    return data


def _detail(engine: PedidoLifecycle, pedido_id: int):
    return jsonify(pedido_detail_dict(engine.pedido_detail(pedido_id, g.clinica_id)))


@pedidos_bp.get("")
@login_required
def list_pedidos():
    pedidos = lifecycle().list_pedidos(request.args.to_dict(), g.clinica_id)
    return jsonify([pedido_summary(pedido) for pedido in pedidos])


@pedidos_bp.post("")
@login_required
def create_pedido():
    data = _payload()
    clinica_id = data.get("clinica_id")
    if g.clinica_id is not None and clinica_id in (None, ""):
        clinica_id = g.clinica_id
    engine = lifecycle()
    pedido = engine.create_order(
        clinica_id,
        data.get("paciente_nombre"),
        data.get("fecha_entrega"),
        data.get("items"),
        current_user.id,
        data.get("observaciones", ""),
    )
    return _detail(engine, pedido.id), 201


@pedidos_bp.get("/<int:pedido_id>")
@login_required
def pedido_detail(pedido_id: int):
    return _detail(lifecycle(), pedido_id)


@pedidos_bp.patch("/<int:pedido_id>")
@login_required
@require_staff
def update_pedido(pedido_id: int):
    data = _payload()
    engine = lifecycle()
    engine.update_order_fields(
        pedido_id,
        current_user.id,
        fecha_entrega=data.get("fecha_entrega", UNSET),
        observaciones=data.get("observaciones", UNSET),
    )
    return _detail(engine, pedido_id)


@pedidos_bp.patch("/<int:pedido_id>/estado")
@login_required
@require_staff
def change_estado(pedido_id: int):
    data = _payload()
    engine = lifecycle()
    engine.transition(pedido_id, data.get("estado"), current_user.id, TransitionOptions.from_payload(data))
    return _detail(engine, pedido_id)


@pedidos_bp.post("/<int:pedido_id>/retroceso")
@login_required
@require_staff
def rollback_estado(pedido_id: int):
    data = _payload()
    engine = lifecycle()
    engine.rollback(pedido_id, data.get("estado"), current_user.id, data.get("motivo"))
    return _detail(engine, pedido_id)


@pedidos_bp.post("/<int:pedido_id>/aprobacion")
@login_required
@require_staff
def submit_aprobacion(pedido_id: int):
    data = _payload()
    aprobacion = lifecycle().submit_approval_link(
        pedido_id,
        data.get("link_exocad"),
        current_user.id,
        data.get("nota"),
    )
    return jsonify(aprobacion_dict(aprobacion)), 201


@pedidos_bp.patch("/<int:pedido_id>/aprobacion/<int:aprobacion_id>")
@login_required
@require_role(UsuarioTipo.CLIENTE)
def respond_aprobacion(pedido_id: int, aprobacion_id: int):
    data = _payload()
    aprobacion = lifecycle().respond_to_approval(
        aprobacion_id,
        data.get("estado"),
        current_user.id,
        data.get("comentario_cliente"),
        pedido_id=pedido_id,
    )
    return jsonify(aprobacion_dict(aprobacion))
