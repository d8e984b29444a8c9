from __future__ import annotations

from flask import jsonify, request
from flask_login import current_user, login_required

from app.core.auth import usuario_dict
from app.core.errors import ValidationError
from app.core.models import UsuarioTipo
from app.core.permissions import require_role
from app.usuarios import usuarios_bp
from app.usuarios.services import (
    create_usuario,
    deactivate_usuario,
    list_usuarios,
    update_usuario,
    usuario_by_id,
)

require_admin = require_role(UsuarioTipo.ADMIN)


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("body", "Se esperaba un objeto JSON")
    return data


@usuarios_bp.get("")
@login_required
@require_admin
def usuarios():
    rows = list_usuarios(request.args.get("tipo", ""), request.args.get("clinica_id", ""))
    return jsonify([usuario_dict(row) for row in rows])


@usuarios_bp.get("/<int:user_id>")
@login_required
@require_admin
def usuario_detail(user_id: int):
    return jsonify(usuario_dict(usuario_by_id(user_id)))


@usuarios_bp.post("")
@login_required
@require_admin
def usuario_create():
    return jsonify(usuario_dict(create_usuario(_payload()))), 201


@usuarios_bp.patch("/<int:user_id>")
@login_required
@require_admin
def usuario_update(user_id: int):
    return jsonify(usuario_dict(update_usuario(user_id, _payload(), current_user.id)))


@usuarios_bp.delete("/<int:user_id>")
@login_required
@require_admin
def usuario_deactivate(user_id: int):
    deactivate_usuario(user_id, current_user.id)
    return jsonify({"message": "Usuario desactivado"})
