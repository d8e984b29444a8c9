from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from app.core.errors import ValidationError
from app.core.models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def usuario_dict(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "nombre": user.nombre,
        "telefono": user.telefono,
        "tipo": user.tipo.value,
        "clinica_id": user.clinica_id,
        "clinica_nombre": user.clinica.nombre if user.clinica else None,
        "is_active": user.is_active,
    }


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("body", "Se esperaba un objeto JSON")
    return data


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or request.form
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.info("Intento de acceso rechazado para %s", email or "-")
        return jsonify({"error": "Credenciales inválidas", "code": "unauthorized"}), 401
    login_user(user)
    logger.info("Usuario %s inicio sesion", user.id)
    return jsonify(usuario_dict(user))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Sesión cerrada"})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(usuario_dict(current_user))


@auth_bp.patch("/me")
@login_required
def update_me():
    from app.usuarios.services import update_perfil

    return jsonify(usuario_dict(update_perfil(current_user._get_current_object(), _payload())))


@auth_bp.patch("/password")
@login_required
def password():
    from app.usuarios.services import change_password

    data = _payload()
    change_password(current_user._get_current_object(), data.get("current_password"), data.get("new_password"))
    return jsonify({"message": "Contraseña actualizada"})
