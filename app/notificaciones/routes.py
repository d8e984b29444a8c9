from __future__ import annotations

from flask import jsonify, request
from flask_login import current_user, login_required

from app.core.models import Notificacion
from app.notificaciones import notificaciones_bp
from app.notificaciones.services import list_notificaciones, mark_all_read, mark_read, unread_count


def _notificacion_dict(notificacion: Notificacion) -> dict[str, object]:
    return {
        "id": notificacion.id,
        "tipo": notificacion.tipo.value,
        "titulo": notificacion.titulo,
        "mensaje": notificacion.mensaje,
        "link": notificacion.link,
        "leida": notificacion.leida,
        "created_at": notificacion.created_at.isoformat() if notificacion.created_at else None,
    }


@notificaciones_bp.get("")
@login_required
def inbox():
    solo_no_leidas = (request.args.get("no_leidas") or "").strip().lower() in {"1", "true", "si"}
    rows = list_notificaciones(current_user.id, solo_no_leidas=solo_no_leidas)
    return jsonify(
        {
            "items": [_notificacion_dict(row) for row in rows],
            "no_leidas": unread_count(current_user.id),
        }
    )


@notificaciones_bp.patch("/<int:notificacion_id>/leer")
@login_required
def read_one(notificacion_id: int):
    return jsonify(_notificacion_dict(mark_read(notificacion_id, current_user.id)))


@notificaciones_bp.patch("/leer-todas")
@login_required
def read_all():
    return jsonify({"actualizadas": mark_all_read(current_user.id)})
