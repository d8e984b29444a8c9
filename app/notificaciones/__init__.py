from flask import Blueprint

notificaciones_bp = Blueprint("notificaciones", __name__, url_prefix="/api/notificaciones")

from app.notificaciones import routes  # noqa: E402,F401
