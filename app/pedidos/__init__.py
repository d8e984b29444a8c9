from flask import Blueprint

pedidos_bp = Blueprint("pedidos", __name__, url_prefix="/api/pedidos")

from app.pedidos import routes  # noqa: E402,F401
