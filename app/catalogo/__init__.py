from flask import Blueprint

catalogo_bp = Blueprint("catalogo", __name__, url_prefix="/api")

from app.catalogo import routes  # noqa: E402,F401
