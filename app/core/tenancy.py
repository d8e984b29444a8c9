from __future__ import annotations

from flask import abort, g
from flask_login import current_user

from app.core.models import UsuarioTipo


def load_tenant_context() -> None:
    # Los clientes solo ven datos de su propia clinica; None = sin restriccion
    g.clinica_id = None
    if not current_user.is_authenticated:
        return
    if current_user.tipo == UsuarioTipo.CLIENTE:
        if current_user.clinica_id is None:
            abort(403)
        g.clinica_id = current_user.clinica_id
