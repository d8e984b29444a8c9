from __future__ import annotations

from functools import wraps

from flask import abort
from flask_login import current_user

from app.core.models import UsuarioTipo


def require_role(*tipos: UsuarioTipo):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if current_user.tipo not in tipos:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


require_staff = require_role(UsuarioTipo.ADMIN, UsuarioTipo.TECNICO)
