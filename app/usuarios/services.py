from __future__ import annotations

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from app.core.errors import NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import STAFF_TIPOS, Clinica, User, UsuarioTipo

logger = logging.getLogger(__name__)

# Campo -> ancho de columna
USUARIO_TEXT_FIELDS = {"nombre": 150, "email": 255, "telefono": 40}
PASSWORD_MIN_LENGTH = 6


def _text(payload: dict, key: str, max_length: int) -> str:
    text = str(payload.get(key) or "").strip()
    if len(text) > max_length:
        raise ValidationError(key, f"{key} supera {max_length} caracteres")
    return text


def _flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "si", "on"}
    return bool(value)


def _parse_tipo(value: object) -> UsuarioTipo:
    try:
        return UsuarioTipo(str(value or "").strip().lower())
    except ValueError as exc:
        raise ValidationError("tipo", f"Tipo de usuario no valido: {value}") from exc


def _password(value: object, field_name: str = "password") -> str:
    password = str(value or "")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(field_name, f"La contraseña debe tener al menos {PASSWORD_MIN_LENGTH} caracteres")
    return password


def _text_changes(payload: dict) -> dict[str, str]:
    changes = {key: _text(payload, key, size) for key, size in USUARIO_TEXT_FIELDS.items() if key in payload}
    if "nombre" in changes and not changes["nombre"]:
        raise ValidationError("nombre", "Nombre es requerido")
    if "email" in changes:
        changes["email"] = changes["email"].lower()
        if not changes["email"]:
            raise ValidationError("email", "Email es requerido")
        if "@" not in changes["email"]:
            raise ValidationError("email", "Email invalido")
    return changes


def _ensure_email_free(email: str, user_id: int | None = None) -> None:
    existing = User.query.filter(User.email == email).first()
    if existing and existing.id != user_id:
        raise ValidationError("email", "El email ya está registrado")


def _resolve_clinica(tipo: UsuarioTipo, raw: object) -> int | None:
    # Solo los clientes pertenecen a una clinica (ck_usuario_cliente_clinica)
    if tipo in STAFF_TIPOS:
        if raw not in (None, ""):
            raise ValidationError("clinica_id", "El personal del laboratorio no pertenece a una clínica")
        return None
    if raw in (None, ""):
        raise ValidationError("clinica_id", "Los clientes deben pertenecer a una clínica")
    try:
        clinica_id = int(str(raw).strip())
    except ValueError as exc:
        raise ValidationError("clinica_id", "Clínica invalida") from exc
    clinica = db.session.get(Clinica, clinica_id)
    if not clinica or not clinica.is_active:
        raise ValidationError("clinica_id", "Clínica no encontrada")
    return clinica.id


def list_usuarios(tipo: str = "", clinica_id: str = "") -> list[User]:
    query = User.query
    tipo = (tipo or "").strip().lower()
    if tipo == "equipo":
        query = query.filter(User.tipo.in_(list(STAFF_TIPOS)))
    elif tipo:
        query = query.filter(User.tipo == _parse_tipo(tipo))
    clinica_id = (clinica_id or "").strip()
    if clinica_id:
        if not clinica_id.isdigit():
            return []
        query = query.filter(User.clinica_id == int(clinica_id))
    return query.order_by(User.id.desc()).all()


def usuario_by_id(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("Usuario no encontrado")
    return user


def create_usuario(payload: dict) -> User:
    fields = _text_changes({key: payload.get(key) for key in USUARIO_TEXT_FIELDS})
    tipo = _parse_tipo(payload.get("tipo"))
    clinica_id = _resolve_clinica(tipo, payload.get("clinica_id"))
    password = _password(payload.get("password"))
    _ensure_email_free(fields["email"])

    user = User(
        **fields,
        tipo=tipo,
        clinica_id=clinica_id,
        password_hash=generate_password_hash(password),
        is_active=_flag(payload.get("is_active", True)),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Usuario %s creado (%s)", user.id, tipo.value)
    return user


def update_usuario(user_id: int, payload: dict, actor_id: int | None) -> User:
    user = usuario_by_id(user_id)
    changes: dict[str, object] = dict(_text_changes(payload))
    if "email" in changes:
        _ensure_email_free(changes["email"], user.id)

    tipo = _parse_tipo(payload["tipo"]) if "tipo" in payload else user.tipo
    if "tipo" in payload or "clinica_id" in payload:
        if "clinica_id" in payload:
            raw_clinica = payload["clinica_id"]
        elif tipo in STAFF_TIPOS:
            raw_clinica = None
        else:
            raw_clinica = user.clinica_id
        changes["tipo"] = tipo
        changes["clinica_id"] = _resolve_clinica(tipo, raw_clinica)
    if "is_active" in payload:
        changes["is_active"] = _flag(payload["is_active"])
    if payload.get("password"):
        changes["password_hash"] = generate_password_hash(_password(payload["password"]))
    if not changes:
        raise ValidationError("body", "Sin cambios")

    if user.id == actor_id:
        if changes.get("is_active") is False:
            raise ValidationError("is_active", "No puede desactivar su propio usuario")
        if changes.get("tipo", user.tipo) != user.tipo:
            raise ValidationError("tipo", "No puede cambiar su propio tipo de usuario")

    for key, value in changes.items():
        setattr(user, key, value)
    db.session.add(user)
    db.session.commit()
    logger.info("Usuario %s actualizado (%s)", user.id, ", ".join(sorted(changes)))
    return user


def deactivate_usuario(user_id: int, actor_id: int | None) -> User:
    user = usuario_by_id(user_id)
    if user.id == actor_id:
        raise ValidationError("is_active", "No puede desactivar su propio usuario")
    user.is_active = False
    db.session.add(user)
    db.session.commit()
    logger.info("Usuario %s desactivado", user.id)
    return user


def update_perfil(user: User, payload: dict) -> User:
    changes = _text_changes(payload)
    if not changes:
        raise ValidationError("body", "Sin cambios")
    if "email" in changes:
        _ensure_email_free(changes["email"], user.id)
    for key, value in changes.items():
        setattr(user, key, value)
    db.session.add(user)
    db.session.commit()
    return user


def change_password(user: User, current_password: object, new_password: object) -> None:
    if not current_password or not new_password:
        raise ValidationError("new_password", "Contraseña actual y nueva son requeridas")
    if not check_password_hash(user.password_hash, str(current_password)):
        raise ValidationError("current_password", "Contraseña actual incorrecta")
    user.password_hash = generate_password_hash(_password(new_password, "new_password"))
    db.session.add(user)
    db.session.commit()
    logger.info("Usuario %s cambio su contraseña", user.id)
