from __future__ import annotations

import logging

from sqlalchemy import or_

from app.core.errors import NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Clinica, Producto
from app.core.utils import parse_money

logger = logging.getLogger(__name__)

# Campo -> ancho de columna
CLINICA_FIELDS = {
    "nombre": 150,
    "razon_social": 200,
    "ruc": 20,
    "email": 255,
    "telefono": 40,
    "direccion": 255,
    "contacto_nombre": 150,
}
PRODUCTO_TEXT_FIELDS = {"nombre": 150, "descripcion": 255, "categoria": 80, "material_default": 80}
TIEMPO_MAX_DIAS = 365


def _text(payload: dict, key: str, max_length: int | None = None) -> str:
    text = str(payload.get(key) or "").strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(key, f"{key} supera {max_length} caracteres")
    return text


def _flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "si", "on"}
    return bool(value)


def list_clinicas(search: str = "", solo_activas: bool = False, clinica_id: int | None = None) -> list[Clinica]:
    query = Clinica.query
    if clinica_id is not None:
        query = query.filter(Clinica.id == clinica_id)
    if solo_activas:
        query = query.filter(Clinica.is_active.is_(True))
    search = (search or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Clinica.nombre.ilike(pattern), Clinica.razon_social.ilike(pattern), Clinica.ruc.ilike(pattern))
        )
    return query.order_by(Clinica.nombre.asc()).all()


def clinica_by_id(clinica_id: int, scope: int | None = None) -> Clinica:
    clinica = db.session.get(Clinica, clinica_id)
    if not clinica or (scope is not None and clinica.id != scope):
        raise NotFoundError("Clínica no encontrada")
    return clinica


def create_clinica(payload: dict) -> Clinica:
    nombre = _text(payload, "nombre")
    if not nombre:
        raise ValidationError("nombre", "Nombre es requerido")
    clinica = Clinica(**{key: _text(payload, key, size) for key, size in CLINICA_FIELDS.items()})
    clinica.ruc = clinica.ruc or None
    db.session.add(clinica)
    db.session.commit()
    logger.info("Clinica %s creada (%s)", clinica.id, clinica.nombre)
    return clinica


def update_clinica(clinica_id: int, payload: dict) -> Clinica:
    clinica = clinica_by_id(clinica_id)
    changes = {key: _text(payload, key, size) for key, size in CLINICA_FIELDS.items() if key in payload}
    if "nombre" in changes and not changes["nombre"]:
        raise ValidationError("nombre", "Nombre es requerido")
    for key, value in changes.items():
        setattr(clinica, key, value)
    clinica.ruc = clinica.ruc or None
    if "is_active" in payload:
        clinica.is_active = _flag(payload["is_active"])
    db.session.add(clinica)
    db.session.commit()
    return clinica


def deactivate_clinica(clinica_id: int) -> Clinica:
    clinica = clinica_by_id(clinica_id)
    clinica.is_active = False
    db.session.add(clinica)
    db.session.commit()
    logger.info("Clinica %s desactivada", clinica.id)
    return clinica


def list_productos(search: str = "", categoria: str = "", activo: str | None = None) -> list[Producto]:
    query = Producto.query
    if categoria:
        query = query.filter(Producto.categoria == categoria)
    search = (search or "").strip()
    if search:
        query = query.filter(Producto.nombre.ilike(f"%{search}%"))
    if activo is not None and activo != "":
        query = query.filter(Producto.is_active.is_(_flag(activo)))
    return query.order_by(Producto.categoria.asc(), Producto.nombre.asc()).all()


def _tiempo_estimado(value: object) -> int:
    try:
        dias = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError("tiempo_estimado_dias", "Tiempo estimado invalido") from exc
    if dias < 0 or dias > TIEMPO_MAX_DIAS:
        raise ValidationError("tiempo_estimado_dias", "Tiempo estimado invalido")
    return dias


def create_producto(payload: dict) -> Producto:
    nombre = _text(payload, "nombre")
    if not nombre:
        raise ValidationError("nombre", "Nombre es requerido")
    precio = payload.get("precio_base")
    producto = Producto(
        **{key: _text(payload, key, size) for key, size in PRODUCTO_TEXT_FIELDS.items()},
        precio_base=parse_money(precio if precio not in (None, "") else 0, "precio_base"),
        tiempo_estimado_dias=_tiempo_estimado(payload.get("tiempo_estimado_dias") or 5),
    )
    db.session.add(producto)
    db.session.commit()
    logger.info("Producto %s creado (%s)", producto.id, producto.nombre)
    return producto


def update_producto(producto_id: int, payload: dict) -> Producto:
    producto = db.session.get(Producto, producto_id)
    if not producto:
        raise NotFoundError("Producto no encontrado")
    changes = {key: _text(payload, key, size) for key, size in PRODUCTO_TEXT_FIELDS.items() if key in payload}
    if "nombre" in changes and not changes["nombre"]:
        raise ValidationError("nombre", "Nombre es requerido")
    precio = parse_money(payload["precio_base"], "precio_base") if "precio_base" in payload else None
    dias = _tiempo_estimado(payload["tiempo_estimado_dias"]) if "tiempo_estimado_dias" in payload else None
    for key, value in changes.items():
        setattr(producto, key, value)
    if precio is not None:
        producto.precio_base = precio
    if dias is not None:
        producto.tiempo_estimado_dias = dias
    if "is_active" in payload:
        producto.is_active = _flag(payload["is_active"])
    db.session.add(producto)
    db.session.commit()
    return producto
