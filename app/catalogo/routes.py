from __future__ import annotations

from flask import g, jsonify, request
from flask_login import login_required

from app.catalogo import catalogo_bp
from app.catalogo.services import (
    clinica_by_id,
    create_clinica,
    create_producto,
    deactivate_clinica,
    list_clinicas,
    list_productos,
    update_clinica,
    update_producto,
)
from app.core.errors import ValidationError
from app.core.models import Clinica, Producto, UsuarioTipo
from app.core.permissions import require_role, require_staff
from app.core.utils import money


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("body", "Se esperaba un objeto JSON")
    return data


def _clinica_dict(clinica: Clinica) -> dict[str, object]:
    return {
        "id": clinica.id,
        "nombre": clinica.nombre,
        "razon_social": clinica.razon_social,
        "ruc": clinica.ruc,
        "email": clinica.email,
        "telefono": clinica.telefono,
        "direccion": clinica.direccion,
        "contacto_nombre": clinica.contacto_nombre,
        "is_active": clinica.is_active,
    }


def _producto_dict(producto: Producto) -> dict[str, object]:
    return {
        "id": producto.id,
        "nombre": producto.nombre,
        "descripcion": producto.descripcion,
        "categoria": producto.categoria,
        "precio_base": money(producto.precio_base),
        "material_default": producto.material_default,
        "tiempo_estimado_dias": producto.tiempo_estimado_dias,
        "is_active": producto.is_active,
    }


@catalogo_bp.get("/clinicas")
@login_required
def clinicas():
    rows = list_clinicas(
        request.args.get("search", ""),
        solo_activas=request.args.get("activas", "").lower() == "true",
        clinica_id=g.clinica_id,
    )
    return jsonify([_clinica_dict(row) for row in rows])


@catalogo_bp.get("/clinicas/<int:clinica_id>")
@login_required
def clinica_detail(clinica_id: int):
    return jsonify(_clinica_dict(clinica_by_id(clinica_id, g.clinica_id)))


@catalogo_bp.post("/clinicas")
@login_required
@require_staff
def clinica_create():
    return jsonify(_clinica_dict(create_clinica(_payload()))), 201


@catalogo_bp.put("/clinicas/<int:clinica_id>")
@login_required
@require_staff
def clinica_update(clinica_id: int):
    return jsonify(_clinica_dict(update_clinica(clinica_id, _payload())))


@catalogo_bp.delete("/clinicas/<int:clinica_id>")
@login_required
@require_role(UsuarioTipo.ADMIN)
def clinica_deactivate(clinica_id: int):
    deactivate_clinica(clinica_id)
    return jsonify({"message": "Clínica desactivada"})


@catalogo_bp.get("/productos")
@login_required
def productos():
    rows = list_productos(
        request.args.get("search", ""),
        request.args.get("categoria", ""),
        request.args.get("activo"),
    )
    return jsonify([_producto_dict(row) for row in rows])


@catalogo_bp.post("/productos")
@login_required
@require_role(UsuarioTipo.ADMIN)
def producto_create():
    return jsonify(_producto_dict(create_producto(_payload()))), 201


@catalogo_bp.put("/productos/<int:producto_id>")
@login_required
@require_role(UsuarioTipo.ADMIN)
def producto_update(producto_id: int):
    return jsonify(_producto_dict(update_producto(producto_id, _payload())))
