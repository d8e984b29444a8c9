from __future__ import annotations

from decimal import Decimal

import pytest

from app.catalogo.services import (
    create_producto,
    deactivate_clinica,
    list_clinicas,
    update_clinica,
    update_producto,
)
from app.core.errors import NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Clinica, Producto


def test_clinic_listing_and_search(app, sonrisas):
    assert [c.nombre for c in list_clinicas()] == ["Centro Odontológico Premium", "Clínica Dental Sonrisas"]
    assert [c.id for c in list_clinicas("2012345")] == [sonrisas.id]
    assert [c.id for c in list_clinicas(clinica_id=sonrisas.id)] == [sonrisas.id]


def test_clinic_update_validates_before_writing(app, sonrisas):
    with pytest.raises(ValidationError):
        update_clinica(sonrisas.id, {"nombre": " ", "telefono": "999"})
    db.session.rollback()
    assert db.session.get(Clinica, sonrisas.id).telefono == "01-4567890"

    update_clinica(sonrisas.id, {"telefono": "01-1112222"})
    clinica = db.session.get(Clinica, sonrisas.id)
    assert clinica.telefono == "01-1112222"
    assert clinica.nombre == "Clínica Dental Sonrisas"

    with pytest.raises(NotFoundError):
        update_clinica(999, {})


def test_deactivated_clinic_cannot_receive_orders(app, lifecycle, users, sonrisas, productos, entrega):
    deactivate_clinica(sonrisas.id)
    assert list_clinicas(solo_activas=True)[0].nombre == "Centro Odontológico Premium"
    with pytest.raises(ValidationError) as exc:
        lifecycle.create_order(
            sonrisas.id,
            "Paciente",
            entrega,
            [{"producto_id": productos["Corona Zirconia"].id}],
            users["admin"].id,
        )
    assert exc.value.field == "clinica_id"


def test_create_producto_defaults(app):
    producto = create_producto({"nombre": "Incrustación", "categoria": "Inlay"})
    assert producto.precio_base == Decimal("0.00")
    assert producto.tiempo_estimado_dias == 5
    with pytest.raises(ValidationError):
        create_producto({"nombre": "Otro", "precio_base": "abc"})
    with pytest.raises(ValidationError) as exc:
        create_producto({"nombre": "Otro", "precio_base": "NaN"})
    assert exc.value.field == "precio_base"
    with pytest.raises(ValidationError) as exc:
        create_producto({"nombre": "Otro", "categoria": "c" * 81})
    assert exc.value.field == "categoria"


def test_product_update_rejects_oversized_values_without_writing(app, productos):
    zirconia = productos["Corona Zirconia"]
    with pytest.raises(ValidationError) as exc:
        update_producto(zirconia.id, {"descripcion": "Nueva", "material_default": "m" * 81})
    assert exc.value.field == "material_default"
    with pytest.raises(ValidationError) as exc:
        update_producto(zirconia.id, {"descripcion": "Nueva", "precio_base": "1e9"})
    assert exc.value.field == "precio_base"
    db.session.rollback()
    assert db.session.get(Producto, zirconia.id).descripcion == "Corona monolítica en zirconia translúcida"


def test_clinic_endpoints_permissions(client, login_admin, login_tecnico, login_cliente, sonrisas, premium):
    login_cliente()
    rows = client.get("/api/clinicas").get_json()
    assert [row["id"] for row in rows] == [sonrisas.id]
    assert client.get(f"/api/clinicas/{premium.id}").status_code == 404
    assert client.post("/api/clinicas", json={"nombre": "X"}).status_code == 403

    login_tecnico()
    response = client.post("/api/clinicas", json={"nombre": "Clínica Norte", "ruc": "20555555555"})
    assert response.status_code == 201
    nueva = response.get_json()
    assert nueva["is_active"] is True
    assert client.post("/api/clinicas", json={"razon_social": "Sin nombre"}).status_code == 400
    assert client.delete(f"/api/clinicas/{nueva['id']}").status_code == 403

    login_admin()
    assert client.delete(f"/api/clinicas/{nueva['id']}").status_code == 200
    assert client.get(f"/api/clinicas/{nueva['id']}").get_json()["is_active"] is False


def test_product_endpoints_admin_only(client, login_admin, login_tecnico, productos):
    zirconia = productos["Corona Zirconia"]

    login_tecnico()
    assert client.get("/api/productos").status_code == 200
    assert client.put(f"/api/productos/{zirconia.id}", json={"precio_base": "1"}).status_code == 403

    login_admin()
    response = client.put(f"/api/productos/{zirconia.id}", json={"precio_base": "195.5", "is_active": False})
    assert response.status_code == 200
    data = response.get_json()
    assert data["precio_base"] == "195.50"
    assert data["is_active"] is False

    activos = client.get("/api/productos?activo=true").get_json()
    assert zirconia.id not in [row["id"] for row in activos]

    response = client.post("/api/productos", json={"nombre": "Carilla", "precio_base": "150", "categoria": "Carilla"})
    assert response.status_code == 201
    assert db.session.get(Producto, response.get_json()["id"]).precio_base == Decimal("150.00")
    assert client.put("/api/productos/999", json={"nombre": "X"}).status_code == 404
