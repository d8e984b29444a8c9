from __future__ import annotations

from datetime import date, timedelta

import pytest

from app import create_app
from app.core.config import Config
from app.core.extensions import db
from app.core.models import Clinica, Pedido, Producto, User, seed_demo_data
from app.notificaciones.services import Notifier
from app.pedidos.repository import PedidoRepository
from app.pedidos.services import PedidoLifecycle


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, email: str, password: str):
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture
def login_admin(client):
    def _do():
        return _login(client, "admin@newlab.pe", "admin123")

    return _do


@pytest.fixture
def login_tecnico(client):
    def _do():
        return _login(client, "tecnico@newlab.pe", "tecnico123")

    return _do


@pytest.fixture
def login_cliente(client):
    def _do():
        return _login(client, "roberto@sonrisas.pe", "cliente123")

    return _do


@pytest.fixture
def login_cliente_premium(client):
    def _do():
        return _login(client, "maria@premium.pe", "cliente123")

    return _do


@pytest.fixture
def lifecycle(app):
    return PedidoLifecycle(PedidoRepository(db.session), Notifier(db.session))


@pytest.fixture
def users(app):
    return {user.email.split("@")[0]: user for user in User.query.all()}


@pytest.fixture
def sonrisas(app):
    return Clinica.query.filter_by(nombre="Clínica Dental Sonrisas").first()


@pytest.fixture
def premium(app):
    return Clinica.query.filter_by(nombre="Centro Odontológico Premium").first()


@pytest.fixture
def productos(app):
    return {producto.nombre: producto for producto in Producto.query.all()}


@pytest.fixture
def entrega():
    return (date.today() + timedelta(days=7)).isoformat()


@pytest.fixture
def pedido_por_codigo(app):
    def _get(codigo: str) -> Pedido:
        return Pedido.query.filter_by(codigo=codigo).first()

    return _get
