from __future__ import annotations

import logging

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from app.catalogo import catalogo_bp
from app.core.auth import auth_bp
from app.core.config import Config
from app.core.errors import DomainError, PersistenceError
from app.core.extensions import db, login_manager, migrate
from app.core.models import User, seed_demo_data
from app.core.tenancy import load_tenant_context
from app.notificaciones import notificaciones_bp
from app.pedidos import pedidos_bp
from app.usuarios import usuarios_bp

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_tenant_context)
    app.after_request(_log_request)

    app.register_blueprint(auth_bp)
    app.register_blueprint(pedidos_bp)
    app.register_blueprint(notificaciones_bp)
    app.register_blueprint(catalogo_bp)
    app.register_blueprint(usuarios_bp)

    register_cli(app)
    register_routes(app)
    register_error_handlers(app)
    return app


def _configure_logging(app: Flask) -> None:
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _log_request(response):
    logger.info("%s %s -> %s", request.method, request.path, response.status_code)
    return response


def register_routes(app: Flask) -> None:
    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok", "service": "newlab"})


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def domain_error(error: DomainError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(PersistenceError)
    def persistence_error(error: PersistenceError):
        return jsonify({"error": str(error), "code": error.code}), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        codes = {401: "unauthorized", 403: "forbidden", 404: "not_found", 405: "method_not_allowed"}
        return jsonify({"error": error.description, "code": codes.get(error.code, "error")}), error.code


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo clinics, users, products and orders."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    user = db.session.get(User, int(user_id))
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Debe iniciar sesión", "code": "unauthorized"}), 401
