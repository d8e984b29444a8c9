from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.core.extensions import db
from app.core.models import Notificacion, NotificacionTipo, Pedido, STAFF_TIPOS, User, UsuarioTipo

logger = logging.getLogger(__name__)


class Notifier:
    """Writes in-app notifications for order events.

    Each call commits on its own, so it must run after the order's own
    transaction has been committed. Errors propagate; the lifecycle engine
    decides what a failed notification means.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _staff_ids(self) -> list[int]:
        rows = (
            self.session.query(User.id)
            .filter(User.tipo.in_(list(STAFF_TIPOS)))
            .filter(User.is_active.is_(True))
            .order_by(User.id.asc())
            .all()
        )
        return [row.id for row in rows]

    def _clinic_client_ids(self, clinica_id: int) -> list[int]:
        rows = (
            self.session.query(User.id)
            .filter(User.clinica_id == clinica_id)
            .filter(User.tipo == UsuarioTipo.CLIENTE)
            .filter(User.is_active.is_(True))
            .order_by(User.id.asc())
            .all()
        )
        return [row.id for row in rows]

    def _send(
        self,
        user_ids: list[int],
        tipo: NotificacionTipo,
        titulo: str,
        mensaje: str,
        link: str,
    ) -> int:
        for user_id in user_ids:
            self.session.add(
                Notificacion(
                    usuario_id=user_id,
                    tipo=tipo,
                    titulo=titulo,
                    mensaje=mensaje,
                    link=link,
                )
            )
        self.session.commit()
        logger.info("Notificacion %s enviada a %d usuarios", tipo.value, len(user_ids))
        return len(user_ids)

    def pedido_creado(self, pedido: Pedido) -> int:
        return self._send(
            self._staff_ids(),
            NotificacionTipo.NUEVO_PEDIDO,
            "Nuevo Pedido Recibido",
            f"Pedido {pedido.codigo} de {pedido.paciente_nombre}",
            f"/pedidos/{pedido.id}",
        )

    def diseno_listo(self, pedido: Pedido) -> int:
        return self._send(
            self._clinic_client_ids(pedido.clinica_id),
            NotificacionTipo.APROBACION,
            "Diseño listo para aprobar",
            f"Pedido {pedido.codigo} tiene un diseño para revisar",
            f"/pedidos/{pedido.id}",
        )

    def pedido_enviado(self, pedido: Pedido) -> int:
        return self._send(
            self._clinic_client_ids(pedido.clinica_id),
            NotificacionTipo.ENVIADO,
            "Pedido Enviado",
            f"Su pedido {pedido.codigo} ha sido enviado",
            f"/pedidos/{pedido.id}",
        )


def list_notificaciones(user_id: int, solo_no_leidas: bool = False, limit: int | None = None) -> list[Notificacion]:
    query = Notificacion.query.filter_by(usuario_id=user_id)
    if solo_no_leidas:
        query = query.filter_by(leida=False)
    if limit is None:
        limit = current_app.config.get("NOTIFICATIONS_PAGE_SIZE", 50)
    return query.order_by(Notificacion.created_at.desc(), Notificacion.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return Notificacion.query.filter_by(usuario_id=user_id, leida=False).count()


def mark_read(notificacion_id: int, user_id: int) -> Notificacion:
    notificacion = Notificacion.query.filter_by(id=notificacion_id, usuario_id=user_id).first()
    if not notificacion:
        raise NotFoundError("Notificación no encontrada")
    if not notificacion.leida:
        notificacion.leida = True
        db.session.add(notificacion)
        db.session.commit()
    return notificacion


def mark_all_read(user_id: int) -> int:
    updated = (
        Notificacion.query.filter_by(usuario_id=user_id, leida=False)
        .update({Notificacion.leida: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
