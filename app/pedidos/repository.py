from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from app.core.models import (
    Clinica,
    Pedido,
    PedidoAprobacion,
    PedidoItem,
    PedidoTimeline,
    Producto,
    User,
)


class PedidoRepository:
    """Data access for the order lifecycle, bound to one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_pedido(self, pedido_id: int, for_update: bool = False) -> Pedido | None:
        query = self.session.query(Pedido).filter(Pedido.id == pedido_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_pedido_detail(self, pedido_id: int) -> Pedido | None:
        return (
            self.session.query(Pedido)
            .options(
                joinedload(Pedido.clinica),
                joinedload(Pedido.responsable),
                joinedload(Pedido.creador),
                selectinload(Pedido.items).joinedload(PedidoItem.producto),
                selectinload(Pedido.timeline).joinedload(PedidoTimeline.usuario),
                selectinload(Pedido.aprobaciones),
            )
            .filter(Pedido.id == pedido_id)
            .first()
        )

    def list_pedidos(self, filters: dict[str, object]) -> list[Pedido]:
        query = self.session.query(Pedido).options(
            joinedload(Pedido.clinica),
            joinedload(Pedido.responsable),
        )
        if filters.get("estado"):
            query = query.filter(Pedido.estado == filters["estado"])
        if filters.get("clinica_id"):
            query = query.filter(Pedido.clinica_id == filters["clinica_id"])
        if filters.get("responsable_id"):
            query = query.filter(Pedido.responsable_id == filters["responsable_id"])
        search = str(filters.get("search") or "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Pedido.codigo.ilike(pattern), Pedido.paciente_nombre.ilike(pattern)))
        return query.order_by(Pedido.created_at.desc(), Pedido.id.desc()).all()

    def next_codigo(self) -> str:
        count = self.session.query(func.count(Pedido.id)).scalar()
        return f"NL-{count + 1:05d}"

    def get_aprobacion(self, aprobacion_id: int, for_update: bool = False) -> PedidoAprobacion | None:
        query = self.session.query(PedidoAprobacion).filter(PedidoAprobacion.id == aprobacion_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def latest_aprobacion(self, pedido_id: int) -> PedidoAprobacion | None:
        return (
            self.session.query(PedidoAprobacion)
            .filter(PedidoAprobacion.pedido_id == pedido_id)
            .order_by(PedidoAprobacion.created_at.desc(), PedidoAprobacion.id.desc())
            .first()
        )

    def get_usuario(self, user_id: int | None) -> User | None:
        if not user_id:
            return None
        return self.session.get(User, user_id)

    def get_clinica(self, clinica_id: int) -> Clinica | None:
        return self.session.get(Clinica, clinica_id)

    def productos_by_id(self, producto_ids: set[int]) -> dict[int, Producto]:
        if not producto_ids:
            return {}
        rows = self.session.query(Producto).filter(Producto.id.in_(producto_ids)).all()
        return {producto.id: producto for producto in rows}

    def add(self, obj) -> None:
        self.session.add(obj)

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
