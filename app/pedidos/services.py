from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterator
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from app.core.models import (
    AprobacionEstado,
    Pedido,
    PedidoAprobacion,
    PedidoEstado,
    PedidoItem,
    PedidoTimeline,
    TimelineTipo,
    User,
    UsuarioTipo,
    utcnow,
)
from app.core.utils import MONEY_MAX, parse_money, to_money
from app.notificaciones.services import Notifier
from app.pedidos.repository import PedidoRepository
from app.pedidos.workflow import (
    AVANCE_FORZADO_DESTINO,
    DECISIONES_APROBACION,
    ESTADO_INICIAL,
    check_forced_advance,
    check_rollback,
    check_transition,
    parse_decision,
    parse_estado,
)

logger = logging.getLogger(__name__)

IGV_RATE = Decimal("0.18")
SUB_ESTADO_MAX_LENGTH = 60
PACIENTE_MAX_LENGTH = 150
CANTIDAD_MAX = 999
PIEZA_MAX = 99
# Anchos de columna de pedido_item
LINEA_TEXT_LIMITS = {
    "material": 80,
    "color_vita": 20,
    "color_munon": 20,
    "textura": 40,
    "oclusion": 40,
    "notas": 500,
}
COMMENT_MAX_LENGTH = 400
APROBADO_COMENTARIO = "Diseño aprobado por el cliente"


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class TransitionOptions:
    # UNSET deja el campo como esta; None lo limpia
    sub_estado: str | None = UNSET
    responsable_id: int | None = UNSET
    comentario: str | None = None
    link_exocad: str | None = None
    forced: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TransitionOptions:
        optional = {key: payload[key] for key in ("sub_estado", "responsable_id") if key in payload}
        return cls(
            comentario=payload.get("comentario"),
            link_exocad=payload.get("link_exocad"),
            forced=_parse_bool(payload.get("forced")),
            **optional,
        )


@dataclass
class LineaPedido:
    producto_id: int
    cantidad: int = 1
    precio_unitario: Decimal | None = None
    piezas_dentales: list[str] = field(default_factory=list)
    es_puente: bool = False
    pieza_inicio: int | None = None
    pieza_fin: int | None = None
    material: str = ""
    color_vita: str = ""
    color_munon: str = ""
    textura: str = ""
    oclusion: str = ""
    notas: str = ""

    @classmethod
    def from_payload(cls, raw: dict[str, Any], index: int) -> LineaPedido:
        prefix = f"items[{index}]"
        if not isinstance(raw, dict):
            raise ValidationError(prefix, f"Linea {index + 1} del pedido invalida")
        producto_id = _parse_id(raw.get("producto_id"), f"{prefix}.producto_id")
        cantidad = _parse_int(raw.get("cantidad", 1), f"{prefix}.cantidad")
        if cantidad < 1:
            raise ValidationError(f"{prefix}.cantidad", "La cantidad debe ser al menos 1")
        if cantidad > CANTIDAD_MAX:
            raise ValidationError(f"{prefix}.cantidad", f"La cantidad no puede superar {CANTIDAD_MAX}")
        precio_raw = raw.get("precio_unitario")
        precio = None if precio_raw in (None, "") else parse_money(precio_raw, f"{prefix}.precio_unitario")
        piezas = raw.get("piezas_dentales") or []
        if not isinstance(piezas, (list, tuple)):
            raise ValidationError(f"{prefix}.piezas_dentales", "Las piezas dentales deben ser una lista")
        return cls(
            producto_id=producto_id,
            cantidad=cantidad,
            precio_unitario=precio,
            piezas_dentales=[str(pieza).strip() for pieza in piezas if str(pieza).strip()],
            es_puente=_parse_bool(raw.get("es_puente")),
            pieza_inicio=_parse_pieza(raw.get("pieza_inicio"), f"{prefix}.pieza_inicio"),
            pieza_fin=_parse_pieza(raw.get("pieza_fin"), f"{prefix}.pieza_fin"),
            **{
                name: _limited(raw.get(name), f"{prefix}.{name}", max_length)
                for name, max_length in LINEA_TEXT_LIMITS.items()
            },
        )


def _clean(value: object) -> str:
    return str(value or "").strip()


def _limited(value: object, field_name: str, max_length: int) -> str:
    text = _clean(value)
    if len(text) > max_length:
        raise ValidationError(field_name, f"{field_name} supera {max_length} caracteres")
    return text


def _parse_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "si", "on"}
    return bool(value)


def _parse_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(field_name, f"Valor numerico invalido en {field_name}")
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError(field_name, f"Valor numerico invalido en {field_name}") from exc


def _parse_optional_int(value: object, field_name: str) -> int | None:
    if value in (None, ""):
        return None
    return _parse_int(value, field_name)


def _parse_pieza(value: object, field_name: str) -> int | None:
    pieza = _parse_optional_int(value, field_name)
    if pieza is not None and not 1 <= pieza <= PIEZA_MAX:
        raise ValidationError(field_name, f"Pieza dental invalida en {field_name}")
    return pieza


def _parse_id(value: object, field_name: str) -> int:
    if value in (None, ""):
        raise ValidationError(field_name, f"Falta {field_name}")
    parsed = _parse_int(value, field_name)
    if parsed <= 0:
        raise ValidationError(field_name, f"Identificador invalido en {field_name}")
    return parsed


def _parse_date(value: object, field_name: str) -> date:
    if isinstance(value, date):
        return value
    raw = _clean(value)
    if not raw:
        raise ValidationError(field_name, f"Falta {field_name}")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(field_name, f"Formato de fecha invalido para {field_name}") from exc


def _parse_link(value: object) -> str:
    link = _clean(value)
    if not link:
        raise ValidationError("link_exocad", "El link de Exocad es requerido para enviar el diseño a aprobación")
    parsed = urlparse(link)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc or len(link) > 500:
        raise ValidationError("link_exocad", "El link de Exocad debe ser una URL http(s) valida")
    return link


def _comment(value: object) -> str:
    text = _clean(value)
    if len(text) > COMMENT_MAX_LENGTH:
        raise ValidationError("comentario", f"El comentario supera {COMMENT_MAX_LENGTH} caracteres")
    return text


def calcular_totales(lineas: list[tuple[int, Decimal]]) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(subtotal, igv, total)`` for ``(cantidad, precio_unitario)`` pairs."""
    subtotal = to_money(sum((precio * cantidad for cantidad, precio in lineas), Decimal("0")))
    igv = to_money(subtotal * IGV_RATE)
    return subtotal, igv, subtotal + igv


class PedidoLifecycle:
    """Order lifecycle engine.

    Every write runs as one transaction against ``repo``: the order row is
    locked, the request is validated against the state graph, then status,
    timeline entry and (when needed) a new approval round are committed
    together. Notifications go out afterwards through ``notifier`` and a
    failure there is logged without undoing the committed change.
    """

    def __init__(self, repo: PedidoRepository, notifier: Notifier) -> None:
        self.repo = repo
        self.notifier = notifier

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.repo.commit()
        except SQLAlchemyError as exc:
            self.repo.rollback()
            logger.exception("Fallo de persistencia en el ciclo de vida del pedido")
            raise PersistenceError("No se pudo guardar el pedido, intente nuevamente") from exc
        except Exception:
            self.repo.rollback()
            raise

    def _notify(self, send: Callable[[Pedido], int], pedido: Pedido) -> None:
        pedido_id = pedido.id
        try:
            send(pedido)
        except Exception:
            self.repo.rollback()
            logger.exception("No se pudo enviar la notificacion %s del pedido %s", send.__name__, pedido_id)

    def _actor(self, actor_id: int | None) -> User:
        actor = self.repo.get_usuario(actor_id)
        if not actor or not actor.is_active:
            raise PermissionDeniedError("Usuario no autorizado")
        return actor

    def _staff_actor(self, actor_id: int | None) -> User:
        actor = self._actor(actor_id)
        if not actor.is_staff:
            raise PermissionDeniedError("Solo el personal del laboratorio puede realizar esta acción")
        return actor

    def _locked_pedido(self, pedido_id: int) -> Pedido:
        pedido = self.repo.get_pedido(pedido_id, for_update=True)
        if not pedido:
            raise NotFoundError("Pedido no encontrado")
        return pedido

    def _option_changes(self, options: TransitionOptions) -> dict[str, object]:
        changes: dict[str, object] = {}
        if options.sub_estado is not UNSET:
            sub_estado = _clean(options.sub_estado) or None
            if sub_estado and len(sub_estado) > SUB_ESTADO_MAX_LENGTH:
                raise ValidationError("sub_estado", f"El sub-estado supera {SUB_ESTADO_MAX_LENGTH} caracteres")
            changes["sub_estado"] = sub_estado
        if options.responsable_id is not UNSET:
            responsable_id = None
            if options.responsable_id not in (None, ""):
                responsable_id = _parse_id(options.responsable_id, "responsable_id")
                responsable = self.repo.get_usuario(responsable_id)
                if not responsable or not responsable.is_active or not responsable.is_staff:
                    raise ValidationError("responsable_id", "El responsable debe ser personal activo del laboratorio")
            changes["responsable_id"] = responsable_id
        return changes

    def _apply(
        self,
        pedido: Pedido,
        destino: PedidoEstado,
        actor: User | None,
        tipo: TimelineTipo,
        comentario: str,
        changes: dict[str, object] | None = None,
    ) -> PedidoTimeline:
        anterior = pedido.estado
        pedido.estado = destino
        for name, value in (changes or {}).items():
            setattr(pedido, name, value)
        pedido.updated_at = utcnow()
        self.repo.add(pedido)
        entry = PedidoTimeline(
            pedido_id=pedido.id,
            tipo=tipo,
            estado_anterior=anterior,
            estado_nuevo=destino,
            usuario_id=actor.id if actor else None,
            comentario=comentario,
        )
        self.repo.add(entry)
        logger.info(
            "Pedido %s: %s -> %s (%s)",
            pedido.codigo,
            anterior.value if anterior else "-",
            destino.value,
            tipo.value,
        )
        return entry

    def _open_round(self, pedido: Pedido, link: str, nota: str, actor: User) -> PedidoAprobacion:
        aprobacion = PedidoAprobacion(
            pedido_id=pedido.id,
            link_exocad=link,
            nota=nota,
            estado=AprobacionEstado.PENDIENTE,
            created_by=actor.id,
        )
        self.repo.add(aprobacion)
        return aprobacion

    def _after_transition(self, pedido: Pedido, destino: PedidoEstado) -> None:
        if destino == PedidoEstado.ESPERANDO_APROBACION:
            self._notify(self.notifier.diseno_listo, pedido)
        elif destino == PedidoEstado.ENVIADO:
            self._notify(self.notifier.pedido_enviado, pedido)

    def create_order(
        self,
        clinica_id: object,
        paciente_nombre: object,
        fecha_entrega: object,
        items: list[dict[str, Any]] | None,
        creator_id: int | None,
        observaciones: object = "",
    ) -> Pedido:
        with self._transaction():
            creator = self._actor(creator_id)
            if clinica_id in (None, ""):
                raise ValidationError("clinica_id", "Clínica es requerida")
            clinica_id = _parse_id(clinica_id, "clinica_id")
            paciente = _limited(paciente_nombre, "paciente_nombre", PACIENTE_MAX_LENGTH)
            if not paciente:
                raise ValidationError("paciente_nombre", "Paciente es requerido")
            entrega = _parse_date(fecha_entrega, "fecha_entrega")

            clinica = self.repo.get_clinica(clinica_id)
            if not clinica or not clinica.is_active:
                raise ValidationError("clinica_id", "Clínica no encontrada")
            if creator.tipo == UsuarioTipo.CLIENTE and creator.clinica_id != clinica.id:
                raise PermissionDeniedError("Solo puede crear pedidos para su propia clínica")

            lineas = [LineaPedido.from_payload(raw, idx) for idx, raw in enumerate(items or [])]
            if not lineas:
                raise ValidationError("items", "El pedido debe incluir al menos un producto")
            productos = self.repo.productos_by_id({linea.producto_id for linea in lineas})
            precios: list[Decimal] = []
            for idx, linea in enumerate(lineas):
                producto = productos.get(linea.producto_id)
                if not producto or not producto.is_active:
                    raise ValidationError(f"items[{idx}].producto_id", f"Producto no encontrado: {linea.producto_id}")
                precio = linea.precio_unitario
                precios.append(precio if precio is not None else to_money(producto.precio_base))

            subtotal, igv, total = calcular_totales(
                [(linea.cantidad, precio) for linea, precio in zip(lineas, precios)]
            )
            if total > MONEY_MAX:
                raise ValidationError("items", "El importe total del pedido es demasiado alto")
            pedido = Pedido(
                codigo=self.repo.next_codigo(),
                clinica_id=clinica.id,
                paciente_nombre=paciente,
                fecha=date.today(),
                fecha_entrega=entrega,
                observaciones=_clean(observaciones),
                subtotal=subtotal,
                igv=igv,
                total=total,
                estado=ESTADO_INICIAL,
                created_by=creator.id,
            )
            self.repo.add(pedido)
            self.repo.flush()

            for linea, precio in zip(lineas, precios):
                self.repo.add(
                    PedidoItem(
                        pedido_id=pedido.id,
                        producto_id=linea.producto_id,
                        piezas_dentales=linea.piezas_dentales,
                        es_puente=linea.es_puente,
                        pieza_inicio=linea.pieza_inicio,
                        pieza_fin=linea.pieza_fin,
                        material=linea.material or productos[linea.producto_id].material_default,
                        color_vita=linea.color_vita,
                        color_munon=linea.color_munon,
                        textura=linea.textura,
                        oclusion=linea.oclusion,
                        notas=linea.notas,
                        cantidad=linea.cantidad,
                        precio_unitario=precio,
                        subtotal=to_money(precio * linea.cantidad),
                    )
                )
            self.repo.add(
                PedidoTimeline(
                    pedido_id=pedido.id,
                    tipo=TimelineTipo.CREACION,
                    estado_anterior=None,
                    estado_nuevo=ESTADO_INICIAL,
                    usuario_id=creator.id,
                    comentario="Pedido creado",
                )
            )
            logger.info("Pedido %s creado para clinica %s (total %s)", pedido.codigo, clinica.id, total)

        self._notify(self.notifier.pedido_creado, pedido)
        return pedido

    def transition(
        self,
        pedido_id: int,
        destino: object,
        actor_id: int | None,
        options: TransitionOptions | None = None,
    ) -> Pedido:
        options = options or TransitionOptions()
        target = parse_estado(destino)
        if options.forced:
            return self.force_advance(pedido_id, actor_id, options.comentario, target, options)

        with self._transaction():
            actor = self._staff_actor(actor_id)
            pedido = self._locked_pedido(pedido_id)
            check_transition(pedido.estado, target)
            changes = self._option_changes(options)
            comentario = _comment(options.comentario)
            link = _parse_link(options.link_exocad) if target == PedidoEstado.ESPERANDO_APROBACION else None

            self._apply(pedido, target, actor, TimelineTipo.AVANCE, comentario, changes)
            if link:
                self._open_round(pedido, link, comentario, actor)

        self._after_transition(pedido, target)
        return pedido

    def force_advance(
        self,
        pedido_id: int,
        actor_id: int | None,
        comentario: str | None,
        destino: object = AVANCE_FORZADO_DESTINO,
        options: TransitionOptions | None = None,
    ) -> Pedido:
        target = parse_estado(destino)
        with self._transaction():
            actor = self._staff_actor(actor_id)
            pedido = self._locked_pedido(pedido_id)
            justificacion = _comment(check_forced_advance(pedido.estado, target, comentario))
            changes = self._option_changes(options) if options else {}
            self._apply(
                pedido,
                target,
                actor,
                TimelineTipo.AVANCE_FORZADO,
                f"Avance forzado: {justificacion}",
                changes,
            )
        return pedido

    def rollback(self, pedido_id: int, destino: object, actor_id: int | None, motivo: str | None) -> Pedido:
        target = parse_estado(destino)
        with self._transaction():
            actor = self._staff_actor(actor_id)
            pedido = self._locked_pedido(pedido_id)
            reason = _comment(check_rollback(pedido.estado, target, motivo))
            self._apply(pedido, target, actor, TimelineTipo.RETROCESO, f"Retroceso: {reason}")
        return pedido

    def submit_approval_link(
        self,
        pedido_id: int,
        link_exocad: object,
        actor_id: int | None,
        nota: object = None,
    ) -> PedidoAprobacion:
        with self._transaction():
            actor = self._staff_actor(actor_id)
            pedido = self._locked_pedido(pedido_id)
            link = _parse_link(link_exocad)
            texto = _comment(nota)
            if pedido.estado == PedidoEstado.EN_DISENO:
                check_transition(pedido.estado, PedidoEstado.ESPERANDO_APROBACION)
                self._apply(
                    pedido,
                    PedidoEstado.ESPERANDO_APROBACION,
                    actor,
                    TimelineTipo.AVANCE,
                    texto or "Diseño enviado a aprobación",
                )
            elif pedido.estado != PedidoEstado.ESPERANDO_APROBACION:
                raise InvalidTransitionError(
                    pedido.estado.value,
                    PedidoEstado.ESPERANDO_APROBACION.value,
                    f'No se puede enviar un diseño a aprobación con el pedido en "{pedido.estado.value}"',
                )
            aprobacion = self._open_round(pedido, link, texto, actor)

        self._notify(self.notifier.diseno_listo, pedido)
        return aprobacion

    def respond_to_approval(
        self,
        aprobacion_id: int,
        decision: object,
        actor_id: int | None,
        comentario_cliente: object = None,
        pedido_id: int | None = None,
    ) -> PedidoAprobacion:
        with self._transaction():
            actor = self._actor(actor_id)
            aprobacion = self.repo.get_aprobacion(aprobacion_id, for_update=True)
            if not aprobacion or (pedido_id is not None and aprobacion.pedido_id != pedido_id):
                raise NotFoundError("Aprobación no encontrada")
            pedido = self._locked_pedido(aprobacion.pedido_id)
            if actor.tipo != UsuarioTipo.CLIENTE or actor.clinica_id != pedido.clinica_id:
                raise PermissionDeniedError("Solo la clínica del pedido puede responder la aprobación")

            respuesta = parse_decision(decision)
            comentario = _comment(comentario_cliente)
            if respuesta == AprobacionEstado.AJUSTE_SOLICITADO and not comentario:
                raise ValidationError("comentario_cliente", "Indique el ajuste solicitado")
            if aprobacion.estado != AprobacionEstado.PENDIENTE:
                raise InvalidTransitionError(
                    aprobacion.estado.value,
                    respuesta.value,
                    "Esta ronda de aprobación ya fue respondida",
                )
            vigente = self.repo.latest_aprobacion(pedido.id)
            if not vigente or vigente.id != aprobacion.id:
                raise InvalidTransitionError(
                    aprobacion.estado.value,
                    respuesta.value,
                    "La ronda de aprobación ya no está vigente",
                )

            target = DECISIONES_APROBACION[respuesta]
            if pedido.estado != PedidoEstado.ESPERANDO_APROBACION:
                raise InvalidTransitionError(pedido.estado.value, target.value)
            check_transition(pedido.estado, target)

            aprobacion.estado = respuesta
            aprobacion.comentario_cliente = comentario
            aprobacion.respondido_at = utcnow()
            aprobacion.respondido_por = actor.id
            self.repo.add(aprobacion)

            if respuesta == AprobacionEstado.APROBADO:
                self._apply(pedido, target, actor, TimelineTipo.APROBACION_CLIENTE, APROBADO_COMENTARIO)
            else:
                self._apply(
                    pedido,
                    target,
                    actor,
                    TimelineTipo.AJUSTE_CLIENTE,
                    f"Ajuste solicitado: {comentario}",
                )
        return aprobacion

    def update_order_fields(
        self,
        pedido_id: int,
        actor_id: int | None,
        fecha_entrega: object = UNSET,
        observaciones: object = UNSET,
    ) -> Pedido:
        with self._transaction():
            self._staff_actor(actor_id)
            pedido = self._locked_pedido(pedido_id)
            if fecha_entrega is not UNSET:
                pedido.fecha_entrega = _parse_date(fecha_entrega, "fecha_entrega")
            if observaciones is not UNSET:
                pedido.observaciones = _clean(observaciones)
            pedido.updated_at = utcnow()
            self.repo.add(pedido)
        return pedido

    def list_pedidos(self, filters: dict[str, str], clinica_scope: int | None = None) -> list[Pedido]:
        query_filters: dict[str, object] = {"search": (filters.get("search") or "").strip()}
        estado = (filters.get("estado") or "").strip()
        if estado:
            query_filters["estado"] = parse_estado(estado)
        for key in ("clinica_id", "responsable_id"):
            raw = (filters.get(key) or "").strip()
            if raw:
                if not raw.isdigit():
                    return []
                query_filters[key] = int(raw)
        if clinica_scope is not None:
            if query_filters.get("clinica_id") not in (None, clinica_scope):
                return []
            query_filters["clinica_id"] = clinica_scope
        return self.repo.list_pedidos(query_filters)

    def pedido_detail(self, pedido_id: int, clinica_scope: int | None = None) -> Pedido:
        pedido = self.repo.get_pedido_detail(pedido_id)
        if not pedido or (clinica_scope is not None and pedido.clinica_id != clinica_scope):
            raise NotFoundError("Pedido no encontrado")
        return pedido
