"""State graph of a pedido.

Three independent checks live here, one per way an order can move:

* ``check_transition``: the normal forward edges (plus the
  ``esperando_aprobacion -> en_diseno`` return edge used by design
  adjustments).
* ``check_forced_advance``: staff skipping the client approval to send a
  design straight to production.
* ``check_rollback``: staff moving an order back to any earlier stage.

Nothing in this module touches the database.
"""
from __future__ import annotations

from app.core.errors import InvalidTransitionError, ValidationError
from app.core.models import AprobacionEstado, PedidoEstado

FLUJO: tuple[PedidoEstado, ...] = (
    PedidoEstado.PENDIENTE,
    PedidoEstado.EN_DISENO,
    PedidoEstado.ESPERANDO_APROBACION,
    PedidoEstado.EN_PRODUCCION,
    PedidoEstado.TERMINADO,
    PedidoEstado.ENVIADO,
)

ESTADO_INICIAL = PedidoEstado.PENDIENTE

TRANSICIONES: dict[PedidoEstado, frozenset[PedidoEstado]] = {
    PedidoEstado.PENDIENTE: frozenset({PedidoEstado.EN_DISENO}),
    PedidoEstado.EN_DISENO: frozenset({PedidoEstado.ESPERANDO_APROBACION}),
    PedidoEstado.ESPERANDO_APROBACION: frozenset({PedidoEstado.EN_PRODUCCION, PedidoEstado.EN_DISENO}),
    PedidoEstado.EN_PRODUCCION: frozenset({PedidoEstado.TERMINADO}),
    PedidoEstado.TERMINADO: frozenset({PedidoEstado.ENVIADO}),
    PedidoEstado.ENVIADO: frozenset(),
}

AVANCE_FORZADO_ORIGENES = frozenset({PedidoEstado.EN_DISENO, PedidoEstado.ESPERANDO_APROBACION})
AVANCE_FORZADO_DESTINO = PedidoEstado.EN_PRODUCCION

# Respuesta del cliente -> estado al que vuelve el pedido
DECISIONES_APROBACION: dict[AprobacionEstado, PedidoEstado] = {
    AprobacionEstado.APROBADO: PedidoEstado.EN_PRODUCCION,
    AprobacionEstado.AJUSTE_SOLICITADO: PedidoEstado.EN_DISENO,
}

ESTADO_LABELS: dict[PedidoEstado, str] = {
    PedidoEstado.PENDIENTE: "Pendiente",
    PedidoEstado.EN_DISENO: "En Diseño",
    PedidoEstado.ESPERANDO_APROBACION: "Esperando Aprobación",
    PedidoEstado.EN_PRODUCCION: "En Producción",
    PedidoEstado.TERMINADO: "Terminado",
    PedidoEstado.ENVIADO: "Enviado",
}


def parse_estado(value: object, field_name: str = "estado") -> PedidoEstado:
    if isinstance(value, PedidoEstado):
        return value
    raw = str(value or "").strip().lower()
    if not raw:
        raise ValidationError(field_name, "Estado es requerido")
    try:
        return PedidoEstado(raw)
    except ValueError as exc:
        raise ValidationError(field_name, f"Estado de pedido invalido: {raw}") from exc


def parse_decision(value: object) -> AprobacionEstado:
    raw = str(value or "").strip().lower()
    try:
        decision = AprobacionEstado(raw)
    except ValueError as exc:
        raise ValidationError("estado", f"Respuesta de aprobacion invalida: {raw or '-'}") from exc
    if decision not in DECISIONES_APROBACION:
        raise ValidationError("estado", f"Respuesta de aprobacion invalida: {raw}")
    return decision


def posicion(estado: PedidoEstado) -> int:
    return FLUJO.index(estado)


def siguiente_estado(estado: PedidoEstado) -> PedidoEstado | None:
    idx = posicion(estado)
    return FLUJO[idx + 1] if idx + 1 < len(FLUJO) else None


def is_allowed(origen: PedidoEstado, destino: PedidoEstado) -> bool:
    return destino in TRANSICIONES.get(origen, frozenset())


def check_transition(origen: PedidoEstado, destino: PedidoEstado) -> None:
    if not is_allowed(origen, destino):
        raise InvalidTransitionError(
            origen.value,
            destino.value,
            f'Transición de "{origen.value}" a "{destino.value}" no permitida',
        )


def _required_text(value: str | None, field_name: str, message: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(field_name, message)
    return text


def check_forced_advance(origen: PedidoEstado, destino: PedidoEstado, comentario: str | None) -> str:
    if destino != AVANCE_FORZADO_DESTINO or origen not in AVANCE_FORZADO_ORIGENES:
        raise InvalidTransitionError(
            origen.value,
            destino.value,
            f'Avance forzado de "{origen.value}" a "{destino.value}" no permitido',
        )
    return _required_text(comentario, "comentario", "El avance forzado requiere una justificación")


def check_rollback(origen: PedidoEstado, destino: PedidoEstado, motivo: str | None) -> str:
    if posicion(destino) >= posicion(origen):
        raise InvalidTransitionError(
            origen.value,
            destino.value,
            f'Retroceso de "{origen.value}" a "{destino.value}" no permitido',
        )
    return _required_text(motivo, "motivo", "El retroceso requiere un motivo")
