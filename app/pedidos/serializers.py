from __future__ import annotations

from datetime import date, datetime

from app.core.models import Pedido, PedidoAprobacion, PedidoItem, PedidoTimeline, User
from app.core.utils import money
from app.pedidos.workflow import ESTADO_LABELS, siguiente_estado


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def usuario_ref(user: User | None) -> dict[str, object] | None:
    if user is None:
        return None
    return {"id": user.id, "nombre": user.nombre, "tipo": user.tipo.value}


def pedido_summary(pedido: Pedido) -> dict[str, object]:
    siguiente = siguiente_estado(pedido.estado)
    return {
        "id": pedido.id,
        "codigo": pedido.codigo,
        "clinica": {"id": pedido.clinica.id, "nombre": pedido.clinica.nombre} if pedido.clinica else None,
        "paciente_nombre": pedido.paciente_nombre,
        "fecha": _iso(pedido.fecha),
        "fecha_entrega": _iso(pedido.fecha_entrega),
        "estado": pedido.estado.value,
        "estado_label": ESTADO_LABELS[pedido.estado],
        "siguiente_estado": siguiente.value if siguiente else None,
        "sub_estado": pedido.sub_estado,
        "responsable": usuario_ref(pedido.responsable),
        "subtotal": money(pedido.subtotal),
        "igv": money(pedido.igv),
        "total": money(pedido.total),
        "created_at": _iso(pedido.created_at),
        "updated_at": _iso(pedido.updated_at),
    }


def item_dict(item: PedidoItem) -> dict[str, object]:
    return {
        "id": item.id,
        "producto": {"id": item.producto.id, "nombre": item.producto.nombre} if item.producto else None,
        "piezas_dentales": list(item.piezas_dentales or []),
        "es_puente": item.es_puente,
        "pieza_inicio": item.pieza_inicio,
        "pieza_fin": item.pieza_fin,
        "material": item.material,
        "color_vita": item.color_vita,
        "color_munon": item.color_munon,
        "textura": item.textura,
        "oclusion": item.oclusion,
        "notas": item.notas,
        "cantidad": item.cantidad,
        "precio_unitario": money(item.precio_unitario),
        "subtotal": money(item.subtotal),
    }


def timeline_dict(entry: PedidoTimeline) -> dict[str, object]:
    return {
        "id": entry.id,
        "tipo": entry.tipo.value,
        "estado_anterior": entry.estado_anterior.value if entry.estado_anterior else None,
        "estado_nuevo": entry.estado_nuevo.value,
        "usuario": usuario_ref(entry.usuario),
        "comentario": entry.comentario,
        "created_at": _iso(entry.created_at),
    }


def aprobacion_dict(aprobacion: PedidoAprobacion) -> dict[str, object]:
    return {
        "id": aprobacion.id,
        "pedido_id": aprobacion.pedido_id,
        "link_exocad": aprobacion.link_exocad,
        "nota": aprobacion.nota,
        "estado": aprobacion.estado.value,
        "comentario_cliente": aprobacion.comentario_cliente,
        "respondido_at": _iso(aprobacion.respondido_at),
        "respondido_por": aprobacion.respondido_por,
        "created_at": _iso(aprobacion.created_at),
    }


def pedido_detail_dict(pedido: Pedido) -> dict[str, object]:
    data = pedido_summary(pedido)
    data.update(
        {
            "observaciones": pedido.observaciones,
            "creado_por": usuario_ref(pedido.creador),
            "items": [item_dict(item) for item in pedido.items],
            "timeline": [timeline_dict(entry) for entry in pedido.timeline],
            "aprobaciones": [aprobacion_dict(aprobacion) for aprobacion in pedido.aprobaciones],
        }
    )
    return data
