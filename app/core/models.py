from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, event
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash

from app.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UsuarioTipo(str, Enum):
    ADMIN = "admin"
    TECNICO = "tecnico"
    CLIENTE = "cliente"


STAFF_TIPOS = frozenset({UsuarioTipo.ADMIN, UsuarioTipo.TECNICO})


class PedidoEstado(str, Enum):
    # Orden canonico del flujo de produccion
    PENDIENTE = "pendiente"
    EN_DISENO = "en_diseno"
    ESPERANDO_APROBACION = "esperando_aprobacion"
    EN_PRODUCCION = "en_produccion"
    TERMINADO = "terminado"
    ENVIADO = "enviado"


class AprobacionEstado(str, Enum):
    PENDIENTE = "pendiente"
    APROBADO = "aprobado"
    AJUSTE_SOLICITADO = "ajuste_solicitado"


class TimelineTipo(str, Enum):
    CREACION = "creacion"
    AVANCE = "avance"
    AVANCE_FORZADO = "avance_forzado"
    RETROCESO = "retroceso"
    APROBACION_CLIENTE = "aprobacion_cliente"
    AJUSTE_CLIENTE = "ajuste_cliente"


class NotificacionTipo(str, Enum):
    NUEVO_PEDIDO = "nuevo_pedido"
    APROBACION = "aprobacion"
    ENVIADO = "enviado"
    SISTEMA = "sistema"


def _pedido_estado_type() -> SAEnum:
    return SAEnum(
        PedidoEstado,
        name="pedido_estado",
        values_callable=_enum_values,
        create_constraint=True,
        validate_strings=True,
    )


class Clinica(db.Model):
    __tablename__ = "clinica"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(150), nullable=False)
    razon_social: Mapped[str] = mapped_column(db.String(200), nullable=False, default="")
    ruc: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    telefono: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    direccion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    contacto_nombre: Mapped[str] = mapped_column(db.String(150), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    usuarios = relationship("User", back_populates="clinica")


class User(UserMixin, db.Model):
    __tablename__ = "usuario"
    __table_args__ = (
        CheckConstraint("tipo != 'cliente' OR clinica_id IS NOT NULL", name="ck_usuario_cliente_clinica"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(150), nullable=False)
    telefono: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    tipo: Mapped[UsuarioTipo] = mapped_column(
        SAEnum(UsuarioTipo, name="usuario_tipo", values_callable=_enum_values),
        nullable=False,
    )
    clinica_id: Mapped[int | None] = mapped_column(ForeignKey("clinica.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    clinica = relationship("Clinica", back_populates="usuarios")

    @property
    def is_staff(self) -> bool:
        return self.tipo in STAFF_TIPOS


class Producto(db.Model):
    __tablename__ = "producto"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(150), nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    categoria: Mapped[str] = mapped_column(db.String(80), nullable=False, default="")
    precio_base: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=0)
    material_default: Mapped[str] = mapped_column(db.String(80), nullable=False, default="")
    tiempo_estimado_dias: Mapped[int] = mapped_column(nullable=False, default=5)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Pedido(db.Model):
    __tablename__ = "pedido"
    __table_args__ = (
        Index("ix_pedido_clinica_estado", "clinica_id", "estado"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    clinica_id: Mapped[int] = mapped_column(ForeignKey("clinica.id"), nullable=False, index=True)
    paciente_nombre: Mapped[str] = mapped_column(db.String(150), nullable=False)
    fecha: Mapped[date] = mapped_column(default=date.today, nullable=False)
    fecha_entrega: Mapped[date] = mapped_column(nullable=False)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    subtotal: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=0)
    igv: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=0)
    total: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=0)
    estado: Mapped[PedidoEstado] = mapped_column(
        _pedido_estado_type(),
        nullable=False,
        default=PedidoEstado.PENDIENTE,
    )
    sub_estado: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    responsable_id: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    revision: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": revision}

    clinica = relationship("Clinica")
    responsable = relationship("User", foreign_keys=[responsable_id])
    creador = relationship("User", foreign_keys=[created_by])
    items = relationship("PedidoItem", back_populates="pedido", order_by="PedidoItem.id")
    timeline = relationship(
        "PedidoTimeline",
        order_by=lambda: [PedidoTimeline.created_at, PedidoTimeline.id],
        viewonly=True,
    )
    aprobaciones = relationship(
        "PedidoAprobacion",
        order_by=lambda: [PedidoAprobacion.created_at.desc(), PedidoAprobacion.id.desc()],
        viewonly=True,
    )


class PedidoItem(db.Model):
    __tablename__ = "pedido_item"

    id: Mapped[int] = mapped_column(primary_key=True)
    pedido_id: Mapped[int] = mapped_column(ForeignKey("pedido.id"), nullable=False, index=True)
    producto_id: Mapped[int] = mapped_column(ForeignKey("producto.id"), nullable=False)
    piezas_dentales: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    es_puente: Mapped[bool] = mapped_column(nullable=False, default=False)
    pieza_inicio: Mapped[int | None] = mapped_column(nullable=True)
    pieza_fin: Mapped[int | None] = mapped_column(nullable=True)
    material: Mapped[str] = mapped_column(db.String(80), nullable=False, default="")
    color_vita: Mapped[str] = mapped_column(db.String(20), nullable=False, default="")
    color_munon: Mapped[str] = mapped_column(db.String(20), nullable=False, default="")
    textura: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    oclusion: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    notas: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    cantidad: Mapped[int] = mapped_column(nullable=False, default=1)
    precio_unitario: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)

    pedido = relationship("Pedido", back_populates="items")
    producto = relationship("Producto")


class PedidoTimeline(db.Model):
    # Registro de auditoria: solo insercion
    __tablename__ = "pedido_timeline"
    __table_args__ = (Index("ix_pedido_timeline_pedido_at", "pedido_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    pedido_id: Mapped[int] = mapped_column(ForeignKey("pedido.id"), nullable=False)
    tipo: Mapped[TimelineTipo] = mapped_column(
        SAEnum(TimelineTipo, name="timeline_tipo", values_callable=_enum_values),
        nullable=False,
    )
    estado_anterior: Mapped[PedidoEstado | None] = mapped_column(
        _pedido_estado_type(),
        nullable=True,
    )
    estado_nuevo: Mapped[PedidoEstado] = mapped_column(
        _pedido_estado_type(),
        nullable=False,
    )
    usuario_id: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True)
    comentario: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    pedido = relationship("Pedido")
    usuario = relationship("User")


class PedidoAprobacion(db.Model):
    __tablename__ = "pedido_aprobacion"
    __table_args__ = (Index("ix_pedido_aprobacion_pedido_at", "pedido_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    pedido_id: Mapped[int] = mapped_column(ForeignKey("pedido.id"), nullable=False)
    link_exocad: Mapped[str] = mapped_column(db.String(500), nullable=False)
    nota: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    estado: Mapped[AprobacionEstado] = mapped_column(
        SAEnum(AprobacionEstado, name="aprobacion_estado", values_callable=_enum_values),
        nullable=False,
        default=AprobacionEstado.PENDIENTE,
    )
    comentario_cliente: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    respondido_at: Mapped[datetime | None] = mapped_column(nullable=True)
    respondido_por: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    pedido = relationship("Pedido")


class Notificacion(db.Model):
    __tablename__ = "notificacion"
    __table_args__ = (Index("ix_notificacion_usuario_leida", "usuario_id", "leida"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    tipo: Mapped[NotificacionTipo] = mapped_column(
        SAEnum(NotificacionTipo, name="notificacion_tipo", values_callable=_enum_values),
        nullable=False,
    )
    titulo: Mapped[str] = mapped_column(db.String(150), nullable=False)
    mensaje: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    link: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    leida: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


@event.listens_for(PedidoTimeline, "before_update")
def timeline_before_update(_mapper, _connection, target: PedidoTimeline) -> None:
    raise ValueError(f"El historial del pedido es inmutable (entrada {target.id})")


@event.listens_for(PedidoTimeline, "before_delete")
def timeline_before_delete(_mapper, _connection, target: PedidoTimeline) -> None:
    raise ValueError(f"El historial del pedido es inmutable (entrada {target.id})")


def seed_demo_data(session) -> None:
    sonrisas = Clinica(
        nombre="Clínica Dental Sonrisas",
        razon_social="Sonrisas S.A.C.",
        ruc="20123456789",
        email="info@sonrisas.pe",
        telefono="01-4567890",
        direccion="Av. Arequipa 1234, Lima",
        contacto_nombre="Dr. Roberto Gómez",
    )
    premium = Clinica(
        nombre="Centro Odontológico Premium",
        razon_social="Premium Dental E.I.R.L.",
        ruc="20987654321",
        email="contacto@premium.pe",
        telefono="01-9876543",
        direccion="Jr. Huallaga 567, Lima",
        contacto_nombre="Dra. María López",
    )
    session.add_all([sonrisas, premium])
    session.flush()

    admin = User(
        email="admin@newlab.pe",
        nombre="Admin Lab",
        password_hash=generate_password_hash("admin123"),
        tipo=UsuarioTipo.ADMIN,
    )
    tecnico = User(
        email="tecnico@newlab.pe",
        nombre="Juan Técnico",
        password_hash=generate_password_hash("tecnico123"),
        tipo=UsuarioTipo.TECNICO,
    )
    disenadora = User(
        email="diseno@newlab.pe",
        nombre="María Diseñadora",
        password_hash=generate_password_hash("tecnico123"),
        tipo=UsuarioTipo.TECNICO,
    )
    cliente = User(
        email="roberto@sonrisas.pe",
        nombre="Dr. Roberto Gómez",
        password_hash=generate_password_hash("cliente123"),
        tipo=UsuarioTipo.CLIENTE,
        clinica_id=sonrisas.id,
    )
    cliente_premium = User(
        email="maria@premium.pe",
        nombre="Dra. María López",
        password_hash=generate_password_hash("cliente123"),
        tipo=UsuarioTipo.CLIENTE,
        clinica_id=premium.id,
    )
    session.add_all([admin, tecnico, disenadora, cliente, cliente_premium])
    session.flush()

    zirconia = Producto(
        nombre="Corona Zirconia",
        descripcion="Corona monolítica en zirconia translúcida",
        categoria="Corona",
        precio_base=Decimal("180.00"),
        material_default="Zirconia",
        tiempo_estimado_dias=5,
    )
    disilicato = Producto(
        nombre="Corona Disilicato",
        descripcion="Corona de disilicato de litio e.max",
        categoria="Corona",
        precio_base=Decimal("200.00"),
        material_default="Disilicato de Litio",
        tiempo_estimado_dias=5,
    )
    metal_ceramica = Producto(
        nombre="Corona Metal-Cerámica",
        descripcion="Corona metal-cerámica Cr-Co",
        categoria="Corona",
        precio_base=Decimal("120.00"),
        material_default="Cr-Co + Cerámica",
        tiempo_estimado_dias=6,
    )
    ferula = Producto(
        nombre="Férula Michigan",
        descripcion="Férula de relajación tipo Michigan",
        categoria="Férula de relajación",
        precio_base=Decimal("100.00"),
        material_default="PMMA",
        tiempo_estimado_dias=3,
    )
    session.add_all([zirconia, disilicato, metal_ceramica, ferula])
    session.flush()

    today = date.today()
    samples = [
        (
            "NL-00001",
            sonrisas,
            "Ana García Pérez",
            zirconia,
            ["11"],
            1,
            Decimal("180.00"),
            tecnico,
            [
                (None, PedidoEstado.PENDIENTE, cliente, "Pedido creado"),
                (PedidoEstado.PENDIENTE, PedidoEstado.EN_DISENO, tecnico, "Asignado a técnico"),
                (PedidoEstado.EN_DISENO, PedidoEstado.ESPERANDO_APROBACION, tecnico, "Diseño completado"),
                (PedidoEstado.ESPERANDO_APROBACION, PedidoEstado.EN_PRODUCCION, cliente, "Diseño aprobado por el cliente"),
            ],
        ),
        (
            "NL-00002",
            sonrisas,
            "Luis Mendoza Torres",
            disilicato,
            ["21", "22"],
            2,
            Decimal("210.00"),
            tecnico,
            [
                (None, PedidoEstado.PENDIENTE, cliente, "Pedido creado"),
                (PedidoEstado.PENDIENTE, PedidoEstado.EN_DISENO, tecnico, "En proceso de diseño"),
            ],
        ),
        (
            "NL-00003",
            premium,
            "Carmen Quispe Flores",
            disilicato,
            ["36"],
            1,
            Decimal("200.00"),
            None,
            [
                (None, PedidoEstado.PENDIENTE, cliente_premium, "Pedido creado"),
            ],
        ),
    ]
    for codigo, clinica, paciente, producto, piezas, cantidad, precio, responsable, history in samples:
        subtotal = precio * cantidad
        igv = (subtotal * Decimal("0.18")).quantize(Decimal("0.01"))
        pedido = Pedido(
            codigo=codigo,
            clinica_id=clinica.id,
            paciente_nombre=paciente,
            fecha=today,
            fecha_entrega=today + timedelta(days=producto.tiempo_estimado_dias + 2),
            subtotal=subtotal,
            igv=igv,
            total=subtotal + igv,
            estado=history[-1][1],
            responsable_id=responsable.id if responsable else None,
            created_by=history[0][2].id,
        )
        session.add(pedido)
        session.flush()
        session.add(
            PedidoItem(
                pedido_id=pedido.id,
                producto_id=producto.id,
                piezas_dentales=piezas,
                material=producto.material_default,
                color_vita="A2",
                cantidad=cantidad,
                precio_unitario=precio,
                subtotal=subtotal,
            )
        )
        for anterior, nuevo, usuario, comentario in history:
            session.add(
                PedidoTimeline(
                    pedido_id=pedido.id,
                    tipo=TimelineTipo.CREACION if anterior is None else TimelineTipo.AVANCE,
                    estado_anterior=anterior,
                    estado_nuevo=nuevo,
                    usuario_id=usuario.id,
                    comentario=comentario,
                )
            )

    session.add(
        Notificacion(
            usuario_id=admin.id,
            tipo=NotificacionTipo.SISTEMA,
            titulo="Bienvenido a NewLab",
            mensaje="Tu plataforma dental digital está lista",
            link="/dashboard",
        )
    )
    session.commit()
