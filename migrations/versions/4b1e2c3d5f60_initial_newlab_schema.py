"""initial newlab schema

Revision ID: 4b1e2c3d5f60
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "4b1e2c3d5f60"
down_revision = None
branch_labels = None
depends_on = None

PEDIDO_ESTADOS = (
    "pendiente",
    "en_diseno",
    "esperando_aprobacion",
    "en_produccion",
    "terminado",
    "enviado",
)


def _pedido_estado(create_type=True):
    enum = sa.Enum(*PEDIDO_ESTADOS, name="pedido_estado", create_constraint=True)
    if create_type:
        return enum
    # el tipo ya existe en postgres tras crear la tabla pedido
    return enum.with_variant(postgresql.ENUM(*PEDIDO_ESTADOS, name="pedido_estado", create_type=False), "postgresql")


def upgrade():
    op.create_table(
        "clinica",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=150), nullable=False),
        sa.Column("razon_social", sa.String(length=200), nullable=False),
        sa.Column("ruc", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("telefono", sa.String(length=40), nullable=False),
        sa.Column("direccion", sa.String(length=255), nullable=False),
        sa.Column("contacto_nombre", sa.String(length=150), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "usuario",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("nombre", sa.String(length=150), nullable=False),
        sa.Column("telefono", sa.String(length=40), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("tipo", sa.Enum("admin", "tecnico", "cliente", name="usuario_tipo"), nullable=False),
        sa.Column("clinica_id", sa.Integer(), sa.ForeignKey("clinica.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("tipo != 'cliente' OR clinica_id IS NOT NULL", name="ck_usuario_cliente_clinica"),
    )
    op.create_index("ix_usuario_clinica_id", "usuario", ["clinica_id"], unique=False)

    op.create_table(
        "producto",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=150), nullable=False),
        sa.Column("descripcion", sa.String(length=255), nullable=False),
        sa.Column("categoria", sa.String(length=80), nullable=False),
        sa.Column("precio_base", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0.00"),
        sa.Column("material_default", sa.String(length=80), nullable=False),
        sa.Column("tiempo_estimado_dias", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "pedido",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("codigo", sa.String(length=20), nullable=False, unique=True),
        sa.Column("clinica_id", sa.Integer(), sa.ForeignKey("clinica.id"), nullable=False),
        sa.Column("paciente_nombre", sa.String(length=150), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("fecha_entrega", sa.Date(), nullable=False),
        sa.Column("observaciones", sa.Text(), nullable=False),
        sa.Column("subtotal", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("igv", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("total", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("estado", _pedido_estado(), nullable=False, server_default="pendiente"),
        sa.Column("sub_estado", sa.String(length=60), nullable=True),
        sa.Column("responsable_id", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_pedido_clinica_id", "pedido", ["clinica_id"], unique=False)
    op.create_index("ix_pedido_responsable_id", "pedido", ["responsable_id"], unique=False)
    op.create_index("ix_pedido_clinica_estado", "pedido", ["clinica_id", "estado"], unique=False)

    op.create_table(
        "pedido_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pedido_id", sa.Integer(), sa.ForeignKey("pedido.id"), nullable=False),
        sa.Column("producto_id", sa.Integer(), sa.ForeignKey("producto.id"), nullable=False),
        sa.Column("piezas_dentales", sa.JSON(), nullable=False),
        sa.Column("es_puente", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pieza_inicio", sa.Integer(), nullable=True),
        sa.Column("pieza_fin", sa.Integer(), nullable=True),
        sa.Column("material", sa.String(length=80), nullable=False),
        sa.Column("color_vita", sa.String(length=20), nullable=False),
        sa.Column("color_munon", sa.String(length=20), nullable=False),
        sa.Column("textura", sa.String(length=40), nullable=False),
        sa.Column("oclusion", sa.String(length=40), nullable=False),
        sa.Column("notas", sa.String(length=500), nullable=False),
        sa.Column("cantidad", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("precio_unitario", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("subtotal", sa.Numeric(precision=10, scale=2), nullable=False),
    )
    op.create_index("ix_pedido_item_pedido_id", "pedido_item", ["pedido_id"], unique=False)

    op.create_table(
        "pedido_timeline",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pedido_id", sa.Integer(), sa.ForeignKey("pedido.id"), nullable=False),
        sa.Column(
            "tipo",
            sa.Enum(
                "creacion",
                "avance",
                "avance_forzado",
                "retroceso",
                "aprobacion_cliente",
                "ajuste_cliente",
                name="timeline_tipo",
            ),
            nullable=False,
        ),
        sa.Column("estado_anterior", _pedido_estado(create_type=False), nullable=True),
        sa.Column("estado_nuevo", _pedido_estado(create_type=False), nullable=False),
        sa.Column("usuario_id", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True),
        sa.Column("comentario", sa.String(length=500), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_pedido_timeline_pedido_at", "pedido_timeline", ["pedido_id", "created_at"], unique=False)

    op.create_table(
        "pedido_aprobacion",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pedido_id", sa.Integer(), sa.ForeignKey("pedido.id"), nullable=False),
        sa.Column("link_exocad", sa.String(length=500), nullable=False),
        sa.Column("nota", sa.String(length=500), nullable=False),
        sa.Column(
            "estado",
            sa.Enum("pendiente", "aprobado", "ajuste_solicitado", name="aprobacion_estado"),
            nullable=False,
            server_default="pendiente",
        ),
        sa.Column("comentario_cliente", sa.String(length=500), nullable=False),
        sa.Column("respondido_at", sa.DateTime(), nullable=True),
        sa.Column("respondido_por", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_pedido_aprobacion_pedido_at", "pedido_aprobacion", ["pedido_id", "created_at"], unique=False
    )

    op.create_table(
        "notificacion",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("usuario_id", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=False),
        sa.Column(
            "tipo",
            sa.Enum("nuevo_pedido", "aprobacion", "enviado", "sistema", name="notificacion_tipo"),
            nullable=False,
        ),
        sa.Column("titulo", sa.String(length=150), nullable=False),
        sa.Column("mensaje", sa.String(length=500), nullable=False),
        sa.Column("link", sa.String(length=255), nullable=False),
        sa.Column("leida", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notificacion_usuario_leida", "notificacion", ["usuario_id", "leida"], unique=False)


def downgrade():
    op.drop_index("ix_notificacion_usuario_leida", table_name="notificacion")
    op.drop_table("notificacion")
    op.drop_index("ix_pedido_aprobacion_pedido_at", table_name="pedido_aprobacion")
    op.drop_table("pedido_aprobacion")
    op.drop_index("ix_pedido_timeline_pedido_at", table_name="pedido_timeline")
    op.drop_table("pedido_timeline")
    op.drop_index("ix_pedido_item_pedido_id", table_name="pedido_item")
    op.drop_table("pedido_item")
    op.drop_index("ix_pedido_clinica_estado", table_name="pedido")
    op.drop_index("ix_pedido_responsable_id", table_name="pedido")
    op.drop_index("ix_pedido_clinica_id", table_name="pedido")
    op.drop_table("pedido")
    op.drop_table("producto")
    op.drop_index("ix_usuario_clinica_id", table_name="usuario")
    op.drop_table("usuario")
    op.drop_table("clinica")
    sa.Enum(name="notificacion_tipo").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="aprobacion_estado").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="timeline_tipo").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="pedido_estado").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="usuario_tipo").drop(op.get_bind(), checkfirst=True)
