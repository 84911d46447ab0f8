"""esquema ecomove: usuarios, estaciones, transportes y prestamos

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    insp = inspect(bind)
    tables = set(insp.get_table_names())

    if "usuario" not in tables:
        op.create_table(
            "usuario",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("nombre", sa.String(length=150), nullable=False),
            sa.Column("correo", sa.String(length=255), nullable=False),
            sa.Column("documento", sa.String(length=30), nullable=False),
            sa.Column("telefono", sa.String(length=20), nullable=True),
            sa.Column("role", sa.String(length=20), server_default="user", nullable=False),
            sa.Column(
                "estado",
                sa.Enum("active", "inactive", "suspended", name="estado_usuario_enum"),
                server_default="active",
                nullable=False,
            ),
            *_timestamps(),
            sa.UniqueConstraint("correo", name="uq_usuario_correo"),
            sa.UniqueConstraint("documento", name="uq_usuario_documento"),
        )

    if "estacion" not in tables:
        op.create_table(
            "estacion",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("nombre", sa.String(length=150), nullable=False),
            sa.Column("direccion", sa.String(length=255), nullable=False),
            sa.Column("capacidad_maxima", sa.Integer(), server_default=sa.text("20"), nullable=False),
            sa.Column("latitud", sa.Numeric(10, 8), nullable=True),
            sa.Column("longitud", sa.Numeric(11, 8), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.text("1"), nullable=False),
            *_timestamps(),
        )

    if "transporte" not in tables:
        op.create_table(
            "transporte",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("tipo", sa.String(length=30), nullable=False),
            sa.Column("modelo", sa.String(length=100), nullable=False),
            sa.Column("estado", sa.String(length=30), server_default="available", nullable=False),
            sa.Column("estacion_actual_id", sa.Integer(), nullable=True),
            sa.Column("tarifa_por_hora", sa.Numeric(10, 2), nullable=False),
            sa.Column("fecha_adquisicion", sa.Date(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["estacion_actual_id"], ["estacion.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_transporte_estacion_estado", "transporte", ["estacion_actual_id", "estado"], unique=False)

    # Tablas de subtipo (herencia joined-table): id = transporte.id
    if "bicicleta" not in tables:
        op.create_table(
            "bicicleta",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("num_marchas", sa.Integer(), server_default=sa.text("1"), nullable=False),
            sa.Column("tipo_freno", sa.String(length=50), server_default="disco", nullable=False),
            sa.ForeignKeyConstraint(["id"], ["transporte.id"], ondelete="CASCADE"),
        )

    if "patineta_electrica" not in tables:
        op.create_table(
            "patineta_electrica",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("nivel_bateria", sa.Integer(), server_default=sa.text("100"), nullable=False),
            sa.Column("velocidad_maxima", sa.Integer(), nullable=False),
            sa.Column("autonomia", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["id"], ["transporte.id"], ondelete="CASCADE"),
        )

    if "scooter" not in tables:
        op.create_table(
            "scooter",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("cilindraje", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["id"], ["transporte.id"], ondelete="CASCADE"),
        )

    if "vehiculo_electrico" not in tables:
        op.create_table(
            "vehiculo_electrico",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("nivel_bateria", sa.Integer(), server_default=sa.text("100"), nullable=False),
            sa.Column("autonomia", sa.Integer(), nullable=False),
            sa.Column("num_pasajeros", sa.Integer(), server_default=sa.text("1"), nullable=False),
            sa.ForeignKeyConstraint(["id"], ["transporte.id"], ondelete="CASCADE"),
        )

    if "prestamo" not in tables:
        op.create_table(
            "prestamo",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("usuario_id", sa.Integer(), nullable=False),
            sa.Column("transporte_id", sa.Integer(), nullable=False),
            sa.Column("estacion_origen_id", sa.Integer(), nullable=False),
            sa.Column("estacion_destino_id", sa.Integer(), nullable=True),
            sa.Column("fecha_inicio", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("fecha_fin", sa.DateTime(), nullable=True),
            sa.Column("duracion_estimada", sa.Integer(), nullable=True),
            sa.Column("costo_total", sa.Numeric(10, 2), nullable=True),
            sa.Column("estado", sa.String(length=20), server_default="active", nullable=False),
            sa.Column("metodo_pago", sa.String(length=20), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["usuario_id"], ["usuario.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["transporte_id"], ["transporte.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["estacion_origen_id"], ["estacion.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["estacion_destino_id"], ["estacion.id"], ondelete="RESTRICT"),
        )
        op.create_index("ix_prestamo_usuario_id", "prestamo", ["usuario_id"], unique=False)
        op.create_index("ix_prestamo_estado", "prestamo", ["estado"], unique=False)
        op.create_index("ix_prestamo_fecha_inicio", "prestamo", ["fecha_inicio"], unique=False)


def downgrade():
    bind = op.get_bind()
    insp = inspect(bind)
    tables = set(insp.get_table_names())

    if "prestamo" in tables:
        for idx in ("ix_prestamo_fecha_inicio", "ix_prestamo_estado", "ix_prestamo_usuario_id"):
            op.drop_index(idx, table_name="prestamo")
        op.drop_table("prestamo")

    for tabla in ("vehiculo_electrico", "scooter", "patineta_electrica", "bicicleta"):
        if tabla in tables:
            op.drop_table(tabla)

    if "transporte" in tables:
        op.drop_index("ix_transporte_estacion_estado", table_name="transporte")
        op.drop_table("transporte")

    for tabla in ("estacion", "usuario"):
        if tabla in tables:
            op.drop_table(tabla)

    sa.Enum(name="estado_usuario_enum").drop(bind, checkfirst=True)
