from datetime import datetime

from ecomove.extensions import db


class EstadoPrestamo:
    ACTIVO = "active"
    COMPLETADO = "completed"
    CANCELADO = "cancelled"
    EXTENDIDO = "extended"

    # Estados no terminales: un usuario solo puede tener uno a la vez.
    EN_CURSO = (ACTIVO, EXTENDIDO)
    TODOS = (ACTIVO, COMPLETADO, CANCELADO, EXTENDIDO)


class MetodoPago:
    EFECTIVO = "cash"
    TARJETA_CREDITO = "credit-card"
    PSE = "pse"
    BILLETERA_DIGITAL = "digital-wallet"

    TODOS = (EFECTIVO, TARJETA_CREDITO, PSE, BILLETERA_DIGITAL)


class Prestamo(db.Model):
    __tablename__ = "prestamo"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    usuario_id = db.Column(
        db.Integer,
        db.ForeignKey("usuario.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    transporte_id = db.Column(
        db.Integer,
        db.ForeignKey("transporte.id", ondelete="RESTRICT"),
        nullable=False,
    )
    estacion_origen_id = db.Column(
        db.Integer,
        db.ForeignKey("estacion.id", ondelete="RESTRICT"),
        nullable=False,
    )
    estacion_destino_id = db.Column(
        db.Integer,
        db.ForeignKey("estacion.id", ondelete="RESTRICT"),
        nullable=True,
    )

    fecha_inicio = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    fecha_fin = db.Column(db.DateTime, nullable=True)

    # Minutos (solo informativo)
    duracion_estimada = db.Column(db.Integer, nullable=True)

    costo_total = db.Column(db.Numeric(10, 2), nullable=True)

    # 'active' | 'completed' | 'cancelled' | 'extended'
    estado = db.Column(
        db.String(20),
        nullable=False,
        default=EstadoPrestamo.ACTIVO,
        index=True,
    )

    # 'cash' | 'credit-card' | 'pse' | 'digital-wallet'
    metodo_pago = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    # Relaciones
    usuario = db.relationship("Usuario", back_populates="prestamos")
    transporte = db.relationship("Transporte", lazy="joined")
    estacion_origen = db.relationship("Estacion", foreign_keys=[estacion_origen_id], lazy="joined")
    estacion_destino = db.relationship("Estacion", foreign_keys=[estacion_destino_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<Prestamo id={self.id} usuario={self.usuario_id} estado={self.estado}>"
