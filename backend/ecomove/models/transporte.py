from datetime import date, datetime

from ecomove.extensions import db


class TipoTransporte:
    BICICLETA = "bicycle"
    PATINETA_ELECTRICA = "electric-scooter"
    SCOOTER = "scooter"
    VEHICULO_ELECTRICO = "electric-vehicle"


class EstadoTransporte:
    DISPONIBLE = "available"
    EN_USO = "in-use"
    MANTENIMIENTO = "maintenance"
    FUERA_DE_SERVICIO = "out-of-service"

    TODOS = (DISPONIBLE, EN_USO, MANTENIMIENTO, FUERA_DE_SERVICIO)


class Transporte(db.Model):
    """
    Vehículo rentable. Cada subtipo guarda sus campos propios en su tabla
    (herencia joined-table) y se distingue por la columna 'tipo'.
    """

    __tablename__ = "transporte"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    tipo = db.Column(db.String(30), nullable=False)
    modelo = db.Column(db.String(100), nullable=False)

    # 'available' | 'in-use' | 'maintenance' | 'out-of-service'
    estado = db.Column(
        db.String(30),
        nullable=False,
        default=EstadoTransporte.DISPONIBLE,
    )

    estacion_actual_id = db.Column(
        db.Integer,
        db.ForeignKey("estacion.id", ondelete="SET NULL"),
        nullable=True,
    )

    tarifa_por_hora = db.Column(db.Numeric(10, 2), nullable=False)
    fecha_adquisicion = db.Column(db.Date, nullable=False, default=date.today)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    estacion_actual = db.relationship("Estacion", back_populates="transportes")

    __table_args__ = (
        db.Index("ix_transporte_estacion_estado", "estacion_actual_id", "estado"),
    )

    __mapper_args__ = {
        "polymorphic_on": tipo,
    }

    def __repr__(self) -> str:
        return f"<Transporte id={self.id} tipo={self.tipo} estado={self.estado}>"


class Bicicleta(Transporte):
    __tablename__ = "bicicleta"

    id = db.Column(db.Integer, db.ForeignKey("transporte.id", ondelete="CASCADE"), primary_key=True)
    num_marchas = db.Column(db.Integer, nullable=False, default=1)
    tipo_freno = db.Column(db.String(50), nullable=False, default="disco")

    __mapper_args__ = {"polymorphic_identity": TipoTransporte.BICICLETA}


class PatinetaElectrica(Transporte):
    __tablename__ = "patineta_electrica"

    id = db.Column(db.Integer, db.ForeignKey("transporte.id", ondelete="CASCADE"), primary_key=True)
    nivel_bateria = db.Column(db.Integer, nullable=False, default=100)
    velocidad_maxima = db.Column(db.Integer, nullable=False)
    autonomia = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"polymorphic_identity": TipoTransporte.PATINETA_ELECTRICA}


class Scooter(Transporte):
    __tablename__ = "scooter"

    id = db.Column(db.Integer, db.ForeignKey("transporte.id", ondelete="CASCADE"), primary_key=True)
    cilindraje = db.Column(db.Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoTransporte.SCOOTER}


class VehiculoElectrico(Transporte):
    __tablename__ = "vehiculo_electrico"

    id = db.Column(db.Integer, db.ForeignKey("transporte.id", ondelete="CASCADE"), primary_key=True)
    nivel_bateria = db.Column(db.Integer, nullable=False, default=100)
    autonomia = db.Column(db.Integer, nullable=False)
    num_pasajeros = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"polymorphic_identity": TipoTransporte.VEHICULO_ELECTRICO}
