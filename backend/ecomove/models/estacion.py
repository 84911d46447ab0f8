from datetime import datetime

from ecomove.extensions import db


class Estacion(db.Model):
    __tablename__ = "estacion"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    nombre = db.Column(db.String(150), nullable=False)
    direccion = db.Column(db.String(255), nullable=False)
    capacidad_maxima = db.Column(db.Integer, nullable=False, default=20)

    latitud = db.Column(db.Numeric(10, 8), nullable=True)
    longitud = db.Column(db.Numeric(11, 8), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    transportes = db.relationship(
        "Transporte",
        back_populates="estacion_actual",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Estacion id={self.id} nombre={self.nombre}>"
