from datetime import datetime

from ecomove.extensions import db


class EstadoUsuario:
    ACTIVO = "active"
    INACTIVO = "inactive"
    SUSPENDIDO = "suspended"


class Usuario(db.Model):
    __tablename__ = "usuario"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    nombre = db.Column(db.String(150), nullable=False)
    correo = db.Column(db.String(255), unique=True, nullable=False)
    documento = db.Column(db.String(30), unique=True, nullable=False)
    telefono = db.Column(db.String(20))

    # 'user' | 'admin'
    role = db.Column(db.String(20), nullable=False, default="user")

    estado = db.Column(
        db.Enum("active", "inactive", "suspended", name="estado_usuario_enum"),
        nullable=False,
        default=EstadoUsuario.ACTIVO,
    )

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    prestamos = db.relationship("Prestamo", back_populates="usuario", lazy="dynamic")

    @property
    def esta_activo(self) -> bool:
        return self.estado == EstadoUsuario.ACTIVO

    def __repr__(self) -> str:
        return f"<Usuario id={self.id} correo={self.correo} estado={self.estado}>"
