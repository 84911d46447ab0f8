from typing import Optional

from sqlalchemy.orm import Session, with_polymorphic

from ecomove.extensions import db
from ecomove.models.transporte import Transporte, EstadoTransporte
from ecomove.utils.db import sesion_o_default


# Campos propios de cada subtipo que se exponen en el detalle.
CAMPOS_SUBTIPO = (
    "num_marchas",
    "tipo_freno",
    "nivel_bateria",
    "velocidad_maxima",
    "autonomia",
    "cilindraje",
    "num_pasajeros",
)


def buscar_por_id(
    transporte_id: int, bloquear: bool = False, session: Session | None = None
) -> Optional[Transporte]:
    query = sesion_o_default(session).query(Transporte).filter(Transporte.id == transporte_id)
    if bloquear:
        query = query.with_for_update()
    return query.first()


def buscar_detallado(transporte_id: int, session: Session | None = None) -> Optional[Transporte]:
    """Carga el transporte junto con las columnas de su subtipo."""
    todos = with_polymorphic(Transporte, "*")
    return sesion_o_default(session).query(todos).filter(todos.id == transporte_id).first()


def listar_por_estacion(estacion_id: int) -> list[Transporte]:
    return (
        db.session.query(Transporte)
        .filter(Transporte.estacion_actual_id == estacion_id)
        .order_by(Transporte.id.asc())
        .all()
    )


def actualizar_estado(transporte_id: int, estado: str, session: Session | None = None) -> bool:
    if estado not in EstadoTransporte.TODOS:
        raise ValueError(f"Estado de transporte inválido: {estado}")

    session = sesion_o_default(session)
    transporte = session.get(Transporte, transporte_id)
    if transporte is None:
        return False
    transporte.estado = estado
    session.flush()
    return True


def actualizar_estacion(transporte_id: int, estacion_id: int | None, session: Session | None = None) -> bool:
    session = sesion_o_default(session)
    transporte = session.get(Transporte, transporte_id)
    if transporte is None:
        return False
    transporte.estacion_actual_id = estacion_id
    session.flush()
    return True


def transporte_to_dict(transporte: Transporte) -> dict:
    data = {
        "id": transporte.id,
        "tipo": transporte.tipo,
        "modelo": transporte.modelo,
        "estado": transporte.estado,
        "estacion_actual_id": transporte.estacion_actual_id,
        "tarifa_por_hora": float(transporte.tarifa_por_hora) if transporte.tarifa_por_hora is not None else None,
        "fecha_adquisicion": transporte.fecha_adquisicion.isoformat() if transporte.fecha_adquisicion else None,
    }
    for campo in CAMPOS_SUBTIPO:
        if hasattr(transporte, campo):
            data[campo] = getattr(transporte, campo)
    return data
