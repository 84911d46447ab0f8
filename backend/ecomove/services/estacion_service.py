from typing import Optional

from sqlalchemy.orm import Session

from ecomove.models.estacion import Estacion
from ecomove.utils.db import sesion_o_default


def buscar_por_id(estacion_id: int, session: Session | None = None) -> Optional[Estacion]:
    return sesion_o_default(session).get(Estacion, estacion_id)


def estacion_to_dict(estacion: Estacion) -> dict:
    return {
        "id": estacion.id,
        "nombre": estacion.nombre,
        "direccion": estacion.direccion,
        "capacidad_maxima": estacion.capacidad_maxima,
        "latitud": float(estacion.latitud) if estacion.latitud is not None else None,
        "longitud": float(estacion.longitud) if estacion.longitud is not None else None,
        "is_active": bool(estacion.is_active),
    }
