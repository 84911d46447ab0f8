from typing import Optional

from sqlalchemy.orm import Session

from ecomove.models.usuario import Usuario
from ecomove.utils.db import sesion_o_default


def buscar_por_id(user_id: int, bloquear: bool = False, session: Session | None = None) -> Optional[Usuario]:
    """
    Busca un usuario por id. Con bloquear=True la fila queda tomada
    (SELECT ... FOR UPDATE) hasta el fin de la transacción.
    """
    query = sesion_o_default(session).query(Usuario).filter(Usuario.id == user_id)
    if bloquear:
        query = query.with_for_update()
    return query.first()
