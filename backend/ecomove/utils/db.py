from contextlib import contextmanager

from sqlalchemy.orm import Session

from ecomove.extensions import db


def sesion_o_default(session: Session | None = None) -> Session:
    """Sesión explícita del llamador o, si no hay, la sesión de Flask-SQLAlchemy."""
    return session if session is not None else db.session


@contextmanager
def transaccion(session: Session):
    """
    Unidad de trabajo: confirma al salir sin errores y revierte ante
    cualquier excepción (que se vuelve a lanzar).
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
