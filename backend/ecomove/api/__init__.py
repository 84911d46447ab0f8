from .prestamo_routes import bp as prestamos_bp

__all__ = [
    "prestamos_bp",
]
