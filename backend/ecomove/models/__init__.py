from .usuario import Usuario
from .estacion import Estacion
from .transporte import (
    Transporte,
    Bicicleta,
    PatinetaElectrica,
    Scooter,
    VehiculoElectrico,
)
from .prestamo import Prestamo

__all__ = [
    "Usuario",
    "Estacion",
    "Transporte",
    "Bicicleta",
    "PatinetaElectrica",
    "Scooter",
    "VehiculoElectrico",
    "Prestamo",
]
