"""
Cálculo de tarifas de préstamos.

Función pura: no toca la base de datos, solo aplica las reglas de negocio
(descuento por viaje corto, recargo por viaje largo, bono ecológico para
bicicletas e IVA) sobre la tarifa por hora del transporte.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ecomove.models.transporte import TipoTransporte


@dataclass(frozen=True)
class TarifaConfig:
    impuesto: float = 0.19
    descuento_corto: float = 0.10
    umbral_corto_min: int = 30
    recargo_largo: float = 0.15
    umbral_largo_min: int = 180
    bono_bicicleta: float = 0.05

    @classmethod
    def desde_config(cls, config) -> "TarifaConfig":
        """Construye la configuración a partir de app.config (o un dict)."""
        default = cls()
        return cls(
            impuesto=float(config.get("TARIFA_IMPUESTO", default.impuesto)),
            descuento_corto=float(config.get("TARIFA_DESCUENTO_CORTO", default.descuento_corto)),
            umbral_corto_min=int(config.get("TARIFA_UMBRAL_CORTO_MIN", default.umbral_corto_min)),
            recargo_largo=float(config.get("TARIFA_RECARGO_LARGO", default.recargo_largo)),
            umbral_largo_min=int(config.get("TARIFA_UMBRAL_LARGO_MIN", default.umbral_largo_min)),
            bono_bicicleta=float(config.get("TARIFA_BONO_BICICLETA", default.bono_bicicleta)),
        )


def redondear(valor: float) -> float:
    """Redondeo a centavos, mitad hacia arriba."""
    return float(Decimal(str(valor)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calcular_tarifa(
    tarifa_por_hora: float,
    duracion_minutos: int,
    tipo_transporte: str,
    config: TarifaConfig | None = None,
) -> dict:
    cfg = config or TarifaConfig()
    tarifa = float(tarifa_por_hora)

    costo = tarifa * (duracion_minutos / 60)
    descuentos = 0.0

    # El orden importa: el recargo modifica la base sobre la que se
    # calculan el bono de bicicleta y el impuesto.
    if duracion_minutos <= cfg.umbral_corto_min:
        descuentos = costo * cfg.descuento_corto
    elif duracion_minutos >= cfg.umbral_largo_min:
        costo = costo * (1 + cfg.recargo_largo)

    if tipo_transporte == TipoTransporte.BICICLETA:
        descuentos += costo * cfg.bono_bicicleta

    impuestos = costo * cfg.impuesto

    return {
        "tarifa_base": tarifa,
        "duracion_minutos": duracion_minutos,
        "costo_total": redondear(costo - descuentos + impuestos),
        "descuentos_aplicados": redondear(descuentos),
        "impuestos": redondear(impuestos),
    }
