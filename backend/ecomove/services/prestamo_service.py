import math
from datetime import datetime
from functools import wraps
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, lazyload

from ecomove.extensions import db
from ecomove.models.prestamo import EstadoPrestamo, MetodoPago, Prestamo
from ecomove.models.transporte import EstadoTransporte
from ecomove.services import estacion_service, transporte_service, usuario_service
from ecomove.services.tarifa_service import TarifaConfig, calcular_tarifa, redondear
from ecomove.utils import errors
from ecomove.utils.db import sesion_o_default, transaccion
from ecomove.utils.errors import PrestamoError


BATERIA_MINIMA_DEFAULT = 15
DURACION_ESTIMADA_DEFAULT = 120

# Campos que se pueden modificar después de crear el préstamo.
CAMPOS_ACTUALIZABLES = ("estacion_destino_id", "fecha_fin", "costo_total", "estado", "metodo_pago")


def buscar_prestamo(
    prestamo_id: int, bloquear: bool = False, session: Session | None = None
) -> Optional[Prestamo]:
    query = sesion_o_default(session).query(Prestamo).filter(Prestamo.id == prestamo_id)
    if bloquear:
        # Sin joins ansiosos: FOR UPDATE solo sobre la fila del préstamo.
        query = query.options(lazyload("*")).with_for_update()
    return query.first()


def buscar_activo_por_usuario(usuario_id: int, session: Session | None = None) -> Optional[Prestamo]:
    """Préstamo en curso (activo o extendido) del usuario, si existe."""
    return (
        sesion_o_default(session)
        .query(Prestamo)
        .filter(
            Prestamo.usuario_id == usuario_id,
            Prestamo.estado.in_(EstadoPrestamo.EN_CURSO),
        )
        .order_by(Prestamo.fecha_inicio.desc())
        .first()
    )


def crear_prestamo(
    usuario_id: int,
    transporte_id: int,
    estacion_origen_id: int,
    duracion_estimada: int,
    fecha_inicio: datetime,
    session: Session | None = None,
) -> Prestamo:
    session = sesion_o_default(session)
    prestamo = Prestamo(
        usuario_id=usuario_id,
        transporte_id=transporte_id,
        estacion_origen_id=estacion_origen_id,
        duracion_estimada=duracion_estimada,
        fecha_inicio=fecha_inicio,
        estado=EstadoPrestamo.ACTIVO,
    )
    session.add(prestamo)
    session.flush()
    return prestamo


def actualizar_prestamo(prestamo: Prestamo, session: Session | None = None, **campos) -> Prestamo:
    validos = {k: v for k, v in campos.items() if k in CAMPOS_ACTUALIZABLES and v is not None}
    if not validos:
        raise ValueError("No hay campos válidos para actualizar")

    for campo, valor in validos.items():
        setattr(prestamo, campo, valor)
    sesion_o_default(session).flush()
    return prestamo


def prestamo_to_dict(prestamo: Prestamo, detalle: bool = False) -> dict:
    data = {
        "id": prestamo.id,
        "usuario_id": prestamo.usuario_id,
        "transporte_id": prestamo.transporte_id,
        "estacion_origen_id": prestamo.estacion_origen_id,
        "estacion_destino_id": prestamo.estacion_destino_id,
        "fecha_inicio": prestamo.fecha_inicio.isoformat() if prestamo.fecha_inicio else None,
        "fecha_fin": prestamo.fecha_fin.isoformat() if prestamo.fecha_fin else None,
        "duracion_estimada": prestamo.duracion_estimada,
        "costo_total": float(prestamo.costo_total) if prestamo.costo_total is not None else None,
        "estado": prestamo.estado,
        "metodo_pago": prestamo.metodo_pago,
        "created_at": prestamo.created_at.isoformat() if prestamo.created_at else None,
        "updated_at": prestamo.updated_at.isoformat() if prestamo.updated_at else None,
    }
    if detalle:
        usuario = prestamo.usuario
        transporte = prestamo.transporte
        origen = prestamo.estacion_origen
        destino = prestamo.estacion_destino
        data.update(
            {
                "usuario_nombre": usuario.nombre if usuario else None,
                "usuario_correo": usuario.correo if usuario else None,
                "usuario_documento": usuario.documento if usuario else None,
                "transporte_tipo": transporte.tipo if transporte else None,
                "transporte_modelo": transporte.modelo if transporte else None,
                "estacion_origen_nombre": origen.nombre if origen else None,
                "estacion_destino_nombre": destino.nombre if destino else None,
            }
        )
    return data


def _resultado(operacion):
    """
    Frontera del motor: las violaciones de reglas de negocio y las fallas
    de base de datos se devuelven como {success: False, ...} en lugar de
    propagarse al controlador.
    """

    @wraps(operacion)
    def wrapper(self, *args, **kwargs):
        try:
            data = operacion(self, *args, **kwargs)
        except PrestamoError as err:
            self.logger.info("[prestamos] %s rechazado: %s - %s", operacion.__name__, err.code, err.message)
            extra = {k: v for k, v in err.payload.items() if k != "code"}
            resultado = {"success": False, "error": err.message, "code": err.code}
            if extra:
                resultado["payload"] = extra
            return resultado
        except SQLAlchemyError:
            self.logger.exception("[prestamos] %s falló en la base de datos", operacion.__name__)
            return {
                "success": False,
                "error": "Error interno del servidor",
                "code": errors.INTERNAL_ERROR,
            }
        return {"success": True, "data": data}

    return wrapper


class PrestamoService:
    """
    Motor del ciclo de vida de préstamos: iniciar, finalizar, cancelar y
    extender. Cada operación que cambia estado corre en una sola
    transacción; si algo falla después de la primera escritura no queda
    nada confirmado.
    """

    def __init__(
        self,
        session: Session,
        tarifa_config: TarifaConfig | None = None,
        bateria_minima: int = BATERIA_MINIMA_DEFAULT,
        duracion_default: int = DURACION_ESTIMADA_DEFAULT,
        ahora: Callable[[], datetime] = datetime.utcnow,
        logger=None,
    ):
        self.session = session
        self.tarifa_config = tarifa_config or TarifaConfig()
        self.bateria_minima = bateria_minima
        self.duracion_default = duracion_default
        self.ahora = ahora
        self._logger = logger

    @classmethod
    def desde_app(cls, app=None) -> "PrestamoService":
        app = app or current_app
        cfg = app.config
        return cls(
            db.session,
            tarifa_config=TarifaConfig.desde_config(cfg),
            bateria_minima=int(cfg.get("PRESTAMO_BATERIA_MINIMA", BATERIA_MINIMA_DEFAULT)),
            duracion_default=int(cfg.get("PRESTAMO_DURACION_DEFAULT", DURACION_ESTIMADA_DEFAULT)),
            logger=app.logger,
        )

    @property
    def logger(self):
        return self._logger or current_app.logger

    @_resultado
    def iniciar_prestamo(
        self,
        usuario_id: int,
        transporte_id: int,
        estacion_origen_id: int,
        duracion_estimada: int | None = None,
    ) -> dict:
        with transaccion(self.session):
            # La fila del usuario queda bloqueada: dos solicitudes simultáneas
            # del mismo usuario se serializan en la verificación de unicidad.
            usuario = usuario_service.buscar_por_id(usuario_id, bloquear=True, session=self.session)
            if not usuario or not usuario.esta_activo:
                raise PrestamoError(errors.USER_NOT_ELIGIBLE, "Usuario no encontrado o inactivo")

            prestamo_activo = buscar_activo_por_usuario(usuario_id, session=self.session)
            if prestamo_activo:
                raise PrestamoError(
                    errors.CONCURRENT_LOAN_EXISTS,
                    "El usuario ya tiene un préstamo activo",
                    payload={"prestamo_id": prestamo_activo.id},
                )

            transporte = transporte_service.buscar_por_id(transporte_id, bloquear=True, session=self.session)
            if not transporte:
                raise PrestamoError(errors.TRANSPORT_NOT_FOUND, "Transporte no encontrado")

            if transporte.estado != EstadoTransporte.DISPONIBLE:
                raise PrestamoError(errors.TRANSPORT_UNAVAILABLE, "El transporte no está disponible")

            if transporte.estacion_actual_id != estacion_origen_id:
                raise PrestamoError(
                    errors.TRANSPORT_STATION_MISMATCH,
                    "El transporte no se encuentra en la estación especificada",
                )

            detallado = transporte_service.buscar_detallado(transporte.id, session=self.session)
            nivel_bateria = getattr(detallado, "nivel_bateria", None)
            if nivel_bateria is not None and nivel_bateria < self.bateria_minima:
                raise PrestamoError(
                    errors.INSUFFICIENT_BATTERY,
                    "El transporte eléctrico no tiene suficiente batería",
                    payload={"nivel_bateria": nivel_bateria},
                )

            estacion_origen = estacion_service.buscar_por_id(estacion_origen_id, session=self.session)
            if not estacion_origen:
                raise PrestamoError(errors.STATION_NOT_FOUND, "Estación de origen no encontrada")

            prestamo = crear_prestamo(
                usuario_id=usuario.id,
                transporte_id=transporte.id,
                estacion_origen_id=estacion_origen.id,
                duracion_estimada=duracion_estimada or self.duracion_default,
                fecha_inicio=self.ahora(),
                session=self.session,
            )
            transporte_service.actualizar_estado(transporte.id, EstadoTransporte.EN_USO, session=self.session)

        self.logger.info(
            "[prestamos] préstamo %s iniciado (usuario=%s transporte=%s)",
            prestamo.id,
            usuario_id,
            transporte_id,
        )
        return prestamo_to_dict(prestamo)

    @_resultado
    def finalizar_prestamo(
        self,
        prestamo_id: int,
        estacion_destino_id: int,
        metodo_pago: str = MetodoPago.EFECTIVO,
    ) -> dict:
        with transaccion(self.session):
            prestamo = buscar_prestamo(prestamo_id, bloquear=True, session=self.session)
            if not prestamo:
                raise PrestamoError(errors.LOAN_NOT_FOUND, "Préstamo no encontrado")

            # Un préstamo 'extended' tampoco se puede finalizar por esta vía.
            if prestamo.estado != EstadoPrestamo.ACTIVO:
                raise PrestamoError(
                    errors.LOAN_NOT_ACTIVE,
                    "El préstamo no está activo",
                    payload={"estado": prestamo.estado},
                )

            estacion_destino = estacion_service.buscar_por_id(estacion_destino_id, session=self.session)
            if not estacion_destino:
                raise PrestamoError(errors.STATION_NOT_FOUND, "Estación de destino no encontrada")

            transporte = transporte_service.buscar_por_id(prestamo.transporte_id, bloquear=True, session=self.session)
            if not transporte:
                raise PrestamoError(errors.TRANSPORT_NOT_FOUND, "Transporte no encontrado")

            fecha_fin = self.ahora()
            duracion_minutos = math.ceil((fecha_fin - prestamo.fecha_inicio).total_seconds() / 60)

            calculo = calcular_tarifa(
                transporte.tarifa_por_hora,
                duracion_minutos,
                transporte.tipo,
                self.tarifa_config,
            )

            actualizar_prestamo(
                prestamo,
                session=self.session,
                estacion_destino_id=estacion_destino.id,
                fecha_fin=fecha_fin,
                costo_total=calculo["costo_total"],
                estado=EstadoPrestamo.COMPLETADO,
                metodo_pago=metodo_pago or MetodoPago.EFECTIVO,
            )

            transporte_service.actualizar_estado(transporte.id, EstadoTransporte.DISPONIBLE, session=self.session)
            transporte_service.actualizar_estacion(transporte.id, estacion_destino.id, session=self.session)

        self.logger.info(
            "[prestamos] préstamo %s finalizado: %s min, total=%s",
            prestamo.id,
            duracion_minutos,
            calculo["costo_total"],
        )
        return {
            "prestamo": prestamo_to_dict(prestamo, detalle=True),
            "calculo_tarifa": calculo,
        }

    @_resultado
    def cancelar_prestamo(self, prestamo_id: int, razon: str | None = None) -> dict:
        with transaccion(self.session):
            prestamo = buscar_prestamo(prestamo_id, bloquear=True, session=self.session)
            if not prestamo:
                raise PrestamoError(errors.LOAN_NOT_FOUND, "Préstamo no encontrado")

            if prestamo.estado != EstadoPrestamo.ACTIVO:
                raise PrestamoError(
                    errors.ONLY_ACTIVE_CANCELLABLE,
                    "Solo se pueden cancelar préstamos activos",
                    payload={"estado": prestamo.estado},
                )

            # Sin cargo por cancelación: el costo queda como estaba.
            actualizar_prestamo(
                prestamo,
                session=self.session,
                estado=EstadoPrestamo.CANCELADO,
                fecha_fin=self.ahora(),
            )

            # El vehículo queda donde está; solo se libera.
            transporte_service.actualizar_estado(prestamo.transporte_id, EstadoTransporte.DISPONIBLE, session=self.session)

        self.logger.info(
            "[prestamos] préstamo %s cancelado (razón: %s)",
            prestamo.id,
            (razon or "").strip() or "sin razón",
        )
        return prestamo_to_dict(prestamo)

    @_resultado
    def extender_prestamo(self, prestamo_id: int, minutos_adicionales: int) -> dict:
        with transaccion(self.session):
            prestamo = buscar_prestamo(prestamo_id, bloquear=True, session=self.session)
            if not prestamo:
                raise PrestamoError(errors.LOAN_NOT_FOUND, "Préstamo no encontrado")

            if prestamo.estado != EstadoPrestamo.ACTIVO:
                raise PrestamoError(
                    errors.LOAN_NOT_ACTIVE,
                    "El préstamo no está activo",
                    payload={"estado": prestamo.estado},
                )

            transporte = transporte_service.buscar_por_id(prestamo.transporte_id, session=self.session)
            if not transporte:
                raise PrestamoError(errors.TRANSPORT_NOT_FOUND, "Transporte no encontrado")

            costo_adicional = float(transporte.tarifa_por_hora) * (minutos_adicionales / 60)
            costo_previo = float(prestamo.costo_total) if prestamo.costo_total is not None else 0.0

            actualizar_prestamo(
                prestamo,
                session=self.session,
                costo_total=redondear(costo_previo + costo_adicional),
                estado=EstadoPrestamo.EXTENDIDO,
            )

        self.logger.info(
            "[prestamos] préstamo %s extendido %s min (+%s)",
            prestamo.id,
            minutos_adicionales,
            redondear(costo_adicional),
        )
        return {
            "prestamo": prestamo_to_dict(prestamo),
            "costo_adicional": redondear(costo_adicional),
        }

    @_resultado
    def estimar_tarifa(self, transporte_id: int, duracion_minutos: int) -> dict:
        transporte = transporte_service.buscar_por_id(transporte_id, session=self.session)
        if not transporte:
            raise PrestamoError(errors.TRANSPORT_NOT_FOUND, "Transporte no encontrado")

        return {
            "transporte_id": transporte.id,
            "transporte_tipo": transporte.tipo,
            "transporte_modelo": transporte.modelo,
            "calculo_tarifa": calcular_tarifa(
                transporte.tarifa_por_hora,
                duracion_minutos,
                transporte.tipo,
                self.tarifa_config,
            ),
        }


def get_prestamo_service() -> PrestamoService:
    return PrestamoService.desde_app()
