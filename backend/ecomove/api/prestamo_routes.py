from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from ecomove.schemas.prestamo_schemas import (
    ActivosQuerySchema,
    CalcularTarifaSchema,
    CancelarPrestamoSchema,
    ExtenderPrestamoSchema,
    FinalizarPrestamoSchema,
    PaginacionQuerySchema,
    PrestamoCreateSchema,
    PrestamoFiltrosQuerySchema,
    ReporteQuerySchema,
)
from ecomove.services import prestamo_service, reporte_service, usuario_service
from ecomove.services.prestamo_service import get_prestamo_service
from ecomove.utils.errors import ApiError
from ecomove.utils.responses import resultado_response, success_response
from ecomove.utils.security import (
    es_admin,
    require_admin,
    require_mismo_usuario_o_admin,
    usuario_actual_id,
)

bp = Blueprint("prestamos", __name__)

prestamo_create_schema = PrestamoCreateSchema()
finalizar_schema = FinalizarPrestamoSchema()
cancelar_schema = CancelarPrestamoSchema()
extender_schema = ExtenderPrestamoSchema()
historial_query_schema = PaginacionQuerySchema()
activos_query_schema = ActivosQuerySchema()
reporte_query_schema = ReporteQuerySchema()
calcular_tarifa_schema = CalcularTarifaSchema()
filtros_query_schema = PrestamoFiltrosQuerySchema()


def _verificar_propietario(prestamo_id: int) -> None:
    # Si el préstamo no existe, el motor responde LOAN_NOT_FOUND.
    prestamo = prestamo_service.buscar_prestamo(prestamo_id)
    if prestamo is not None:
        require_mismo_usuario_o_admin(prestamo.usuario_id)


@bp.get("/ping")
def ping():
    return success_response(message="prestamos ok")


# ---------------------------------------------------------------------------
# Públicas
# ---------------------------------------------------------------------------


@bp.get("/estacion/<int:estacion_id>/disponibilidad")
def disponibilidad_estacion(estacion_id: int):
    data = reporte_service.obtener_disponibilidad_estacion(estacion_id)
    return success_response(data=data, message="Disponibilidad de la estación")


@bp.post("/calcular-tarifa")
def calcular_tarifa():
    """
    Estimación de tarifa sin crear préstamo.
    Body JSON:
    {
      "transporte_id": 3,
      "duracion_minutos": 45
    }
    """
    data = calcular_tarifa_schema.load(request.get_json() or {})
    resultado = get_prestamo_service().estimar_tarifa(data["transporte_id"], data["duracion_minutos"])
    return resultado_response(resultado, message="Tarifa calculada")


# ---------------------------------------------------------------------------
# Ciclo de vida
# ---------------------------------------------------------------------------


@bp.post("")
@jwt_required()
def iniciar_prestamo():
    """
    Inicia un préstamo.
    Body JSON:
    {
      "transporte_id": 3,
      "estacion_origen_id": 1,
      "duracion_estimada": 60
    }
    Un administrador puede enviar "usuario_id" para prestar a nombre de otro.
    """
    data = prestamo_create_schema.load(request.get_json() or {})

    usuario_id = data.get("usuario_id") or usuario_actual_id()
    require_mismo_usuario_o_admin(usuario_id)

    resultado = get_prestamo_service().iniciar_prestamo(
        usuario_id=usuario_id,
        transporte_id=data["transporte_id"],
        estacion_origen_id=data["estacion_origen_id"],
        duracion_estimada=data.get("duracion_estimada"),
    )
    return resultado_response(resultado, message="Préstamo iniciado correctamente", status_code=201)


@bp.get("")
@jwt_required()
def listar_prestamos():
    """
    Listado paginado con filtros opcionales.
    Query: ?usuario_id=&transporte_id=&estacion_origen_id=&estacion_destino_id=
           &estado=&metodo_pago=&fecha_inicio=&fecha_fin=&page=1&limit=10
    Un usuario que no es admin solo ve sus propios préstamos.
    """
    filtros = filtros_query_schema.load(request.args.to_dict())
    page = filtros.pop("page")
    limit = filtros.pop("limit")

    if not es_admin():
        if filtros.get("usuario_id") is not None:
            require_mismo_usuario_o_admin(filtros["usuario_id"])
        filtros["usuario_id"] = usuario_actual_id()

    data = reporte_service.listar_prestamos(filtros, page=page, limit=limit)
    return success_response(data=data, message="Préstamos obtenidos")


@bp.get("/<int:prestamo_id>")
@jwt_required()
def obtener_prestamo(prestamo_id: int):
    data = reporte_service.obtener_prestamo_detalle(prestamo_id)
    require_mismo_usuario_o_admin(data["usuario_id"])
    return success_response(data=data, message="OK")


@bp.put("/<int:prestamo_id>/finalizar")
@jwt_required()
def finalizar_prestamo(prestamo_id: int):
    """
    Finaliza un préstamo activo y calcula el costo.
    Body JSON:
    {
      "estacion_destino_id": 2,
      "metodo_pago": "credit-card"
    }
    """
    data = finalizar_schema.load(request.get_json() or {})
    _verificar_propietario(prestamo_id)

    resultado = get_prestamo_service().finalizar_prestamo(
        prestamo_id,
        estacion_destino_id=data["estacion_destino_id"],
        metodo_pago=data["metodo_pago"],
    )
    return resultado_response(resultado, message="Préstamo finalizado correctamente")


@bp.put("/<int:prestamo_id>/cancelar")
@jwt_required()
def cancelar_prestamo(prestamo_id: int):
    data = cancelar_schema.load(request.get_json(silent=True) or {})
    _verificar_propietario(prestamo_id)

    resultado = get_prestamo_service().cancelar_prestamo(prestamo_id, razon=data.get("razon"))
    return resultado_response(resultado, message="Préstamo cancelado correctamente")


@bp.put("/<int:prestamo_id>/extender")
@jwt_required()
def extender_prestamo(prestamo_id: int):
    """
    Body JSON:
    {
      "minutos_adicionales": 30
    }
    """
    data = extender_schema.load(request.get_json() or {})
    _verificar_propietario(prestamo_id)

    resultado = get_prestamo_service().extender_prestamo(prestamo_id, data["minutos_adicionales"])
    return resultado_response(resultado, message="Préstamo extendido correctamente")


@bp.get("/usuario/activo")
@jwt_required()
def prestamo_activo_usuario():
    """Préstamo en curso del usuario del token; data es null si no tiene."""
    data = reporte_service.obtener_prestamo_activo_usuario(usuario_actual_id())
    message = "Préstamo activo" if data else "No tienes préstamos activos"
    return success_response(data=data, message=message)


@bp.get("/usuario/<int:usuario_id>")
@jwt_required()
def historial_usuario(usuario_id: int):
    """Historial paginado del usuario. Query: ?page=1&limit=10"""
    require_mismo_usuario_o_admin(usuario_id)
    params = historial_query_schema.load(request.args.to_dict())

    if usuario_service.buscar_por_id(usuario_id) is None:
        raise ApiError("Usuario no encontrado", 404, payload={"code": "USER_NOT_FOUND"})

    data = reporte_service.obtener_historial_usuario(usuario_id, page=params["page"], limit=params["limit"])
    return success_response(data=data, message="Historial de préstamos")


# ---------------------------------------------------------------------------
# Administración
# ---------------------------------------------------------------------------


@bp.get("/reporte")
@jwt_required()
def reporte_periodo():
    """Query: ?fecha_inicio=2025-01-01T00:00:00&fecha_fin=2025-01-31T23:59:59"""
    require_admin()
    params = reporte_query_schema.load(request.args.to_dict())

    data = reporte_service.obtener_reporte_periodo(params["fecha_inicio"], params["fecha_fin"])
    current_app.logger.info(
        "[prestamos] reporte generado %s - %s",
        params["fecha_inicio"].isoformat(),
        params["fecha_fin"].isoformat(),
    )
    return success_response(data=data, message="Reporte generado")


@bp.get("/activos")
@jwt_required()
def prestamos_activos():
    require_admin()
    params = activos_query_schema.load(request.args.to_dict())

    data = reporte_service.listar_prestamos_activos(page=params["page"], limit=params["limit"])
    return success_response(data=data, message="Préstamos activos")


@bp.get("/estadisticas")
@jwt_required()
def estadisticas():
    require_admin()
    return success_response(data=reporte_service.obtener_estadisticas(), message="Estadísticas de préstamos")
