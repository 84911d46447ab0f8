from __future__ import annotations

from collections import Counter
from datetime import datetime
from math import ceil

from sqlalchemy import case, func, or_

from ecomove.extensions import db
from ecomove.models.estacion import Estacion
from ecomove.models.prestamo import EstadoPrestamo, Prestamo
from ecomove.models.transporte import EstadoTransporte, TipoTransporte, Transporte
from ecomove.services import estacion_service, transporte_service
from ecomove.services.prestamo_service import buscar_activo_por_usuario, prestamo_to_dict
from ecomove.utils import errors
from ecomove.utils.errors import PrestamoError


TOP_REPORTE = 10


def _total_pages(total: int, limit: int) -> int:
	return int(ceil(total / limit)) if limit else 0


def _minutos_uso(p: Prestamo) -> int:
	if not p.fecha_inicio or not p.fecha_fin:
		return 0
	return int(ceil((p.fecha_fin - p.fecha_inicio).total_seconds() / 60))


def obtener_historial_usuario(usuario_id: int, page: int = 1, limit: int = 10) -> dict:
	query = Prestamo.query.filter(Prestamo.usuario_id == usuario_id)

	total = int(query.order_by(None).with_entities(func.count(Prestamo.id)).scalar() or 0)
	items = (
		query.order_by(Prestamo.fecha_inicio.desc(), Prestamo.id.desc())
		.offset((page - 1) * limit)
		.limit(limit)
		.all()
	)

	# Estadísticas sobre todos los préstamos completados, no solo la página.
	completados = query.filter(Prestamo.estado == EstadoPrestamo.COMPLETADO).all()
	tiempo_total = sum(_minutos_uso(p) for p in completados)
	gasto_total = sum(float(p.costo_total or 0) for p in completados)

	tipos = Counter(p.transporte.tipo for p in completados if p.transporte is not None)
	favorito = tipos.most_common(1)[0][0] if tipos else TipoTransporte.BICICLETA

	return {
		"prestamos": [prestamo_to_dict(p, detalle=True) for p in items],
		"total": total,
		"totalPages": _total_pages(total, limit),
		"currentPage": page,
		"estadisticas_usuario": {
			"total_prestamos": total,
			"tiempo_total_uso": tiempo_total,
			"gasto_total": round(gasto_total, 2),
			"transporte_favorito": favorito,
		},
	}


def obtener_estadisticas() -> dict:
	def _contar(estado: str):
		return func.sum(case((Prestamo.estado == estado, 1), else_=0))

	fila = db.session.query(
		func.count(Prestamo.id),
		_contar(EstadoPrestamo.ACTIVO),
		_contar(EstadoPrestamo.COMPLETADO),
		_contar(EstadoPrestamo.CANCELADO),
		func.coalesce(func.sum(Prestamo.costo_total), 0),
	).one()

	# Promedio en Python: sin funciones de fecha propias del motor SQL.
	terminados = (
		db.session.query(Prestamo.fecha_inicio, Prestamo.fecha_fin)
		.filter(Prestamo.fecha_fin.is_not(None))
		.all()
	)
	duraciones = [(fin - inicio).total_seconds() / 60 for inicio, fin in terminados]
	promedio = round(sum(duraciones) / len(duraciones)) if duraciones else 0

	mas_usado = (
		db.session.query(Transporte.tipo)
		.join(Prestamo, Prestamo.transporte_id == Transporte.id)
		.group_by(Transporte.tipo)
		.order_by(func.count(Prestamo.id).desc())
		.first()
	)

	return {
		"total_prestamos": int(fila[0] or 0),
		"prestamos_activos": int(fila[1] or 0),
		"prestamos_completados": int(fila[2] or 0),
		"prestamos_cancelados": int(fila[3] or 0),
		"ingresos_totales": float(fila[4] or 0),
		"duracion_promedio": int(promedio),
		"transporte_mas_usado": mas_usado[0] if mas_usado else None,
	}


def _prestamos_en_rango(fecha_inicio: datetime, fecha_fin: datetime) -> list[Prestamo]:
	return (
		Prestamo.query.filter(Prestamo.fecha_inicio.between(fecha_inicio, fecha_fin))
		.order_by(Prestamo.fecha_inicio.desc())
		.all()
	)


def agrupar_prestamos_por_dia(prestamos: list[Prestamo]) -> list[dict]:
	grupo: dict[str, dict] = {}

	for p in prestamos:
		fecha = p.fecha_inicio.date().isoformat()
		dia = grupo.setdefault(
			fecha,
			{
				"fecha": fecha,
				"total_prestamos": 0,
				"ingresos": 0.0,
				"prestamos_completados": 0,
				"prestamos_cancelados": 0,
			},
		)
		dia["total_prestamos"] += 1
		dia["ingresos"] += float(p.costo_total or 0)

		if p.estado == EstadoPrestamo.COMPLETADO:
			dia["prestamos_completados"] += 1
		elif p.estado == EstadoPrestamo.CANCELADO:
			dia["prestamos_cancelados"] += 1

	for dia in grupo.values():
		dia["ingresos"] = round(dia["ingresos"], 2)

	return sorted(grupo.values(), key=lambda d: d["fecha"])


def _transportes_mas_usados(fecha_inicio: datetime, fecha_fin: datetime) -> list[dict]:
	total = func.count(Prestamo.id).label("total_prestamos")
	filas = (
		db.session.query(
			Transporte.tipo,
			Transporte.modelo,
			total,
			func.coalesce(func.sum(Prestamo.costo_total), 0),
		)
		.join(Transporte, Prestamo.transporte_id == Transporte.id)
		.filter(Prestamo.fecha_inicio.between(fecha_inicio, fecha_fin))
		.group_by(Transporte.tipo, Transporte.modelo)
		.order_by(total.desc())
		.limit(TOP_REPORTE)
		.all()
	)
	return [
		{
			"tipo": tipo,
			"modelo": modelo,
			"total_prestamos": int(n or 0),
			"ingresos_generados": float(ingresos or 0),
		}
		for tipo, modelo, n, ingresos in filas
	]


def _estaciones_mas_activas(fecha_inicio: datetime, fecha_fin: datetime) -> list[dict]:
	total = func.count(Prestamo.id).label("total_prestamos")
	filas = (
		db.session.query(
			Estacion.id,
			Estacion.nombre,
			total,
			func.sum(case((Prestamo.estacion_origen_id == Estacion.id, 1), else_=0)),
			func.sum(case((Prestamo.estacion_destino_id == Estacion.id, 1), else_=0)),
		)
		.join(
			Estacion,
			or_(
				Prestamo.estacion_origen_id == Estacion.id,
				Prestamo.estacion_destino_id == Estacion.id,
			),
		)
		.filter(Prestamo.fecha_inicio.between(fecha_inicio, fecha_fin))
		.group_by(Estacion.id, Estacion.nombre)
		.order_by(total.desc())
		.limit(TOP_REPORTE)
		.all()
	)
	return [
		{
			"id": estacion_id,
			"nombre": nombre,
			"total_prestamos": int(n or 0),
			"prestamos_origen": int(origen or 0),
			"prestamos_destino": int(destino or 0),
		}
		for estacion_id, nombre, n, origen, destino in filas
	]


def obtener_reporte_periodo(fecha_inicio: datetime, fecha_fin: datetime) -> dict:
	prestamos = _prestamos_en_rango(fecha_inicio, fecha_fin)
	return {
		"resumen": obtener_estadisticas(),
		"prestamos_por_dia": agrupar_prestamos_por_dia(prestamos),
		"transportes_mas_usados": _transportes_mas_usados(fecha_inicio, fecha_fin),
		"estaciones_mas_activas": _estaciones_mas_activas(fecha_inicio, fecha_fin),
	}


def listar_prestamos_activos(page: int = 1, limit: int = 20) -> dict:
	query = Prestamo.query.filter(Prestamo.estado == EstadoPrestamo.ACTIVO)

	total = int(query.order_by(None).with_entities(func.count(Prestamo.id)).scalar() or 0)
	items = (
		query.order_by(Prestamo.fecha_inicio.desc())
		.offset((page - 1) * limit)
		.limit(limit)
		.all()
	)

	return {
		"prestamos": [prestamo_to_dict(p, detalle=True) for p in items],
		"pagination": {
			"current_page": page,
			"total_pages": _total_pages(total, limit),
			"total_items": total,
			"items_per_page": limit,
		},
	}


# Filtro de igualdad -> columna de Prestamo
FILTROS_EXACTOS = {
	"usuario_id": Prestamo.usuario_id,
	"transporte_id": Prestamo.transporte_id,
	"estacion_origen_id": Prestamo.estacion_origen_id,
	"estacion_destino_id": Prestamo.estacion_destino_id,
	"estado": Prestamo.estado,
	"metodo_pago": Prestamo.metodo_pago,
}


def listar_prestamos(filtros: dict | None = None, page: int = 1, limit: int = 10) -> dict:
	"""
	Listado paginado de préstamos con detalle. Los filtros en None se ignoran;
	fecha_inicio/fecha_fin acotan la fecha de inicio del préstamo (inclusive).
	"""
	filtros = filtros or {}
	query = Prestamo.query

	for nombre, columna in FILTROS_EXACTOS.items():
		valor = filtros.get(nombre)
		if valor is not None:
			query = query.filter(columna == valor)

	if filtros.get("fecha_inicio") is not None:
		query = query.filter(Prestamo.fecha_inicio >= filtros["fecha_inicio"])
	if filtros.get("fecha_fin") is not None:
		query = query.filter(Prestamo.fecha_inicio <= filtros["fecha_fin"])

	total = int(query.order_by(None).with_entities(func.count(Prestamo.id)).scalar() or 0)
	items = (
		query.order_by(Prestamo.created_at.desc(), Prestamo.id.desc())
		.offset((page - 1) * limit)
		.limit(limit)
		.all()
	)

	return {
		"prestamos": [prestamo_to_dict(p, detalle=True) for p in items],
		"total": total,
		"totalPages": _total_pages(total, limit),
		"currentPage": page,
	}


def obtener_prestamo_activo_usuario(usuario_id: int) -> dict | None:
	prestamo = buscar_activo_por_usuario(usuario_id)
	return prestamo_to_dict(prestamo, detalle=True) if prestamo else None


def obtener_prestamo_detalle(prestamo_id: int) -> dict:
	prestamo = db.session.get(Prestamo, prestamo_id)
	if not prestamo:
		raise PrestamoError(errors.LOAN_NOT_FOUND, "Préstamo no encontrado")
	return prestamo_to_dict(prestamo, detalle=True)


def obtener_disponibilidad_estacion(estacion_id: int) -> dict:
	estacion = estacion_service.buscar_por_id(estacion_id)
	if not estacion:
		raise PrestamoError(errors.STATION_NOT_FOUND, "Estación no encontrada")

	transportes = transporte_service.listar_por_estacion(estacion_id)
	capacidad_maxima = int(estacion.capacidad_maxima or 0)
	actuales = len(transportes)

	return {
		"estacion": estacion_service.estacion_to_dict(estacion),
		"transportes_disponibles": [
			transporte_service.transporte_to_dict(t)
			for t in transportes
			if t.estado == EstadoTransporte.DISPONIBLE
		],
		"capacidad": {
			"capacidad_maxima": capacidad_maxima,
			"transportes_actuales": actuales,
			"espacios_libres": max(capacidad_maxima - actuales, 0),
			"puede_recibir": actuales < capacidad_maxima,
		},
	}
