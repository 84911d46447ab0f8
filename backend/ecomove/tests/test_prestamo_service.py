import pytest
from sqlalchemy import event
from sqlalchemy.dialects import mysql
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ecomove.extensions import db
from ecomove.models.prestamo import EstadoPrestamo, MetodoPago, Prestamo
from ecomove.models.transporte import EstadoTransporte, Transporte
from ecomove.models.usuario import EstadoUsuario
from ecomove.services import prestamo_service, transporte_service
from ecomove.services.prestamo_service import PrestamoService
from ecomove.services.tarifa_service import TarifaConfig
from ecomove.utils import errors


def _transporte(transporte_id):
	db.session.expire_all()
	return db.session.get(Transporte, transporte_id)


def _prestamo(prestamo_id):
	db.session.expire_all()
	return db.session.get(Prestamo, prestamo_id)


def test_iniciar_prestamo_ok(servicio, reloj, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	r = servicio.iniciar_prestamo(u.id, b.id, e.id, duracion_estimada=60)

	assert r["success"] is True
	data = r["data"]
	assert data["usuario_id"] == u.id
	assert data["transporte_id"] == b.id
	assert data["estacion_origen_id"] == e.id
	assert data["estado"] == EstadoPrestamo.ACTIVO
	assert data["duracion_estimada"] == 60
	assert data["fecha_inicio"] == reloj().isoformat()
	assert data["costo_total"] is None

	assert _transporte(b.id).estado == EstadoTransporte.EN_USO


def test_duracion_estimada_por_defecto(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	r = servicio.iniciar_prestamo(u.id, b.id, e.id)
	assert r["data"]["duracion_estimada"] == 120


def test_usuario_inexistente_o_inactivo(servicio, make_usuario, make_estacion, make_bicicleta):
	e = make_estacion()
	b = make_bicicleta(e)
	suspendido = make_usuario(estado=EstadoUsuario.SUSPENDIDO)

	r1 = servicio.iniciar_prestamo(999999, b.id, e.id)
	r2 = servicio.iniciar_prestamo(suspendido.id, b.id, e.id)

	for r in (r1, r2):
		assert r["success"] is False
		assert r["code"] == errors.USER_NOT_ELIGIBLE
	assert _transporte(b.id).estado == EstadoTransporte.DISPONIBLE


def test_un_solo_prestamo_en_curso_por_usuario(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b1 = make_bicicleta(e)
	b2 = make_bicicleta(e)

	r1 = servicio.iniciar_prestamo(u.id, b1.id, e.id)
	r2 = servicio.iniciar_prestamo(u.id, b2.id, e.id)

	assert r1["success"] is True
	assert r2["success"] is False
	assert r2["code"] == errors.CONCURRENT_LOAN_EXISTS
	assert r2["payload"]["prestamo_id"] == r1["data"]["id"]

	# El segundo transporte no se tocó
	assert _transporte(b2.id).estado == EstadoTransporte.DISPONIBLE
	assert Prestamo.query.filter_by(usuario_id=u.id).count() == 1


def test_prestamo_extendido_tambien_bloquea_uno_nuevo(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b1 = make_bicicleta(e)
	b2 = make_bicicleta(e)

	r1 = servicio.iniciar_prestamo(u.id, b1.id, e.id)
	servicio.extender_prestamo(r1["data"]["id"], 30)

	r2 = servicio.iniciar_prestamo(u.id, b2.id, e.id)
	assert r2["code"] == errors.CONCURRENT_LOAN_EXISTS


def test_transporte_inexistente(servicio, make_usuario, make_estacion):
	u = make_usuario()
	e = make_estacion()

	r = servicio.iniciar_prestamo(u.id, 999999, e.id)
	assert r["code"] == errors.TRANSPORT_NOT_FOUND


def test_transporte_no_disponible(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e, estado=EstadoTransporte.MANTENIMIENTO)

	r = servicio.iniciar_prestamo(u.id, b.id, e.id)
	assert r["code"] == errors.TRANSPORT_UNAVAILABLE
	assert Prestamo.query.filter_by(usuario_id=u.id).count() == 0


def test_transporte_en_otra_estacion(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e1 = make_estacion(nombre="Norte")
	e2 = make_estacion(nombre="Sur")
	b = make_bicicleta(e1)

	r = servicio.iniciar_prestamo(u.id, b.id, e2.id)
	assert r["code"] == errors.TRANSPORT_STATION_MISMATCH


def test_bateria_insuficiente(servicio, make_usuario, make_estacion, make_patineta):
	u = make_usuario()
	e = make_estacion()
	p = make_patineta(e, nivel_bateria=10)

	r = servicio.iniciar_prestamo(u.id, p.id, e.id)
	assert r["success"] is False
	assert r["code"] == errors.INSUFFICIENT_BATTERY
	assert r["payload"]["nivel_bateria"] == 10
	assert _transporte(p.id).estado == EstadoTransporte.DISPONIBLE


def test_bateria_en_el_minimo_es_suficiente(servicio, make_usuario, make_estacion, make_patineta):
	u = make_usuario()
	e = make_estacion()
	p = make_patineta(e, nivel_bateria=15)

	r = servicio.iniciar_prestamo(u.id, p.id, e.id)
	assert r["success"] is True


def test_falla_al_actualizar_transporte_revierte_el_prestamo(
	servicio, monkeypatch, make_usuario, make_estacion, make_bicicleta
):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	def _falla(*args, **kwargs):
		raise OperationalError("UPDATE transporte", {}, Exception("conexión perdida"))

	monkeypatch.setattr(transporte_service, "actualizar_estado", _falla)

	r = servicio.iniciar_prestamo(u.id, b.id, e.id)

	assert r["success"] is False
	assert r["code"] == errors.INTERNAL_ERROR
	assert r["error"] == "Error interno del servidor"

	db.session.expire_all()
	assert Prestamo.query.filter_by(usuario_id=u.id).count() == 0
	assert _transporte(b.id).estado == EstadoTransporte.DISPONIBLE


def test_finalizar_prestamo_calcula_costo_y_mueve_transporte(
	servicio, reloj, make_usuario, make_estacion, make_bicicleta
):
	u = make_usuario()
	origen = make_estacion(nombre="Origen")
	destino = make_estacion(nombre="Destino")
	b = make_bicicleta(origen, tarifa_por_hora=6000)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, origen.id)["data"]["id"]
	reloj.avanzar(minutes=44, seconds=30)

	r = servicio.finalizar_prestamo(prestamo_id, destino.id, MetodoPago.TARJETA_CREDITO)

	assert r["success"] is True
	calculo = r["data"]["calculo_tarifa"]
	assert calculo["duracion_minutos"] == 45
	assert calculo["costo_total"] == 5130.0

	prestamo = r["data"]["prestamo"]
	assert prestamo["estado"] == EstadoPrestamo.COMPLETADO
	assert prestamo["costo_total"] == 5130.0
	assert prestamo["metodo_pago"] == MetodoPago.TARJETA_CREDITO
	assert prestamo["estacion_destino_id"] == destino.id
	assert prestamo["estacion_destino_nombre"] == "Destino"
	assert prestamo["fecha_fin"] == reloj().isoformat()

	t = _transporte(b.id)
	assert t.estado == EstadoTransporte.DISPONIBLE
	assert t.estacion_actual_id == destino.id


def test_finalizar_usa_efectivo_por_defecto(servicio, reloj, make_usuario, make_estacion, make_scooter):
	u = make_usuario()
	e = make_estacion()
	s = make_scooter(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, s.id, e.id)["data"]["id"]
	reloj.avanzar(minutes=20)

	r = servicio.finalizar_prestamo(prestamo_id, e.id)
	assert r["data"]["prestamo"]["metodo_pago"] == MetodoPago.EFECTIVO
	assert r["data"]["calculo_tarifa"]["costo_total"] == 2180.0


def test_finalizar_con_estacion_destino_inexistente(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	r = servicio.finalizar_prestamo(prestamo_id, 999999)

	assert r["code"] == errors.STATION_NOT_FOUND
	assert _prestamo(prestamo_id).estado == EstadoPrestamo.ACTIVO
	assert _transporte(b.id).estado == EstadoTransporte.EN_USO


def test_prestamo_inexistente(servicio):
	assert servicio.finalizar_prestamo(999999, 1)["code"] == errors.LOAN_NOT_FOUND
	assert servicio.cancelar_prestamo(999999)["code"] == errors.LOAN_NOT_FOUND
	assert servicio.extender_prestamo(999999, 30)["code"] == errors.LOAN_NOT_FOUND


def test_estado_terminal_no_cambia(servicio, reloj, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	origen = make_estacion(nombre="Origen")
	destino = make_estacion(nombre="Destino")
	otra = make_estacion(nombre="Otra")
	b = make_bicicleta(origen)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, origen.id)["data"]["id"]
	reloj.avanzar(minutes=45)
	servicio.finalizar_prestamo(prestamo_id, destino.id)

	antes = _prestamo(prestamo_id)
	costo, fin = antes.costo_total, antes.fecha_fin

	reloj.avanzar(minutes=30)
	r1 = servicio.finalizar_prestamo(prestamo_id, otra.id)
	r2 = servicio.cancelar_prestamo(prestamo_id)

	assert r1["code"] == errors.LOAN_NOT_ACTIVE
	assert r1["payload"]["estado"] == EstadoPrestamo.COMPLETADO
	assert r2["code"] == errors.ONLY_ACTIVE_CANCELLABLE

	despues = _prestamo(prestamo_id)
	assert despues.estado == EstadoPrestamo.COMPLETADO
	assert despues.costo_total == costo
	assert despues.fecha_fin == fin
	assert _transporte(b.id).estacion_actual_id == destino.id


def test_cancelar_prestamo_libera_transporte(servicio, reloj, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	reloj.avanzar(minutes=5)

	r = servicio.cancelar_prestamo(prestamo_id, razon="Cambio de planes")

	assert r["success"] is True
	assert r["data"]["estado"] == EstadoPrestamo.CANCELADO
	assert r["data"]["fecha_fin"] == reloj().isoformat()
	assert r["data"]["costo_total"] is None

	t = _transporte(b.id)
	assert t.estado == EstadoTransporte.DISPONIBLE
	assert t.estacion_actual_id == e.id

	# Cancelado es terminal
	assert servicio.cancelar_prestamo(prestamo_id)["code"] == errors.ONLY_ACTIVE_CANCELLABLE
	assert servicio.finalizar_prestamo(prestamo_id, e.id)["code"] == errors.LOAN_NOT_ACTIVE


def test_extender_prestamo_suma_costo_adicional(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e, tarifa_por_hora=6000)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	r = servicio.extender_prestamo(prestamo_id, 30)

	assert r["success"] is True
	assert r["data"]["costo_adicional"] == 3000.0
	assert r["data"]["prestamo"]["estado"] == EstadoPrestamo.EXTENDIDO
	assert r["data"]["prestamo"]["costo_total"] == 3000.0


def test_prestamo_extendido_no_se_puede_volver_a_extender(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	servicio.extender_prestamo(prestamo_id, 30)

	r = servicio.extender_prestamo(prestamo_id, 30)
	assert r["code"] == errors.LOAN_NOT_ACTIVE
	assert float(_prestamo(prestamo_id).costo_total) == 3000.0


def test_prestamo_extendido_no_se_puede_finalizar_ni_cancelar(
	servicio, reloj, make_usuario, make_estacion, make_bicicleta
):
	# Comportamiento conservado: solo 'active' puede finalizarse o cancelarse,
	# así que un préstamo extendido queda sin salida por estas operaciones.
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	servicio.extender_prestamo(prestamo_id, 60)
	reloj.avanzar(minutes=90)

	r1 = servicio.finalizar_prestamo(prestamo_id, e.id)
	r2 = servicio.cancelar_prestamo(prestamo_id)

	assert r1["code"] == errors.LOAN_NOT_ACTIVE
	assert r1["payload"]["estado"] == EstadoPrestamo.EXTENDIDO
	assert r2["code"] == errors.ONLY_ACTIVE_CANCELLABLE
	assert _prestamo(prestamo_id).estado == EstadoPrestamo.EXTENDIDO
	assert _transporte(b.id).estado == EstadoTransporte.EN_USO


def test_estimar_tarifa(servicio, make_estacion, make_bicicleta):
	e = make_estacion()
	b = make_bicicleta(e, tarifa_por_hora=6000)

	r = servicio.estimar_tarifa(b.id, 45)
	assert r["data"]["transporte_tipo"] == "bicycle"
	assert r["data"]["calculo_tarifa"]["costo_total"] == 5130.0

	assert servicio.estimar_tarifa(999999, 45)["code"] == errors.TRANSPORT_NOT_FOUND


def test_actualizar_prestamo_ignora_campos_no_permitidos(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	prestamo = _prestamo(prestamo_id)

	prestamo_service.actualizar_prestamo(prestamo, usuario_id=12345, metodo_pago=MetodoPago.PSE)
	assert prestamo.usuario_id == u.id
	assert prestamo.metodo_pago == MetodoPago.PSE
	db.session.rollback()


def test_actualizar_prestamo_sin_campos_validos(servicio, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)

	prestamo_id = servicio.iniciar_prestamo(u.id, b.id, e.id)["data"]["id"]
	prestamo = _prestamo(prestamo_id)

	with pytest.raises(ValueError, match="campos"):
		prestamo_service.actualizar_prestamo(prestamo, usuario_id=12345, estado=None)


def test_estado_de_transporte_invalido(make_estacion, make_bicicleta, db_session):
	e = make_estacion()
	b = make_bicicleta(e)

	with pytest.raises(ValueError):
		transporte_service.actualizar_estado(b.id, "perdido")


def test_servicio_con_sesion_propia_confirma_en_esa_sesion(
	db_session, reloj, make_usuario, make_estacion, make_bicicleta
):
	u = make_usuario()
	origen = make_estacion(nombre="Origen")
	destino = make_estacion(nombre="Destino")
	b = make_bicicleta(origen)
	usuario_id, origen_id, destino_id, transporte_id = u.id, origen.id, destino.id, b.id

	otra = Session(bind=db.engine)
	try:
		servicio = PrestamoService(otra, tarifa_config=TarifaConfig(), ahora=reloj)
		r = servicio.iniciar_prestamo(usuario_id, transporte_id, origen_id)
		assert r["success"] is True
		prestamo_id = r["data"]["id"]

		# Lo pendiente en la sesión global no debe afectar lo confirmado
		db.session.rollback()
		assert Prestamo.query.filter_by(usuario_id=usuario_id).count() == 1
		assert _transporte(transporte_id).estado == EstadoTransporte.EN_USO

		reloj.avanzar(minutes=45)
		r = servicio.finalizar_prestamo(prestamo_id, destino_id)
		assert r["success"] is True
	finally:
		otra.close()

	db.session.rollback()
	assert _prestamo(prestamo_id).estado == EstadoPrestamo.COMPLETADO
	transporte = _transporte(transporte_id)
	assert transporte.estado == EstadoTransporte.DISPONIBLE
	assert transporte.estacion_actual_id == destino_id


def test_iniciar_bloquea_usuario_y_transporte(db_session, reloj, make_usuario, make_estacion, make_bicicleta):
	u = make_usuario()
	e = make_estacion()
	b = make_bicicleta(e)
	usuario_id, estacion_id, transporte_id = u.id, e.id, b.id

	sentencias = []

	def _registrar(estado):
		if estado.is_select:
			sentencias.append(str(estado.statement.compile(dialect=mysql.dialect())))

	otra = Session(bind=db.engine)
	event.listen(otra, "do_orm_execute", _registrar)
	try:
		servicio = PrestamoService(otra, tarifa_config=TarifaConfig(), ahora=reloj)
		assert servicio.iniciar_prestamo(usuario_id, transporte_id, estacion_id)["success"] is True
	finally:
		otra.close()

	bloqueadas = [s for s in sentencias if s.rstrip().endswith("FOR UPDATE")]
	assert any("FROM usuario" in s for s in bloqueadas)
	assert any("FROM transporte" in s for s in bloqueadas)

	# La verificación de préstamo en curso corre después de tomar el usuario
	primera_usuario = next(i for i, s in enumerate(sentencias) if "FROM usuario" in s)
	primera_prestamo = next(i for i, s in enumerate(sentencias) if "FROM prestamo" in s)
	assert sentencias[primera_usuario].rstrip().endswith("FOR UPDATE")
	assert primera_usuario < primera_prestamo
