import itertools
from datetime import datetime, timedelta

import pytest

from sqlalchemy.pool import StaticPool
from flask_jwt_extended import create_access_token

from ecomove import create_app
from ecomove.config import TestConfig as BaseTestConfig
from ecomove.extensions import db

# Importar modelos para que SQLAlchemy registre mappers/tablas
import ecomove.models  # noqa: F401
from ecomove.models.usuario import Usuario, EstadoUsuario
from ecomove.models.estacion import Estacion
from ecomove.models.transporte import (
	Bicicleta,
	EstadoTransporte,
	PatinetaElectrica,
	Scooter,
)
from ecomove.services.prestamo_service import PrestamoService
from ecomove.services.tarifa_service import TarifaConfig


_secuencia = itertools.count(1)


class PytestConfig(BaseTestConfig):
	SQLALCHEMY_DATABASE_URI = "sqlite://"
	SQLALCHEMY_ENGINE_OPTIONS = {
		"connect_args": {"check_same_thread": False},
		"poolclass": StaticPool,
	}
	JWT_SECRET_KEY = "test-secret"


class Reloj:
	"""Reloj controlable para el motor de préstamos."""

	def __init__(self, inicio: datetime):
		self.actual = inicio

	def __call__(self) -> datetime:
		return self.actual

	def avanzar(self, **kwargs) -> None:
		self.actual += timedelta(**kwargs)


@pytest.fixture(scope="session")
def app():
	app = create_app(PytestConfig)
	with app.app_context():
		db.create_all()
		yield app
		db.session.remove()
		db.drop_all()


@pytest.fixture(autouse=True)
def limpiar_bd(app):
	yield
	with app.app_context():
		db.session.rollback()
		for tabla in reversed(db.metadata.sorted_tables):
			db.session.execute(tabla.delete())
		db.session.commit()


@pytest.fixture()
def client(app):
	return app.test_client()


@pytest.fixture()
def db_session(app):
	with app.app_context():
		yield db.session
		db.session.rollback()


@pytest.fixture()
def reloj():
	return Reloj(datetime(2025, 3, 10, 8, 0, 0))


@pytest.fixture()
def servicio(db_session, reloj):
	return PrestamoService(db_session, tarifa_config=TarifaConfig(), ahora=reloj)


@pytest.fixture()
def make_usuario(db_session):
	def _make_usuario(
		nombre: str = "Test User",
		estado: str = EstadoUsuario.ACTIVO,
		role: str = "user",
	):
		n = next(_secuencia)
		u = Usuario(
			nombre=nombre,
			correo=f"usuario{n}@test.com",
			documento=f"10{n:08d}",
			telefono="3001234567",
			role=role,
			estado=estado,
		)
		db_session.add(u)
		db_session.commit()
		return u

	return _make_usuario


@pytest.fixture()
def make_estacion(db_session):
	def _make_estacion(nombre: str = "Estación Centro", capacidad_maxima: int = 20):
		e = Estacion(
			nombre=nombre,
			direccion="Calle 10 # 5-20",
			capacidad_maxima=capacidad_maxima,
		)
		db_session.add(e)
		db_session.commit()
		return e

	return _make_estacion


@pytest.fixture()
def make_bicicleta(db_session):
	def _make_bicicleta(
		estacion,
		tarifa_por_hora: float = 6000,
		estado: str = EstadoTransporte.DISPONIBLE,
	):
		b = Bicicleta(
			modelo="Urbana 21V",
			estado=estado,
			estacion_actual_id=estacion.id if estacion else None,
			tarifa_por_hora=tarifa_por_hora,
			num_marchas=21,
			tipo_freno="disco",
		)
		db_session.add(b)
		db_session.commit()
		return b

	return _make_bicicleta


@pytest.fixture()
def make_patineta(db_session):
	def _make_patineta(
		estacion,
		nivel_bateria: int = 100,
		tarifa_por_hora: float = 8000,
		estado: str = EstadoTransporte.DISPONIBLE,
	):
		p = PatinetaElectrica(
			modelo="Xiaomi Pro 2",
			estado=estado,
			estacion_actual_id=estacion.id if estacion else None,
			tarifa_por_hora=tarifa_por_hora,
			nivel_bateria=nivel_bateria,
			velocidad_maxima=25,
			autonomia=45,
		)
		db_session.add(p)
		db_session.commit()
		return p

	return _make_patineta


@pytest.fixture()
def make_scooter(db_session):
	def _make_scooter(
		estacion,
		tarifa_por_hora: float = 6000,
		estado: str = EstadoTransporte.DISPONIBLE,
	):
		s = Scooter(
			modelo="Vespa 125",
			estado=estado,
			estacion_actual_id=estacion.id if estacion else None,
			tarifa_por_hora=tarifa_por_hora,
			cilindraje=125,
		)
		db_session.add(s)
		db_session.commit()
		return s

	return _make_scooter


@pytest.fixture()
def make_token(app):
	def _make_token(user_id: int, roles: list[str] | None = None) -> str:
		roles = roles or []
		with app.app_context():
			return create_access_token(identity=str(user_id), additional_claims={"roles": roles})

	return _make_token


@pytest.fixture()
def auth_header(make_token):
	def _auth_header(user_id: int, roles: list[str] | None = None) -> dict:
		token = make_token(user_id, roles=roles)
		return {"Authorization": f"Bearer {token}"}

	return _auth_header


@pytest.fixture()
def admin_header(auth_header, make_usuario):
	admin = make_usuario(nombre="Admin", role="admin")
	return auth_header(admin.id, roles=["ADMIN"])
