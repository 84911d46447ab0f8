# backend/seed_ecomove.py
from decimal import Decimal

from ecomove import create_app
from ecomove.extensions import db
from ecomove.models.usuario import Usuario
from ecomove.models.estacion import Estacion
from ecomove.models.transporte import Bicicleta, PatinetaElectrica, Scooter, VehiculoElectrico

app = create_app()

with app.app_context():
    if Estacion.query.first() is not None:
        raise RuntimeError("La base ya tiene estaciones; el seed es solo para una base vacía.")

    centro = Estacion(
        nombre="Estación Centro",
        direccion="Carrera 7 # 12-45",
        capacidad_maxima=20,
        latitud=Decimal("4.59810000"),
        longitud=Decimal("-74.07600000"),
    )
    parque = Estacion(
        nombre="Estación Parque 93",
        direccion="Calle 93 # 11-20",
        capacidad_maxima=12,
        latitud=Decimal("4.67690000"),
        longitud=Decimal("-74.04830000"),
    )

    db.session.add_all([centro, parque])
    db.session.flush()  # para tener ids

    transportes = [
        Bicicleta(
            modelo="Urbana 21V",
            estacion_actual_id=centro.id,
            tarifa_por_hora=6000,
            num_marchas=21,
            tipo_freno="disco",
        ),
        Bicicleta(
            modelo="Plegable City",
            estacion_actual_id=parque.id,
            tarifa_por_hora=5000,
            num_marchas=7,
            tipo_freno="v-brake",
        ),
        PatinetaElectrica(
            modelo="Xiaomi Pro 2",
            estacion_actual_id=centro.id,
            tarifa_por_hora=8000,
            nivel_bateria=90,
            velocidad_maxima=25,
            autonomia=45,
        ),
        Scooter(
            modelo="Vespa Primavera 125",
            estacion_actual_id=parque.id,
            tarifa_por_hora=15000,
            cilindraje=125,
        ),
        VehiculoElectrico(
            modelo="Renault Twizy",
            estacion_actual_id=centro.id,
            tarifa_por_hora=25000,
            nivel_bateria=80,
            autonomia=100,
            num_pasajeros=2,
        ),
    ]

    usuarios = [
        Usuario(nombre="Laura Martínez", correo="laura@test.com", documento="1020304050", telefono="3001234567"),
        Usuario(nombre="Admin EcoMove", correo="admin@test.com", documento="9000000001", role="admin"),
    ]

    db.session.add_all(transportes + usuarios)
    db.session.commit()

    print("✅ Estaciones, transportes y usuarios de prueba creados.")
