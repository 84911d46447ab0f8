from datetime import timedelta, timezone

from marshmallow import fields, validates_schema, ValidationError, validate

from ecomove.extensions.ma import ma
from ecomove.models.prestamo import EstadoPrestamo, MetodoPago


MAX_DIAS_REPORTE = 365


class PrestamoCreateSchema(ma.Schema):
    """
    Datos para iniciar un préstamo.
    Si no se envía usuario_id se usa el del token.
    """

    usuario_id = fields.Integer(required=False, load_default=None, validate=validate.Range(min=1))
    transporte_id = fields.Integer(required=True, validate=validate.Range(min=1))
    estacion_origen_id = fields.Integer(required=True, validate=validate.Range(min=1))
    duracion_estimada = fields.Integer(
        required=False,
        load_default=None,
        validate=validate.Range(min=15, max=1440),
    )


class FinalizarPrestamoSchema(ma.Schema):
    estacion_destino_id = fields.Integer(required=True, validate=validate.Range(min=1))
    metodo_pago = fields.String(
        required=False,
        load_default=MetodoPago.EFECTIVO,
        validate=validate.OneOf(MetodoPago.TODOS),
    )


class CancelarPrestamoSchema(ma.Schema):
    razon = fields.String(
        required=False,
        load_default=None,
        validate=validate.Length(min=3, max=255),
    )


class ExtenderPrestamoSchema(ma.Schema):
    minutos_adicionales = fields.Integer(required=True, validate=validate.Range(min=15, max=480))


class PaginacionQuerySchema(ma.Schema):
    page = fields.Integer(load_default=1, validate=validate.Range(min=1))
    limit = fields.Integer(load_default=10, validate=validate.Range(min=1, max=100))


class ActivosQuerySchema(PaginacionQuerySchema):
    limit = fields.Integer(load_default=20, validate=validate.Range(min=1, max=100))


class ReporteQuerySchema(ma.Schema):
    # ISO 8601; con zona horaria se convierte a UTC sin tz, como se guarda en la BD
    fecha_inicio = fields.NaiveDateTime(required=True, timezone=timezone.utc)
    fecha_fin = fields.NaiveDateTime(required=True, timezone=timezone.utc)

    @validates_schema
    def validar_rango(self, data, **kwargs):
        inicio = data.get("fecha_inicio")
        fin = data.get("fecha_fin")
        if not inicio or not fin:
            return
        if inicio > fin:
            raise ValidationError(
                "La fecha de inicio debe ser anterior a la fecha de fin",
                field_name="fecha_inicio",
            )
        if fin - inicio > timedelta(days=MAX_DIAS_REPORTE):
            raise ValidationError(
                "El rango de fechas no puede ser mayor a un año",
                field_name="fecha_fin",
            )


class PrestamoFiltrosQuerySchema(PaginacionQuerySchema):
    """Filtros del listado general de préstamos. Todos son opcionales."""

    usuario_id = fields.Integer(load_default=None, validate=validate.Range(min=1))
    transporte_id = fields.Integer(load_default=None, validate=validate.Range(min=1))
    estacion_origen_id = fields.Integer(load_default=None, validate=validate.Range(min=1))
    estacion_destino_id = fields.Integer(load_default=None, validate=validate.Range(min=1))
    estado = fields.String(load_default=None, validate=validate.OneOf(EstadoPrestamo.TODOS))
    metodo_pago = fields.String(load_default=None, validate=validate.OneOf(MetodoPago.TODOS))
    fecha_inicio = fields.NaiveDateTime(load_default=None, timezone=timezone.utc)
    fecha_fin = fields.NaiveDateTime(load_default=None, timezone=timezone.utc)

    @validates_schema
    def validar_fechas(self, data, **kwargs):
        desde = data.get("fecha_inicio")
        hasta = data.get("fecha_fin")
        if desde and hasta and desde > hasta:
            raise ValidationError(
                "La fecha de inicio debe ser anterior a la fecha de fin",
                field_name="fecha_inicio",
            )


class CalcularTarifaSchema(ma.Schema):
    transporte_id = fields.Integer(required=True, validate=validate.Range(min=1))
    duracion_minutos = fields.Integer(required=True, validate=validate.Range(min=1, max=1440))
