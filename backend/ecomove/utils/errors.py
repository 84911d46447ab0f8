from flask import jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError


class ApiError(Exception):
    """
    Excepción genérica para errores de negocio.
    """
    def __init__(self, message, status_code=400, errors=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or {}
        self.payload = payload or {}


# Códigos de error del motor de préstamos -> status HTTP
USER_NOT_ELIGIBLE = "USER_NOT_ELIGIBLE"
CONCURRENT_LOAN_EXISTS = "CONCURRENT_LOAN_EXISTS"
TRANSPORT_NOT_FOUND = "TRANSPORT_NOT_FOUND"
TRANSPORT_UNAVAILABLE = "TRANSPORT_UNAVAILABLE"
TRANSPORT_STATION_MISMATCH = "TRANSPORT_STATION_MISMATCH"
INSUFFICIENT_BATTERY = "INSUFFICIENT_BATTERY"
STATION_NOT_FOUND = "STATION_NOT_FOUND"
LOAN_NOT_FOUND = "LOAN_NOT_FOUND"
LOAN_NOT_ACTIVE = "LOAN_NOT_ACTIVE"
ONLY_ACTIVE_CANCELLABLE = "ONLY_ACTIVE_CANCELLABLE"
INTERNAL_ERROR = "INTERNAL_ERROR"

STATUS_POR_CODIGO = {
    USER_NOT_ELIGIBLE: 400,
    CONCURRENT_LOAN_EXISTS: 409,
    TRANSPORT_NOT_FOUND: 404,
    TRANSPORT_UNAVAILABLE: 409,
    TRANSPORT_STATION_MISMATCH: 400,
    INSUFFICIENT_BATTERY: 409,
    STATION_NOT_FOUND: 404,
    LOAN_NOT_FOUND: 404,
    LOAN_NOT_ACTIVE: 409,
    ONLY_ACTIVE_CANCELLABLE: 409,
    INTERNAL_ERROR: 500,
}


class PrestamoError(ApiError):
    """Violación de una regla de negocio del ciclo de vida del préstamo."""

    def __init__(self, code: str, message: str, payload: dict | None = None):
        super().__init__(
            message,
            status_code=STATUS_POR_CODIGO.get(code, 400),
            payload={"code": code, **(payload or {})},
        )
        self.code = code


def error_desde_resultado(resultado: dict) -> ApiError:
    """Convierte un resultado fallido del motor en ApiError para la capa HTTP."""
    code = resultado.get("code") or INTERNAL_ERROR
    payload = {"code": code, **(resultado.get("payload") or {})}
    return ApiError(
        resultado.get("error") or "Error interno del servidor",
        status_code=STATUS_POR_CODIGO.get(code, 400),
        payload=payload,
    )


def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        response = {
            "success": False,
            "message": err.message,
        }
        if err.errors:
            response["errors"] = err.errors
        if getattr(err, "payload", None):
            response["payload"] = err.payload

        return jsonify(response), err.status_code

    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err: ValidationError):
        response = {
            "success": False,
            "message": "Datos inválidos",
            "errors": err.messages if hasattr(err, "messages") else str(err),
        }
        return jsonify(response), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        response = {
            "success": False,
            "message": err.description or "Error HTTP",
        }
        return jsonify(response), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        app.logger.exception(err)

        response = {
            "success": False,
            "message": "Error interno del servidor",
        }
        return jsonify(response), 500
