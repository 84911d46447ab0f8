from flask import jsonify

from ecomove.utils.errors import error_desde_resultado


def success_response(data=None, message="OK", status_code=200):
    payload = {"success": True, "message": message}
    if data is not None:
        payload["data"] = data
    response = jsonify(payload)
    response.status_code = status_code
    return response


def resultado_response(resultado: dict, message: str, status_code: int = 200):
    """Respuesta HTTP a partir del resultado {success, data | error} del motor."""
    if not resultado.get("success"):
        raise error_desde_resultado(resultado)
    return success_response(data=resultado.get("data"), message=message, status_code=status_code)
