from flask_jwt_extended import get_jwt, get_jwt_identity

from ecomove.utils.errors import ApiError


def usuario_actual_id() -> int:
	try:
		return int(get_jwt_identity())
	except (TypeError, ValueError):
		raise ApiError("Token inválido", 401)


def es_admin() -> bool:
	claims = get_jwt() or {}
	roles = claims.get("roles") or []
	return any(str(r).upper() in ("ADMIN", "ADMINISTRADOR") for r in roles)


def require_admin() -> None:
	if not es_admin():
		raise ApiError("No autorizado (admin)", 403, payload={"code": "ADMIN_REQUIRED"})


def require_mismo_usuario_o_admin(id_usuario: int) -> None:
	"""Un usuario solo opera sobre sus propios préstamos; el admin sobre todos."""

	if es_admin():
		return
	if usuario_actual_id() != int(id_usuario):
		raise ApiError("No autorizado", 403, payload={"code": "FORBIDDEN"})
