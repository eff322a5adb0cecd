# poultry_app/api/auth_context.py
from flask import request

from poultry_app.services.history_service import Caller


def get_caller() -> Caller | None:
    """
    Identitas + role sudah diverifikasi gateway/auth layer di depan service ini
    dan diteruskan lewat header.
    """
    raw_id = (request.headers.get("X-User-Id") or "").strip()
    if not raw_id:
        return None
    try:
        user_id = int(raw_id)
    except ValueError:
        return None
    role = (request.headers.get("X-User-Role") or "user").strip().lower()
    return Caller(id=user_id, role=role)


def unauthorized():
    return {"success": False, "message": "Caller identity wajib (X-User-Id)."}, 401
