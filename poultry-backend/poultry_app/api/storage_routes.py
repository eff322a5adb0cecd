# poultry_app/api/storage_routes.py
import os

from flask import Blueprint, current_app, send_file
from sqlalchemy import select

from poultry_app.api.auth_context import get_caller, unauthorized
from poultry_app.core.errors import StorageError
from poultry_app.models.image import Image
from poultry_app.utils.storage_io import LocalBlobStore

storage_bp = Blueprint("storage_bp", __name__)


def _local_store() -> LocalBlobStore | None:
    store = current_app.extensions["blob_store"]
    return store if isinstance(store, LocalBlobStore) else None


def _authorize(db, blob_path: str, caller) -> bool:
    row = db.execute(select(Image.user_id).where(Image.path == blob_path)).first()
    if not row:
        return False
    return caller.is_admin or row[0] == caller.id


def _send_blob(store: LocalBlobStore, abs_path: str, blob_path: str):
    if not os.path.isfile(abs_path):
        return {"success": False, "message": "File tidak ditemukan"}, 404
    meta = store.read_metadata(blob_path)
    resp = send_file(abs_path, mimetype=meta.get("content_type") or None, as_attachment=False)
    resp.headers["Cache-Control"] = meta.get("cache_control") or "no-cache"
    return resp


@storage_bp.get("/files/<path:blob_path>")
def get_file(blob_path):
    """
    Serve blob lokal: /api/storage/files/user_uploads/<label>/<filename>
    Hanya pemilik gambar (X-User-Id) atau administrator.
    """
    store = _local_store()
    if store is None:
        return {"success": False, "message": "Storage lokal tidak aktif"}, 404

    caller = get_caller()
    if caller is None:
        return unauthorized()

    # path dari FE kadang pakai backslash (Windows)
    blob_path = blob_path.replace("\\", "/").lstrip("/")

    db = current_app.extensions["session_factory"]()
    try:
        if not _authorize(db, blob_path, caller):
            return {"success": False, "message": "Data tidak ditemukan"}, 404
    finally:
        db.close()

    try:
        abs_path = store.abs_path(blob_path)
    except StorageError:
        return {"success": False, "message": "path tidak valid"}, 400
    return _send_blob(store, abs_path, blob_path)


@storage_bp.get("/signed/<token>")
def get_signed_file(token):
    """Serve blob lokal lewat signed URL (tanpa header identitas)."""
    store = _local_store()
    if store is None:
        return {"success": False, "message": "Storage lokal tidak aktif"}, 404

    try:
        abs_path = store.resolve_signed_token(token)
    except StorageError as e:
        return {"success": False, "message": e.message}, 403

    blob_path = os.path.relpath(abs_path, store.root).replace(os.sep, "/")
    return _send_blob(store, abs_path, blob_path)
