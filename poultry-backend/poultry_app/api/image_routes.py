# poultry_app/api/image_routes.py
import io
import logging

from flask import Blueprint, current_app, jsonify, request, send_file
from PIL import UnidentifiedImageError

from poultry_app.api.auth_context import get_caller, unauthorized
from poultry_app.core.errors import PersistenceError, StorageError
from poultry_app.services.history_service import get_image_detail, list_history
from poultry_app.services.pipeline_service import RawImage
from poultry_app.utils.image_io import JPEG_CONTENT_TYPE, create_thumbnail, get_image_analysis

logger = logging.getLogger(__name__)

images_bp = Blueprint("images", __name__)


@images_bp.route("/upload", methods=["POST"])
def upload():
    """
    Upload gambar ayam + diagnosis otomatis:
    - menerima file "image" (multipart/form-data)
    - 201 + data image & prediction, atau error dengan nama tahap yang gagal
    """
    caller = get_caller()
    if caller is None:
        return unauthorized()

    if "image" not in request.files:
        return jsonify({"success": False, "message": "No image file uploaded"}), 400

    file = request.files["image"]
    if file.filename == "":
        return jsonify({"success": False, "message": "Empty filename"}), 400

    mimetype = (file.mimetype or "").lower()
    allowed = current_app.config.get("ALLOWED_IMAGE_TYPES") or []
    if not mimetype.startswith("image/"):
        return jsonify({"success": False, "message": "Only image files are allowed"}), 400
    if allowed and mimetype not in allowed:
        return jsonify({"success": False, "message": f"Only {', '.join(allowed)} files are allowed"}), 400

    raw = RawImage(data=file.read(), content_type=mimetype, filename=file.filename)
    result = current_app.extensions["pipeline"].run(raw, caller.id)

    if result.ok:
        return jsonify(result.to_dict()), 201
    return jsonify(result.to_dict()), result.error.http_status


@images_bp.route("/history/<int:user_id>", methods=["GET"])
def history(user_id: int):
    caller = get_caller()
    if caller is None:
        return unauthorized()

    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 10, type=int)

    try:
        data = list_history(
            current_app.extensions["session_factory"],
            current_app.extensions["blob_store"],
            user_id,
            caller,
            page=page,
            limit=limit,
        )
    except PermissionError:
        return jsonify({"success": False, "message": "Access denied"}), 403
    except PersistenceError as e:
        return jsonify({"success": False, "message": e.message}), 500

    return jsonify({"success": True, "data": data}), 200


def _load_image(image_id: int):
    """
    Return (image_detail, None) atau (None, error_response).
    Cek identitas + hak akses (pemilik / administrator).
    """
    caller = get_caller()
    if caller is None:
        return None, unauthorized()

    try:
        image = get_image_detail(
            current_app.extensions["session_factory"],
            current_app.extensions["blob_store"],
            image_id,
            caller,
        )
    except PermissionError:
        return None, (jsonify({"success": False, "message": "Access denied"}), 403)
    except PersistenceError as e:
        return None, (jsonify({"success": False, "message": e.message}), 500)

    if image is None:
        return None, (jsonify({"success": False, "message": "Image not found"}), 404)
    return image, None


def _read_blob(path: str):
    try:
        return current_app.extensions["blob_store"].download(path), None
    except StorageError as e:
        logger.error("Failed to read blob %s: %s", path, e.message)
        return None, (jsonify({"success": False, "message": "Image file not available"}), 404)


@images_bp.route("/<int:image_id>", methods=["GET"])
def detail(image_id: int):
    image, err = _load_image(image_id)
    if err:
        return err

    try:
        image["signed_url"] = current_app.extensions["blob_store"].signed_url(
            image["path"], expires_in=current_app.config.get("SIGNED_URL_TTL_SECONDS", 3600)
        )
    except StorageError as e:
        logger.warning("Signed URL unavailable for %s: %s", image["path"], e.message)
        image["signed_url"] = None

    return jsonify({"success": True, "data": {"image": image}}), 200


@images_bp.route("/<int:image_id>/thumbnail", methods=["GET"])
def thumbnail(image_id: int):
    image, err = _load_image(image_id)
    if err:
        return err
    data, err = _read_blob(image["path"])
    if err:
        return err

    size = min(1024, max(16, request.args.get("size", 200, type=int)))
    try:
        thumb = create_thumbnail(data, size=size)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.error("Thumbnail failed for image %s: %s", image_id, e)
        return jsonify({"success": False, "message": "Failed to create thumbnail"}), 500
    return send_file(io.BytesIO(thumb), mimetype=JPEG_CONTENT_TYPE)


@images_bp.route("/<int:image_id>/analysis", methods=["GET"])
def analysis(image_id: int):
    image, err = _load_image(image_id)
    if err:
        return err
    data, err = _read_blob(image["path"])
    if err:
        return err

    try:
        info = get_image_analysis(data)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.error("Analysis failed for image %s: %s", image_id, e)
        return jsonify({"success": False, "message": "Failed to analyze image"}), 500
    return jsonify({"success": True, "data": {"image_id": image_id, "analysis": info}}), 200
