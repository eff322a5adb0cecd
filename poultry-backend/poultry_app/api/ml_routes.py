# poultry_app/api/ml_routes.py
from flask import Blueprint, current_app, jsonify, request

from poultry_app.api.auth_context import get_caller, unauthorized
from poultry_app.core.errors import PipelineError

ml_bp = Blueprint("ml", __name__)


def _error(e: PipelineError):
    return jsonify({"success": False, **e.to_dict()}), e.http_status


@ml_bp.route("/health", methods=["GET"])
def health():
    try:
        status = current_app.extensions["classifier"].health()
    except PipelineError as e:
        return _error(e)
    return jsonify({"success": True, **status}), 200


@ml_bp.route("/model", methods=["GET"])
def model_info():
    try:
        model = current_app.extensions["classifier"].model_info()
    except PipelineError as e:
        return _error(e)
    return jsonify({"success": True, "model": model}), 200


@ml_bp.route("/retrain", methods=["POST"])
def retrain():
    caller = get_caller()
    if caller is None:
        return unauthorized()
    if not caller.is_admin:
        return jsonify({"success": False, "message": "Access denied"}), 403

    body = request.get_json(silent=True) or {}
    try:
        out = current_app.extensions["classifier"].trigger_retraining(caller.id, body.get("notes", ""))
    except PipelineError as e:
        return _error(e)
    return jsonify({"success": True, **out}), 202
