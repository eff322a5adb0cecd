# poultry_app/__init__.py
import logging
import sys

from flask import Flask
from flask_cors import CORS
from .core.config import Config
from .api.image_routes import images_bp
from .api.ml_routes import ml_bp
from .api.storage_routes import storage_bp


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_app(config=Config, session_factory=None, blob_store=None, classifier=None):
    """
    Application factory. Komponen (DB session, blob store, classifier) bisa
    di-inject untuk testing; default dirakit dari Config.
    """
    from .services.pipeline_service import build_classifier, build_pipeline
    from .utils.storage_io import build_blob_store

    configure_logging(config.LOG_LEVEL)

    app = Flask(__name__)
    app.config.from_object(config)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_SIZE

    if session_factory is None:
        from .database.db import SessionLocal
        session_factory = SessionLocal
    if blob_store is None:
        blob_store = build_blob_store(config)
    if classifier is None:
        classifier = build_classifier(config)

    # dipakai bersama oleh semua request (pool DB, pool HTTP, client storage)
    app.extensions["session_factory"] = session_factory
    app.extensions["blob_store"] = blob_store
    app.extensions["classifier"] = classifier
    app.extensions["pipeline"] = build_pipeline(
        config,
        session_factory=session_factory,
        blob_store=blob_store,
        classifier=classifier,
    )

    # Izinkan akses dari frontend
    CORS(app, resources={r"/api/*": {"origins": "*"}}, allow_headers=["Content-Type", "X-User-Id", "X-User-Role"])

    app.register_blueprint(images_bp, url_prefix="/api/images")
    app.register_blueprint(ml_bp, url_prefix="/api/ml")
    app.register_blueprint(storage_bp, url_prefix="/api/storage")

    return app
