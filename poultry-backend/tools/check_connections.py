# tools/check_connections.py
"""
Cek koneksi ke semua dependency eksternal (database, ML service, blob storage).

Contoh:
  python tools/check_connections.py
  python tools/check_connections.py --skip storage
"""
import argparse
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from poultry_app.core.config import Config
from poultry_app.core.errors import PipelineError
from poultry_app.services.pipeline_service import build_classifier
from poultry_app.utils.storage_io import build_blob_store

CHECKS = ("database", "ml", "storage")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Cek koneksi database, ML service, dan blob storage.")
    p.add_argument("--skip", nargs="*", default=[], choices=CHECKS,
                   help="Lewati pengecekan tertentu.")
    return p.parse_args(argv)


def check_database(config=Config):
    from poultry_app.database.db import make_engine
    engine = make_engine(config.database_url())
    try:
        with engine.connect() as conn:
            n = conn.execute(text("SELECT COUNT(*) FROM cnn_models")).scalar_one()
        return True, f"cnn_models rows: {n}"
    except SQLAlchemyError as e:
        return False, str(e)
    finally:
        engine.dispose()


def check_ml(config=Config):
    client = build_classifier(config)
    try:
        model = client.model_info()
    except PipelineError as e:
        return False, e.message if not e.detail else f"{e.message} ({e.detail})"
    finally:
        client.close()
    accuracy = model.get("accuracy")
    classes = model.get("classes") or []
    acc_txt = f"{float(accuracy) * 100:.1f}%" if isinstance(accuracy, (int, float)) else "-"
    return True, f"accuracy {acc_txt}, classes: {', '.join(map(str, classes))}"


def check_storage(config=Config):
    try:
        store = build_blob_store(config)
        files = store.list(config.UPLOAD_FOLDER_PREFIX)
    except (PipelineError, ValueError) as e:
        return False, str(e)
    return True, f"{config.STORAGE_BACKEND}: {len(files)} object(s) under {config.UPLOAD_FOLDER_PREFIX}/"


def main(argv=None) -> int:
    args = parse_args(argv)
    runners = {"database": check_database, "ml": check_ml, "storage": check_storage}

    failed = 0
    for name in CHECKS:
        if name in args.skip:
            continue
        ok, msg = runners[name]()
        print(f"[{'OK' if ok else 'FAIL'}] {name}: {msg}")
        failed += 0 if ok else 1

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
