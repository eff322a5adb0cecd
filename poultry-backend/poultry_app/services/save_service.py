# poultry_app/services/save_service.py
"""
Urutan penyimpanan hasil upload (WAJIB berurutan):

  1. blob gambar ke storage         -> StorageError
  2. baris `images`                 -> PersistenceError (blob TIDAK dihapus)
  3. model id terbaru + `diagnoses` -> PersistenceError (row images TIDAK di-rollback)

Tidak ada transaksi lintas storage/DB dan tidak ada retry otomatis; blob atau
row yang tertinggal setelah kegagalan tahap berikutnya adalah orphan yang
diketahui.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from poultry_app.core.errors import PersistenceError
from poultry_app.models.cnn_model import CnnModel
from poultry_app.models.diagnosis import Diagnosis
from poultry_app.models.image import Image
from poultry_app.utils.storage_io import BlobStore, StoredBlob

logger = logging.getLogger(__name__)


@dataclass
class SavedImage:
    id: int
    filename: str
    path: str
    public_url: str


class PersistenceCoordinator:
    def __init__(self, blob_store: BlobStore, session_factory):
        self.blob_store = blob_store
        self.session_factory = session_factory

    # 1) blob
    def store_blob(self, data: bytes, folder: str, file_name: str, content_type: str) -> StoredBlob:
        return self.blob_store.upload(file_name, data, content_type, folder=folder)

    # 2) images
    def insert_image(self, user_id: int, file_name: str, blob: StoredBlob, source: str = "upload") -> SavedImage:
        db = self.session_factory()
        try:
            row = Image(
                user_id=int(user_id),
                filename=file_name,
                path=blob.path,
                source=source,
            )
            db.add(row)
            db.commit()
            image_id = row.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save image metadata for %s: %s", blob.path, e)
            raise PersistenceError("Failed to save image metadata", detail=f"DB error: {e}") from e
        finally:
            db.close()

        return SavedImage(id=image_id, filename=file_name, path=blob.path, public_url=blob.public_url)

    # 3a) model id terbaru (boleh None)
    def latest_model_id(self, db) -> int | None:
        return db.execute(
            select(CnnModel.id).order_by(CnnModel.trained_at.desc(), CnnModel.id.desc()).limit(1)
        ).scalar_one_or_none()

    # 3b) diagnoses
    def insert_diagnosis(self, user_id: int, image_id: int, label: str, confidence: float) -> tuple:
        """Return (diagnosis_id, model_id)."""
        db = self.session_factory()
        try:
            model_id = self.latest_model_id(db)
            row = Diagnosis(
                user_id=int(user_id),
                model_id=model_id,
                image_id=int(image_id),
                label=str(label),
                confidence=float(confidence) if confidence is not None else None,
            )
            db.add(row)
            db.commit()
            diagnosis_id = row.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save diagnosis result for image %s: %s", image_id, e)
            raise PersistenceError("Failed to save diagnosis result", detail=f"DB error: {e}") from e
        finally:
            db.close()

        return diagnosis_id, model_id
