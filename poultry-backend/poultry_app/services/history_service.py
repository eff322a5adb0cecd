# poultry_app/services/history_service.py
import math
from dataclasses import dataclass
from datetime import timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from poultry_app.core.errors import PersistenceError
from poultry_app.models.cnn_model import CnnModel
from poultry_app.models.diagnosis import Diagnosis
from poultry_app.models.image import Image

ROLE_ADMIN = "administrator"


@dataclass(frozen=True)
class Caller:
    """Identitas pemanggil yang sudah diverifikasi lapisan auth."""
    id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def _to_iso_utc(dt):
    """
    Pastikan output selalu ISO string.
    Kalau datetime dari DB naive (tanpa tzinfo), anggap UTC.
    """
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _ensure_access(caller: Caller, owner_id: int):
    if caller.id != owner_id and not caller.is_admin:
        raise PermissionError("Access denied")


def _diagnosis_dict(d: Diagnosis | None, model: CnnModel | None = None, with_model: bool = False):
    if d is None:
        return None
    out = {
        "id": d.id,
        "label": d.label,
        "confidence": d.confidence,
        "verified": d.verified_by is not None,
        "verified_by": d.verified_by,
        "verified_at": _to_iso_utc(d.verified_at),
    }
    if with_model:
        out["model"] = {
            "name": model.name if model else None,
            "version": model.version if model else None,
        }
    return out


def list_history(session_factory, blob_store, user_id: int, caller: Caller, page: int = 1, limit: int = 10) -> dict:
    """
    Riwayat upload milik user_id (terbaru dulu) + diagnosis-nya.
    Hanya pemilik atau administrator.
    """
    _ensure_access(caller, int(user_id))
    page = max(1, int(page))
    limit = min(100, max(1, int(limit)))
    offset = (page - 1) * limit

    db = session_factory()
    try:
        total = db.execute(
            select(func.count(Image.id)).where(Image.user_id == int(user_id))
        ).scalar_one()

        rows = db.execute(
            select(Image, Diagnosis)
            .outerjoin(Diagnosis, Diagnosis.image_id == Image.id)
            .where(Image.user_id == int(user_id))
            .order_by(Image.uploaded_at.desc(), Image.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to fetch image history", detail=str(e)) from e
    finally:
        db.close()

    items = []
    for img, diag in rows:
        items.append(
            {
                "id": img.id,
                "filename": img.filename,
                "url": blob_store.public_url(img.path),
                "uploaded_at": _to_iso_utc(img.uploaded_at),
                "diagnosis": _diagnosis_dict(diag),
            }
        )

    return {
        "images": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


def get_image_detail(session_factory, blob_store, image_id: int, caller: Caller):
    """
    Detail satu gambar + diagnosis + info model. None kalau tidak ada.
    """
    model_alias = aliased(CnnModel)
    db = session_factory()
    try:
        row = db.execute(
            select(Image, Diagnosis, model_alias)
            .outerjoin(Diagnosis, Diagnosis.image_id == Image.id)
            .outerjoin(model_alias, model_alias.id == Diagnosis.model_id)
            .where(Image.id == int(image_id))
            .order_by(Diagnosis.id.asc())
            .limit(1)
        ).first()
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to fetch image details", detail=str(e)) from e
    finally:
        db.close()

    if not row:
        return None

    img, diag, model = row
    _ensure_access(caller, img.user_id)

    return {
        "id": img.id,
        "filename": img.filename,
        "path": img.path,
        "url": blob_store.public_url(img.path),
        "uploaded_at": _to_iso_utc(img.uploaded_at),
        "user": {"id": img.user_id},
        "diagnosis": _diagnosis_dict(diag, model, with_model=True),
    }
