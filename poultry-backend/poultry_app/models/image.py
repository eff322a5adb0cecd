# poultry_app/models/image.py
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Text, DateTime
from poultry_app.database.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Image(Base):
    """
    Satu baris per upload yang sukses tersimpan di blob storage.
    Tidak pernah di-update setelah dibuat.
    """
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)

    filename = Column(String(255), nullable=False)
    # path objek di blob storage: "<folder>/<filename>"
    path = Column(Text, nullable=False)
    source = Column(String(32), nullable=False, default="upload")

    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
