# poultry_app/models/diagnosis.py
from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from poultry_app.database.db import Base
from poultry_app.models.image import Image, _utcnow
from poultry_app.models.cnn_model import CnnModel


class Diagnosis(Base):
    __tablename__ = "diagnoses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)

    # NULL = belum ada model tercatat di cnn_models
    model_id = Column(Integer, ForeignKey("cnn_models.id"), nullable=True)
    image_id = Column(Integer, ForeignKey("images.id"), nullable=False, index=True)

    # classification
    label = Column(String(128), nullable=False)
    confidence = Column(Float, nullable=True)

    # verifikasi dokter hewan (diisi workflow lain, bukan pipeline upload)
    verified_by = Column(Integer, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    image = relationship(Image)
    model = relationship(CnnModel)
