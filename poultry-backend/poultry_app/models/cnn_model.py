# poultry_app/models/cnn_model.py
from sqlalchemy import Column, String, Integer, Float, DateTime
from poultry_app.database.db import Base
from poultry_app.models.image import _utcnow


class CnnModel(Base):
    """Registry model classifier yang pernah di-train (read-only untuk pipeline)."""
    __tablename__ = "cnn_models"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    version = Column(String(64), nullable=True)
    accuracy = Column(Float, nullable=True)
    trained_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
