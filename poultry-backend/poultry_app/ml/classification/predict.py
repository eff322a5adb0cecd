# poultry_app/ml/classification/predict.py
import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Optional

from poultry_app.core.errors import PredictionFormatError

DEFAULT_LABELS = ("Coccidiosis", "ND", "Sehat")
BASELINE_LABEL = "Sehat"
SUM_TOLERANCE = 0.01


@dataclass(frozen=True)
class Prediction:
    """Confidence map yang sudah lolos validasi bentuk (urutan key dipertahankan)."""
    confidences: dict


@dataclass
class Interpretation:
    label: str
    confidence: float
    is_confident: bool
    all_predictions: dict
    model_info: Optional[dict] = field(default=None)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "is_confident": self.is_confident,
            "all_predictions": dict(self.all_predictions),
            "model_info": self.model_info,
        }


def parse_prediction(raw: Any, expected_labels=DEFAULT_LABELS) -> Prediction:
    """
    Validasi respons classifier (input tidak terpercaya):
    - harus object/dict
    - semua label yang diharapkan ada, tidak ada label asing
    - tiap confidence angka di [0, 1]
    - total confidence dalam 0.01 dari 1.0
    """
    if not isinstance(raw, dict) or not raw:
        raise PredictionFormatError("Invalid prediction response format: predictions must be a non-empty object")

    expected = list(expected_labels)
    missing = [c for c in expected if c not in raw]
    if missing:
        raise PredictionFormatError(f"Invalid prediction response format: missing classes {missing}")

    unknown = [c for c in raw if c not in expected]
    if unknown:
        raise PredictionFormatError(f"Invalid prediction response format: unknown classes {unknown}")

    confidences = {}
    for label, value in raw.items():
        # bool adalah subclass int, tolak eksplisit
        if isinstance(value, bool) or not isinstance(value, Real):
            raise PredictionFormatError(f"Invalid prediction response format: confidence for {label!r} is not a number")
        value = float(value)
        if math.isnan(value) or value < 0.0 or value > 1.0:
            raise PredictionFormatError(f"Invalid prediction response format: confidence for {label!r} out of range")
        confidences[str(label)] = value

    total = sum(confidences.values())
    if abs(total - 1.0) > SUM_TOLERANCE:
        raise PredictionFormatError(f"Invalid prediction response format: confidences sum to {total:.4f}")

    return Prediction(confidences=confidences)


def interpret_prediction(
    prediction: Prediction,
    threshold: float = 0.70,
    baseline_label: str = BASELINE_LABEL,
    model_info: Optional[dict] = None,
) -> Interpretation:
    """
    Pilih label dengan confidence tertinggi.

    Tie-break: label pertama (urutan iterasi map) yang confidence-nya
    STRICTLY lebih besar dari maksimum berjalan menang; nilai yang sama
    tidak menggeser leader. Semua nol -> baseline_label dengan confidence 0.
    """
    max_confidence = 0.0
    predicted_label = baseline_label

    for class_name, confidence in prediction.confidences.items():
        if confidence > max_confidence:
            max_confidence = confidence
            predicted_label = class_name

    return Interpretation(
        label=predicted_label,
        confidence=max_confidence,
        is_confident=max_confidence >= threshold,
        all_predictions=dict(prediction.confidences),
        model_info=model_info,
    )
