# poultry_app/ml/classification/client.py
"""
Client HTTP untuk ML service (classifier penyakit ayam).

Endpoint:
  POST /predict        {image: <base64>}          -> {success, predictions, model_info?}
  POST /predict/batch  {images: [<base64>, ...]}  -> {success, predictions: [...]}
  GET  /health                                    -> {status, version?}
  GET  /model/info                                -> {model: {...}}
  POST /retrain        {admin_id, notes}          -> {message, task_id?}

Client TIDAK melakukan retry. Semua exception httpx dikonversi ke
ClassifierUnavailable / ClassifierError / PredictionFormatError di sini.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from poultry_app.core.errors import ClassifierError, ClassifierUnavailable, PredictionFormatError

logger = logging.getLogger(__name__)


@dataclass
class ClassifierResponse:
    # mapping mentah dari service, belum divalidasi (lihat predict.parse_prediction)
    predictions: Any
    model_info: Optional[dict] = None


class ClassifierClient:
    def __init__(
        self,
        base_url: str,
        predict_timeout: float = 30.0,
        batch_timeout: float = 60.0,
        info_timeout: float = 10.0,
        retrain_timeout: float = 60.0,
        health_timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.predict_timeout = predict_timeout
        self.batch_timeout = batch_timeout
        self.info_timeout = info_timeout
        self.retrain_timeout = retrain_timeout
        self.health_timeout = health_timeout
        # satu connection pool untuk semua request (thread-safe)
        self._http = httpx.Client(
            base_url=self.base_url,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, timeout: float, json: Optional[dict] = None) -> dict:
        try:
            response = self._http.request(method, path, json=json, timeout=timeout)
        except httpx.TimeoutException as e:
            logger.error("ML service timeout on %s %s (%.0fs): %s", method, path, timeout, e)
            raise ClassifierUnavailable("ML service timeout", detail=str(e)) from e
        except httpx.HTTPError as e:
            logger.error("ML service unreachable on %s %s: %s", method, path, e)
            raise ClassifierUnavailable("ML service unavailable", detail=str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            logger.error("ML service %s %s -> HTTP %d: %s", method, path, response.status_code, message)
            # ada "message" (4xx maupun 5xx) = service hidup dan melaporkan gagal -> ClassifierError
            if message:
                raise ClassifierError(message, status_code=response.status_code)
            raise ClassifierUnavailable(
                "ML service unavailable",
                detail=f"HTTP {response.status_code}",
            )

        if not isinstance(data, dict):
            raise PredictionFormatError("ML service returned a non-JSON-object body")
        return data

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def predict(self, image_base64: str) -> ClassifierResponse:
        data = self._request("POST", "/predict", self.predict_timeout, json={"image": image_base64})
        if not data.get("success"):
            raise ClassifierError(data.get("message") or "Prediction failed")

        model_info = data.get("model_info")
        if model_info is not None and not isinstance(model_info, dict):
            model_info = {"value": model_info}
        return ClassifierResponse(predictions=data.get("predictions"), model_info=model_info)

    def predict_batch(self, images_base64: list) -> list:
        data = self._request("POST", "/predict/batch", self.batch_timeout, json={"images": list(images_base64)})
        if not data.get("success"):
            raise ClassifierError(data.get("message") or "Batch prediction failed")

        predictions = data.get("predictions")
        if not isinstance(predictions, list):
            raise PredictionFormatError("Batch predictions must be a list")
        return predictions

    def health(self) -> dict:
        data = self._request("GET", "/health", self.health_timeout)
        return {"status": data.get("status"), "version": data.get("version")}

    def model_info(self) -> dict:
        data = self._request("GET", "/model/info", self.info_timeout)
        model = data.get("model")
        if not isinstance(model, dict):
            raise PredictionFormatError("Model info response has no 'model' object")
        return model

    def trigger_retraining(self, admin_id, notes: str = "") -> dict:
        data = self._request(
            "POST", "/retrain", self.retrain_timeout,
            json={"admin_id": admin_id, "notes": notes or ""},
        )
        return {"message": data.get("message"), "task_id": data.get("task_id")}
