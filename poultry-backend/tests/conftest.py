import io
import json

import httpx
import numpy as np
import pytest
from PIL import Image
from sqlalchemy.pool import StaticPool

from poultry_app.database.db import make_engine, make_session_factory
from poultry_app.database.init_db import create_tables
from poultry_app.ml.classification.client import ClassifierClient
from poultry_app.utils.storage_io import LocalBlobStore


def make_image_bytes(width, height, fmt="JPEG", noise=False, color=(180, 120, 60), quality=90, mode="RGB"):
    if noise:
        rng = np.random.default_rng(1234)
        arr = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
        img = Image.fromarray(arr, mode="RGB")
    else:
        img = Image.new(mode, (width, height), color if mode == "RGB" else color + (255,))
    buf = io.BytesIO()
    save_kwargs = {"quality": quality} if fmt == "JPEG" else {}
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    return make_image_bytes


@pytest.fixture
def engine():
    eng = make_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(
        str(tmp_path / "storage"),
        "http://testserver/api/storage/files",
        secret_key="test-secret",
        signed_base_url="http://testserver/api/storage/signed",
    )


class FakeMLService:
    """Handler untuk httpx.MockTransport; mencatat semua request."""

    def __init__(self, predictions=None, model_info=None):
        self.predictions = predictions if predictions is not None else {"Coccidiosis": 0.85, "ND": 0.1, "Sehat": 0.05}
        self.model_info = model_info if model_info is not None else {"name": "cnn-ayam", "version": "1.2.0"}
        self.requests = []
        self.error = None
        self.status_code = 200
        self.body = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.body is not None:
            return httpx.Response(self.status_code, json=self.body)

        path = request.url.path
        if path == "/predict":
            return httpx.Response(200, json={
                "success": True,
                "predictions": self.predictions,
                "model_info": self.model_info,
            })
        if path == "/predict/batch":
            payload = json.loads(request.content)
            return httpx.Response(200, json={
                "success": True,
                "predictions": [self.predictions for _ in payload["images"]],
            })
        if path == "/health":
            return httpx.Response(200, json={"status": "healthy", "version": "1.2.0"})
        if path == "/model/info":
            return httpx.Response(200, json={"model": {"accuracy": 0.93, "classes": ["Coccidiosis", "ND", "Sehat"]}})
        if path == "/retrain":
            return httpx.Response(200, json={"message": "Retraining started", "task_id": "task-1"})
        return httpx.Response(404, json={"message": "not found"})

    @property
    def predict_calls(self):
        return [r for r in self.requests if r.url.path == "/predict"]


@pytest.fixture
def ml_service():
    return FakeMLService()


@pytest.fixture
def classifier(ml_service):
    client = ClassifierClient("http://ml.test", transport=httpx.MockTransport(ml_service))
    yield client
    client.close()
