import io

import httpx
import pytest
from PIL import Image as PILImage

from poultry_app import create_app
from poultry_app.core.config import Config


class ApiConfig(Config):
    TESTING = True
    LOG_LEVEL = "WARNING"
    SECRET_KEY = "test-secret"


@pytest.fixture
def app(session_factory, blob_store, classifier):
    return create_app(ApiConfig, session_factory=session_factory, blob_store=blob_store, classifier=classifier)


@pytest.fixture
def client(app):
    return app.test_client()


def _headers(user_id=42, role=None):
    h = {"X-User-Id": str(user_id)}
    if role:
        h["X-User-Role"] = role
    return h


def _upload(client, data, filename="ayam.jpg", content_type="image/jpeg", headers=None):
    return client.post(
        "/api/images/upload",
        data={"image": (io.BytesIO(data), filename, content_type)},
        content_type="multipart/form-data",
        headers=_headers() if headers is None else headers,
    )


def test_upload_success(client, image_bytes):
    resp = _upload(client, image_bytes(640, 480))

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["success"] is True
    assert body["data"]["image"]["path"].startswith("user_uploads/Coccidiosis/42_")
    assert body["data"]["image"]["dimensions"] == {"width": 640, "height": 480}
    assert body["data"]["prediction"]["label"] == "Coccidiosis"
    assert body["data"]["prediction"]["is_confident"] is True


def test_upload_requires_identity(client, image_bytes):
    resp = _upload(client, image_bytes(640, 480), headers={})
    assert resp.status_code == 401


def test_upload_without_file(client):
    resp = client.post("/api/images/upload", data={}, headers=_headers())
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "No image file uploaded"


def test_upload_rejects_non_image_mimetype(client):
    resp = _upload(client, b"hello", filename="notes.txt", content_type="text/plain")
    assert resp.status_code == 400


def test_upload_too_small_reports_stage(client, image_bytes):
    resp = _upload(client, image_bytes(60, 60))

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert body["stage"] == "validate"
    assert body["message"] == "Image too small. Minimum dimensions: 100x100px"


def test_upload_classifier_down(client, image_bytes, ml_service):
    ml_service.error = httpx.ConnectError("refused")
    resp = _upload(client, image_bytes(640, 480))
    assert resp.status_code == 503
    assert resp.get_json()["stage"] == "classify"


def test_history_and_detail(client, image_bytes):
    image_id = _upload(client, image_bytes(640, 480)).get_json()["data"]["image"]["id"]

    resp = client.get("/api/images/history/42", headers=_headers())
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert [img["id"] for img in data["images"]] == [image_id]
    assert data["images"][0]["diagnosis"]["label"] == "Coccidiosis"

    resp = client.get(f"/api/images/{image_id}", headers=_headers())
    assert resp.status_code == 200
    assert resp.get_json()["data"]["image"]["id"] == image_id

    assert client.get("/api/images/history/42", headers=_headers(7)).status_code == 403
    assert client.get(f"/api/images/{image_id}", headers=_headers(7)).status_code == 403
    assert client.get(f"/api/images/{image_id}", headers=_headers(7, "administrator")).status_code == 200
    assert client.get("/api/images/9999", headers=_headers()).status_code == 404


def test_stored_file_is_served_to_owner(client, image_bytes):
    path = _upload(client, image_bytes(640, 480)).get_json()["data"]["image"]["path"]

    resp = client.get(f"/api/storage/files/{path}", headers=_headers())
    assert resp.status_code == 200
    assert resp.mimetype == "image/jpeg"
    assert resp.headers["Cache-Control"] == "public, max-age=31536000"
    assert resp.data[:2] == b"\xff\xd8"
    resp.close()

    assert client.get(f"/api/storage/files/{path}", headers=_headers(7)).status_code == 404
    assert client.get(f"/api/storage/files/{path}").status_code == 401


def test_signed_url(client, blob_store, image_bytes):
    path = _upload(client, image_bytes(640, 480)).get_json()["data"]["image"]["path"]
    token = blob_store.signed_url(path).rsplit("/", 1)[1]

    resp = client.get(f"/api/storage/signed/{token}")
    assert resp.status_code == 200
    resp.close()
    assert client.get("/api/storage/signed/not-a-token").status_code == 403


def test_ml_health_and_model(client, ml_service):
    resp = client.get("/api/ml/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"

    resp = client.get("/api/ml/model")
    assert resp.get_json()["model"]["accuracy"] == 0.93

    ml_service.error = httpx.ConnectError("refused")
    assert client.get("/api/ml/health").status_code == 503


def test_retrain_is_admin_only(client):
    assert client.post("/api/ml/retrain", json={"notes": "x"}, headers=_headers()).status_code == 403

    resp = client.post("/api/ml/retrain", json={"notes": "x"}, headers=_headers(1, "administrator"))
    assert resp.status_code == 202
    assert resp.get_json()["task_id"] == "task-1"


def test_detail_has_signed_url(client, image_bytes):
    image_id = _upload(client, image_bytes(640, 480)).get_json()["data"]["image"]["id"]

    image = client.get(f"/api/images/{image_id}", headers=_headers()).get_json()["data"]["image"]
    assert image["signed_url"].startswith("http://testserver/api/storage/signed/")

    token = image["signed_url"].rsplit("/", 1)[1]
    resp = client.get(f"/api/storage/signed/{token}")
    assert resp.status_code == 200
    resp.close()


def test_thumbnail_and_analysis(client, image_bytes):
    image_id = _upload(client, image_bytes(640, 480)).get_json()["data"]["image"]["id"]

    resp = client.get(f"/api/images/{image_id}/thumbnail?size=64", headers=_headers())
    assert resp.status_code == 200
    assert resp.mimetype == "image/jpeg"
    assert PILImage.open(io.BytesIO(resp.data)).size == (64, 64)
    resp.close()

    resp = client.get(f"/api/images/{image_id}/analysis", headers=_headers())
    assert resp.status_code == 200
    info = resp.get_json()["data"]["analysis"]
    assert info["format"] == "jpeg"
    assert (info["width"], info["height"]) == (640, 480)

    assert client.get(f"/api/images/{image_id}/thumbnail", headers=_headers(7)).status_code == 403


def test_thumbnail_missing_blob(client, blob_store, image_bytes):
    image = _upload(client, image_bytes(640, 480)).get_json()["data"]["image"]
    blob_store.delete(image["path"])

    resp = client.get(f"/api/images/{image['id']}/thumbnail", headers=_headers())
    assert resp.status_code == 404


def test_upload_truncated_jpeg_is_400(client, image_bytes):
    data = image_bytes(600, 600, noise=True)
    resp = _upload(client, data[: len(data) // 3])
    assert resp.status_code == 400
    assert resp.get_json()["stage"] == "validate"
