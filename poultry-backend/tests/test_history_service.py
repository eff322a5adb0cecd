from datetime import datetime, timedelta, timezone

import pytest

from poultry_app.models.cnn_model import CnnModel
from poultry_app.models.diagnosis import Diagnosis
from poultry_app.models.image import Image
from poultry_app.services.history_service import Caller, get_image_detail, list_history

BASE = datetime(2025, 3, 1, 8, 0, 0)


@pytest.fixture
def seeded(session_factory):
    with session_factory() as db:
        model = CnnModel(name="cnn-ayam", version="1.2.0", accuracy=0.93, trained_at=BASE)
        db.add(model)
        db.flush()

        images = []
        for i in range(3):
            img = Image(
                user_id=42,
                filename=f"42_{i}.jpg",
                path=f"user_uploads/ND/42_{i}.jpg",
                uploaded_at=BASE + timedelta(minutes=i),
            )
            db.add(img)
            images.append(img)
        other = Image(user_id=7, filename="7_0.jpg", path="user_uploads/Sehat/7_0.jpg", uploaded_at=BASE)
        db.add(other)
        db.flush()

        db.add(Diagnosis(user_id=42, model_id=model.id, image_id=images[2].id, label="ND", confidence=0.9))
        db.commit()
        return {"images": [img.id for img in images], "other": other.id, "model": model.id}


def test_history_newest_first_with_diagnosis(session_factory, blob_store, seeded):
    out = list_history(session_factory, blob_store, 42, Caller(42))

    ids = [item["id"] for item in out["images"]]
    assert ids == list(reversed(seeded["images"]))

    newest = out["images"][0]
    assert newest["url"] == "http://testserver/api/storage/files/user_uploads/ND/42_2.jpg"
    assert newest["uploaded_at"] == "2025-03-01T08:02:00+00:00"
    assert newest["diagnosis"]["label"] == "ND"
    assert newest["diagnosis"]["verified"] is False
    assert out["images"][1]["diagnosis"] is None

    assert out["pagination"] == {"page": 1, "limit": 10, "total": 3, "pages": 1}


def test_history_pagination(session_factory, blob_store, seeded):
    out = list_history(session_factory, blob_store, 42, Caller(42), page=2, limit=2)
    assert [item["id"] for item in out["images"]] == [seeded["images"][0]]
    assert out["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}


def test_history_of_other_user_is_denied(session_factory, blob_store, seeded):
    with pytest.raises(PermissionError):
        list_history(session_factory, blob_store, 42, Caller(7))


def test_administrator_can_read_any_history(session_factory, blob_store, seeded):
    out = list_history(session_factory, blob_store, 7, Caller(1, "administrator"))
    assert [item["id"] for item in out["images"]] == [seeded["other"]]


def test_image_detail_includes_model(session_factory, blob_store, seeded):
    detail = get_image_detail(session_factory, blob_store, seeded["images"][2], Caller(42))

    assert detail["user"] == {"id": 42}
    assert detail["diagnosis"]["confidence"] == pytest.approx(0.9)
    assert detail["diagnosis"]["model"] == {"name": "cnn-ayam", "version": "1.2.0"}


def test_image_detail_without_diagnosis(session_factory, blob_store, seeded):
    detail = get_image_detail(session_factory, blob_store, seeded["images"][0], Caller(42))
    assert detail["diagnosis"] is None


def test_image_detail_access_and_missing(session_factory, blob_store, seeded):
    with pytest.raises(PermissionError):
        get_image_detail(session_factory, blob_store, seeded["other"], Caller(42))
    assert get_image_detail(session_factory, blob_store, 9999, Caller(42)) is None


def test_verified_diagnosis(session_factory, blob_store, seeded):
    with session_factory() as db:
        diag = db.query(Diagnosis).one()
        diag.verified_by = 1
        diag.verified_at = datetime(2025, 3, 2, tzinfo=timezone.utc)
        db.commit()

    detail = get_image_detail(session_factory, blob_store, seeded["images"][2], Caller(42))
    assert detail["diagnosis"]["verified"] is True
    assert detail["diagnosis"]["verified_at"].startswith("2025-03-02T00:00:00")
