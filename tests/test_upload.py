import pytest
from conftest import auth_header

from locallens.main import app
from locallens.media import MAX_IMAGE_BYTES, MediaStorageError, describe_upload, get_media_store, make_public_id

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeMediaStore:
    """Stands in for the Cloudinary-backed store."""

    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail = False

    def upload(self, data, public_id, caption=None):
        if self.fail:
            raise MediaStorageError("Failed to upload image")
        self.uploaded.append(public_id)
        result = {
            "secure_url": f"https://res.example.com/{public_id}.png",
            "public_id": f"locallens/reports/{public_id}",
            "width": 10,
            "height": 10,
            "format": "png",
            "bytes": len(data),
        }
        return describe_upload(result, caption)

    def delete(self, public_id):
        if public_id in self.deleted:
            return False
        self.deleted.append(public_id)
        return True

    def signed_upload(self, public_id, timestamp=None):
        return {"url": "https://upload.example.com", "params": {"public_id": public_id, "signature": "sig"}}


@pytest.fixture
def store():
    fake = FakeMediaStore()
    app.dependency_overrides[get_media_store] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_media_store, None)


def test_upload_single_image(client, citizen, store):
    response = client.post(
        "/api/upload/image",
        files={"image": ("street.png", PNG_BYTES, "image/png")},
        headers=auth_header(citizen),
    )
    assert response.status_code == 200
    image = response.json()["image"]
    assert image["url"].startswith("https://res.example.com/report_")
    assert image["publicId"].startswith("locallens/reports/report_")
    assert image["size"] == len(PNG_BYTES)
    assert len(store.uploaded) == 1


def test_upload_requires_auth(client, store):
    response = client.post("/api/upload/image", files={"image": ("street.png", PNG_BYTES, "image/png")})
    assert response.status_code == 401
    assert store.uploaded == []


def test_upload_without_file(client, citizen, store):
    response = client.post("/api/upload/image", data={"other": "x"}, headers=auth_header(citizen))
    assert response.status_code == 400
    assert response.json()["error"] == "NO_FILE"


def test_upload_rejects_non_images(client, citizen, store):
    response = client.post(
        "/api/upload/image",
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=auth_header(citizen),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_FILE_TYPE"


def test_upload_rejects_large_files(client, citizen, store):
    big = b"\x00" * (MAX_IMAGE_BYTES + 1)
    response = client.post(
        "/api/upload/image",
        files={"image": ("big.png", big, "image/png")},
        headers=auth_header(citizen),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "FILE_TOO_LARGE"


def test_upload_storage_failure(client, citizen, store):
    store.fail = True
    response = client.post(
        "/api/upload/image",
        files={"image": ("street.png", PNG_BYTES, "image/png")},
        headers=auth_header(citizen),
    )
    assert response.status_code == 500
    assert response.json()["error"] == "UPLOAD_ERROR"


def test_upload_multiple_images(client, citizen, store):
    files = [("images", (f"{i}.png", PNG_BYTES, "image/png")) for i in range(3)]
    response = client.post("/api/upload/images", files=files, headers=auth_header(citizen))
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "3 images uploaded successfully"
    assert len(data["images"]) == 3
    assert [p.rsplit("_", 1)[-1] for p in store.uploaded] == ["0", "1", "2"]


def test_upload_too_many_images(client, citizen, store):
    files = [("images", (f"{i}.png", PNG_BYTES, "image/png")) for i in range(6)]
    response = client.post("/api/upload/images", files=files, headers=auth_header(citizen))
    assert response.status_code == 400
    assert response.json()["error"] == "TOO_MANY_FILES"
    assert store.uploaded == []


def test_upload_base64(client, citizen, store):
    response = client.post(
        "/api/upload/base64",
        json={"image": "data:image/png;base64,iVBORw0KGgo=", "caption": "Corner"},
        headers=auth_header(citizen),
    )
    assert response.status_code == 200
    assert response.json()["image"]["caption"] == "Corner"


def test_upload_base64_validation(client, citizen, store):
    missing = client.post("/api/upload/base64", json={}, headers=auth_header(citizen))
    assert missing.json()["error"] == "NO_IMAGE_DATA"

    wrong = client.post("/api/upload/base64", json={"image": "aGVsbG8="}, headers=auth_header(citizen))
    assert wrong.status_code == 400
    assert wrong.json()["error"] == "INVALID_BASE64_FORMAT"


def test_delete_image(client, citizen, store):
    first = client.delete("/api/upload/locallens/reports/report_1_1", headers=auth_header(citizen))
    assert first.status_code == 200
    assert store.deleted == ["locallens/reports/report_1_1"]

    second = client.delete("/api/upload/locallens/reports/report_1_1", headers=auth_header(citizen))
    assert second.status_code == 404
    assert second.json()["error"] == "IMAGE_NOT_FOUND"


def test_signed_url(client, citizen, store):
    response = client.get("/api/upload/signed-url", headers=auth_header(citizen))
    assert response.status_code == 200
    assert response.json()["uploadData"]["params"]["signature"] == "sig"


def test_make_public_id():
    assert make_public_id(7).endswith("_7")
    assert make_public_id(7, 2).endswith("_7_2")
    assert make_public_id(7).startswith("report_")
