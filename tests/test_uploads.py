import base64
import os
from urllib.parse import urlparse

import pytest
from sqlalchemy.exc import DBAPIError

from shared.core.database import run_in_transaction
from shared.core.errors import ConflictError, StorageError, UploadError
from shared.helpers.upload_helper import decode_base64_image, generate_filename, persist_with_image, validate_image

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_generate_filename_keeps_extension():
    name = generate_filename("photo.JPG", "image/jpeg")
    stamp, rest = name.split("-", 1)
    assert stamp.isdigit() and rest.endswith(".jpg") and len(rest) == len("123456789.jpg")
    assert generate_filename(None, "image/png").endswith(".png")


def test_validate_image_rules():
    validate_image("image/png", 10, 100)
    with pytest.raises(UploadError):
        validate_image("application/pdf", 10, 100)
    with pytest.raises(UploadError):
        validate_image("image/png", 0, 100)
    with pytest.raises(UploadError):
        validate_image("image/png", 101, 100)


def test_decode_data_url():
    data, mime = decode_base64_image("data:image/gif;base64," + base64.b64encode(b"GIF89a").decode(), None)
    assert (data, mime) == (b"GIF89a", "image/gif")
    with pytest.raises(UploadError):
        decode_base64_image("%%%not-base64%%%", "image/png")


def test_multipart_item_image_is_stored_and_served(client, create_item):
    item = create_item()
    res = client.patch(f"/items/{item['id']}/image", files={"image": ("logo.png", PNG, "image/png")})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["imageUrl"] == body["item"]["imageUrl"]
    assert body["imageUrl"].startswith("http://testserver/uploads/") and body["imageUrl"].endswith(".png")

    served = client.get(urlparse(body["imageUrl"]).path)
    assert served.status_code == 200 and served.content == PNG


def test_base64_asset_image(client):
    asset = client.post("/assets", json={"name": "Drill"}).json()
    payload = {"image": base64.b64encode(PNG).decode(), "contentType": "image/png", "filename": "drill.png"}
    res = client.patch(f"/assets/{asset['id']}/image", json=payload)
    assert res.status_code == 200, res.text
    assert res.json()["asset"]["imageUrl"] == res.json()["imageUrl"]


def test_rejected_uploads_leave_item_unchanged(client, create_item, get_item):
    item = create_item()
    res = client.patch(f"/items/{item['id']}/image", files={"image": ("doc.pdf", b"%PDF-1.4", "application/pdf")})
    assert res.status_code == 400
    res = client.patch(f"/items/{item['id']}/image", files={"image": ("big.png", b"x" * 2048, "image/png")})
    assert res.status_code == 400
    res = client.patch(f"/items/{item['id']}/image", json={"filename": "nothing.png"})
    assert res.status_code == 400
    assert get_item(item["id"])["imageUrl"] is None


def test_image_for_missing_item_is_not_found(client):
    res = client.patch("/items/missing/image", files={"image": ("logo.png", PNG, "image/png")})
    assert res.status_code == 404


def test_health_reports_providers(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["providers"]["database"]["dialect"] == "sqlite"
    assert body["providers"]["database"]["health"]["isConnected"] is True
    assert body["providers"]["storage"]["health"]["isConnected"] is True


def stored_files(settings):
    return sorted(name for _, _, files in os.walk(settings.UPLOAD_DIR) for name in files)


class RecordingStorage:
    def __init__(self):
        self.uploaded = []
        self.deleted = []

    def upload(self, key, data, content_type):
        self.uploaded.append(key)
        return f"http://files.test/{key}"

    def delete(self, key):
        self.deleted.append(key)
        return True


class FakeSession:
    def commit(self):
        pass

    def rollback(self):
        pass


def test_create_item_with_multipart_image(client, get_item):
    res = client.post("/items", data={"name": "Pic", "price": "3", "tags": "red,blue"},
                      files={"image": ("a.png", PNG, "image/png")})
    assert res.status_code == 201, res.text
    item = res.json()
    assert item["price"] == 3 and item["tags"] == ["red", "blue"]
    assert item["imageUrl"].startswith("http://testserver/uploads/")
    assert client.get(urlparse(item["imageUrl"]).path).content == PNG
    assert get_item(item["id"])["imageUrl"] == item["imageUrl"]


def test_update_item_with_multipart_image(client, create_item):
    item = create_item()
    res = client.patch(f"/items/{item['id']}", data={"name": "Renamed"},
                       files={"image": ("b.gif", b"GIF89a", "image/gif")})
    assert res.status_code == 200, res.text
    assert res.json()["name"] == "Renamed"
    assert res.json()["imageUrl"].endswith(".gif")

    res = client.patch(f"/items/{item['id']}", data={"description": "no new image"})
    assert res.status_code == 200
    assert res.json()["imageUrl"].endswith(".gif")


def test_create_asset_with_multipart_image(client):
    res = client.post("/assets", data={"name": "Saw", "initialCost": "50"},
                      files={"image": ("saw.png", PNG, "image/png")})
    assert res.status_code == 201, res.text
    assert res.json()["initialCost"] == 50 and res.json()["imageUrl"].endswith(".png")


def test_storage_failure_persists_no_item(client, app, monkeypatch):
    def broken_upload(key, data, content_type):
        raise StorageError("File upload failed")

    monkeypatch.setattr(app.state.storage, "upload", broken_upload)
    res = client.post("/items", data={"name": "Pic", "price": "3"}, files={"image": ("a.png", PNG, "image/png")})
    assert res.status_code == 500
    assert client.get("/items").json()["total"] == 0


def test_rejected_write_leaves_no_uploaded_file(client, settings, create_item):
    create_item(sku="A1")
    before = stored_files(settings)

    res = client.post("/items", data={"name": "Copy", "price": "3", "sku": "A1"},
                      files={"image": ("a.png", PNG, "image/png")})
    assert res.status_code == 409
    res = client.post("/items", data={"name": "No price"}, files={"image": ("a.png", PNG, "image/png")})
    assert res.status_code == 400
    res = client.patch("/items/missing/image", files={"image": ("logo.png", PNG, "image/png")})
    assert res.status_code == 404

    assert stored_files(settings) == before
    assert client.get("/items").json()["total"] == 1


def test_failed_persist_removes_the_upload():
    storage = RecordingStorage()

    def persist(image_url):
        raise ConflictError("taken")

    with pytest.raises(ConflictError):
        persist_with_image(storage, (PNG, "a.png", "image/png"), "inventory", 1024, persist)
    assert len(storage.uploaded) == 1
    assert storage.deleted == storage.uploaded


def test_retried_transaction_uploads_once():
    storage = RecordingStorage()
    attempts = []

    def work(session):
        attempts.append(1)
        if len(attempts) == 1:
            raise DBAPIError("UPDATE items SET image_url = ?", {}, Exception("database is locked"))
        return "saved"

    result = persist_with_image(storage, (PNG, "a.png", "image/png"), "inventory", 1024,
                                lambda url: run_in_transaction(FakeSession(), work, retries=2))
    assert result == "saved" and len(attempts) == 2
    assert len(storage.uploaded) == 1 and storage.deleted == []
