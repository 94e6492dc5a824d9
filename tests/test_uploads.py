import io

import pytest

from app.umbra.storage import LocalStorage, StorageError
from app.umbra.uploads import build_upload_name, sanitize_filename
from tests.conftest import PROCESSOR


def test_sanitize_filename():
    assert sanitize_filename("my photo (1).PNG") == ("my_photo__1_", "png")
    assert sanitize_filename("../../etc/passwd") == ("passwd", "")
    assert sanitize_filename("C:\\docs\\report.pdf") == ("report", "pdf")
    assert sanitize_filename(".png") == ("file", "png")
    stem, _ = sanitize_filename("a" * 300 + ".txt")
    assert len(stem) == 100


def test_build_upload_name():
    assert build_upload_name("Report 2024.pdf", timestamp_ms=1700000000000) == "1700000000000_Report_2024.pdf"
    assert build_upload_name("README", timestamp_ms=1) == "1_README"


def test_local_storage_rejects_escaping_keys(tmp_path):
    storage = LocalStorage(tmp_path)
    storage.put_bytes("files/a.txt", b"hello")
    assert storage.exists("files/a.txt")
    assert storage.open("files/a.txt").read() == b"hello"
    with pytest.raises(StorageError):
        storage.put_bytes("../outside.txt", b"nope")


def test_upload_and_serve_image(client, login):
    login()
    r = client.post(
        "/api/admin/upload",
        data={"file": (io.BytesIO(b"\x89PNG fake"), "logo image.png", "image/png"), "type": "image"},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    assert r.json["success"] is True
    assert r.json["url"].startswith("/uploads/images/")
    assert r.json["filename"].endswith("_logo_image.png")
    assert r.json["size"] == 9
    assert r.json["type"] == "image/png"

    anon = client.application.test_client()
    r = anon.get(r.json["url"])
    assert r.status_code == 200
    assert r.data == b"\x89PNG fake"
    assert r.mimetype == "image/png"
    assert r.headers["Cache-Control"] == "public, max-age=31536000, immutable"


def test_upload_file_goes_to_files_folder(client, login):
    login()
    r = client.post(
        "/api/admin/upload",
        data={"file": (io.BytesIO(b"%PDF-1.4"), "doc.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    assert r.json["url"].startswith("/uploads/files/")


def test_upload_rejections(client, login):
    login()
    r = client.post("/api/admin/upload", data={}, content_type="multipart/form-data")
    assert r.status_code == 400

    r = client.post(
        "/api/admin/upload",
        data={"file": (io.BytesIO(b"%PDF"), "doc.pdf", "application/pdf"), "type": "image"},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400

    r = client.post(
        "/api/admin/upload",
        data={"file": (io.BytesIO(b"MZ"), "tool.exe", "application/x-msdownload")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400

    r = client.post(
        "/api/admin/upload",
        data={"file": (io.BytesIO(b""), "empty.txt", "text/plain")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400


def test_upload_requires_admin(client, login):
    login(PROCESSOR)
    r = client.post(
        "/api/admin/upload",
        data={"file": (io.BytesIO(b"hi"), "a.txt", "text/plain")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 403


def test_serve_unknown_upload_is_404(client):
    assert client.get("/uploads/images/missing.png").status_code == 404
    assert client.get("/uploads/secrets/a.txt").status_code == 404
