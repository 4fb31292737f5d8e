from __future__ import annotations

from io import BytesIO

import pytest
from fastapi import HTTPException, UploadFile

from mmstock.apps.storage import services as storage_services


@pytest.fixture()
def storage_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path))
    monkeypatch.setattr(storage_services, "_now_ms", lambda: 1000)
    return tmp_path


def test_object_names():
    assert storage_services.avatar_name("user-1", 1700000000000, ".png") == "avatar_user-1_1700000000000.png"
    assert (
        storage_services.product_photo_name("MM 2026/001", 2, 42)
        == "produto_MM_2026_001_F2_42.jpg"
    )
    assert (
        storage_services.product_photo_name("MM-1", 1, 42, ".webp", hd=True)
        == "produto_hd_MM-1_F1_42.webp"
    )
    assert storage_services.public_url(storage_services.Bucket.PRODUCTS_HD, "x.jpg") == "/storage/produtos_hd/x.jpg"


@pytest.mark.parametrize("filename,expected", [("foto.JPEG", ".jpg"), ("a.png", ".png"), ("b.webp", ".webp")])
def test_allowed_extensions(filename, expected):
    assert storage_services.normalise_extension(filename) == expected


@pytest.mark.parametrize("filename", ["foto.gif", "documento.pdf", None, "sem_extensao"])
def test_other_extensions_are_rejected(filename):
    with pytest.raises(HTTPException) as exc:
        storage_services.normalise_extension(filename)
    assert exc.value.status_code == 400


def test_store_and_resolve(storage_dir):
    name, url = storage_services.store_object(
        company_id="company-1",
        bucket=storage_services.Bucket.AVATARS,
        name_for=lambda ts: storage_services.avatar_name("u1", ts, ".png"),
        content=b"png-bytes",
    )

    assert name == "avatar_u1_1000.png"
    assert url == "/storage/avatars/avatar_u1_1000.png"
    path = storage_services.resolve_object("company-1", storage_services.Bucket.AVATARS, name)
    assert path.read_bytes() == b"png-bytes"
    assert path.parent == storage_dir.resolve() / "company-1" / "avatars"


def test_discard_on_failure_removes_the_stored_object(storage_dir):
    name, _ = storage_services.store_object(
        company_id="company-1",
        bucket=storage_services.Bucket.PRODUCTS,
        name_for=lambda ts: storage_services.product_photo_name("MM-1", 1, ts),
        content=b"jpg-bytes",
    )
    path = storage_dir / "company-1" / "produtos" / name

    with pytest.raises(RuntimeError):
        with storage_services.discard_on_failure("company-1", storage_services.Bucket.PRODUCTS, name):
            raise RuntimeError("commit failed")
    assert not path.exists()


def test_discard_on_failure_keeps_the_object_on_success(storage_dir):
    name, _ = storage_services.store_object(
        company_id="company-1",
        bucket=storage_services.Bucket.AVATARS,
        name_for=lambda ts: storage_services.avatar_name("u1", ts),
        content=b"jpg-bytes",
    )

    with storage_services.discard_on_failure("company-1", storage_services.Bucket.AVATARS, name):
        pass
    assert storage_services.resolve_object("company-1", storage_services.Bucket.AVATARS, name).is_file()

def test_objects_are_scoped_per_company(storage_dir):
    name, _ = storage_services.store_object(
        company_id="company-1",
        bucket=storage_services.Bucket.PRODUCTS,
        name_for=lambda ts: f"produto_MM-1_F1_{ts}.jpg",
        content=b"jpg",
    )
    with pytest.raises(HTTPException) as exc:
        storage_services.resolve_object("company-2", storage_services.Bucket.PRODUCTS, name)
    assert exc.value.status_code == 404


def test_name_collision_retries_with_next_timestamp(storage_dir):
    base = storage_services.bucket_dir("company-1", storage_services.Bucket.PRODUCTS)
    base.mkdir(parents=True)
    (base / "produto_MM-1_F1_1000.jpg").write_bytes(b"old")

    name, _ = storage_services.store_object(
        company_id="company-1",
        bucket=storage_services.Bucket.PRODUCTS,
        name_for=lambda ts: f"produto_MM-1_F1_{ts}.jpg",
        content=b"new",
    )
    assert name == "produto_MM-1_F1_1001.jpg"
    assert (base / "produto_MM-1_F1_1000.jpg").read_bytes() == b"old"


def test_name_collision_gives_up_after_three_attempts(storage_dir):
    base = storage_services.bucket_dir("company-1", storage_services.Bucket.PRODUCTS)
    base.mkdir(parents=True)
    for ts in (1000, 1001, 1002):
        (base / f"produto_MM-1_F1_{ts}.jpg").write_bytes(b"old")

    with pytest.raises(HTTPException) as exc:
        storage_services.store_object(
            company_id="company-1",
            bucket=storage_services.Bucket.PRODUCTS,
            name_for=lambda ts: f"produto_MM-1_F1_{ts}.jpg",
            content=b"new",
        )
    assert exc.value.status_code == 409


@pytest.mark.parametrize("name", ["../segredo.txt", "..", "a/b.jpg", "a\\b.jpg", ""])
def test_path_traversal_is_rejected(storage_dir, name):
    with pytest.raises(HTTPException) as exc:
        storage_services.resolve_object("company-1", storage_services.Bucket.AVATARS, name)
    assert exc.value.status_code == 400


def test_read_upload_enforces_limit(monkeypatch):
    monkeypatch.setenv("STORAGE_MAX_UPLOAD_BYTES", "4")

    assert storage_services.read_upload(UploadFile(file=BytesIO(b"1234"), filename="a.jpg")) == b"1234"
    with pytest.raises(HTTPException) as exc:
        storage_services.read_upload(UploadFile(file=BytesIO(b"12345"), filename="a.jpg"))
    assert exc.value.status_code == 413


def test_read_upload_rejects_empty_files():
    with pytest.raises(HTTPException) as exc:
        storage_services.read_upload(UploadFile(file=BytesIO(b""), filename="a.jpg"))
    assert exc.value.status_code == 400
