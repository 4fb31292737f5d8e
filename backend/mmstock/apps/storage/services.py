from __future__ import annotations

import enum
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

from fastapi import HTTPException, UploadFile, status

from mmstock.utils.identifiers import safe_token

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
MAX_NAME_ATTEMPTS = 3
_CHUNK_SIZE = 1024 * 1024


class Bucket(str, enum.Enum):
    AVATARS = "avatars"
    PRODUCTS = "produtos"
    PRODUCTS_HD = "produtos_hd"


def storage_root() -> Path:
    return Path(os.getenv("STORAGE_DIR", "uploads")).resolve()


def max_upload_bytes() -> int:
    return int(os.getenv("STORAGE_MAX_UPLOAD_BYTES", "0") or "0")


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# NAMING
# ---------------------------------------------------------------------------


def normalise_extension(filename: Optional[str]) -> str:
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Formato de imagem não suportado. Use JPG, PNG ou WEBP.",
        )
    return ".jpg" if ext == ".jpeg" else ext


def avatar_name(user_id: str, ts: int, ext: str = ".jpg") -> str:
    return f"avatar_{safe_token(user_id)}_{ts}{ext}"


def product_photo_name(idmm: str, slot: int, ts: int, ext: str = ".jpg", *, hd: bool = False) -> str:
    prefix = "produto_hd" if hd else "produto"
    return f"{prefix}_{safe_token(idmm)}_F{slot}_{ts}{ext}"


def public_url(bucket: Bucket, name: str) -> str:
    return f"/storage/{bucket.value}/{name}"


# ---------------------------------------------------------------------------
# PATHS
# ---------------------------------------------------------------------------


def bucket_dir(company_id: str, bucket: Bucket) -> Path:
    return storage_root() / safe_token(company_id) / bucket.value


def _ensure_safe_path(base: Path, name: str) -> Path:
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nome de ficheiro inválido.")
    resolved = (base / name).resolve()
    if resolved.parent != base.resolve():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nome de ficheiro inválido.")
    return resolved


def resolve_object(company_id: str, bucket: Bucket, name: str) -> Path:
    """Path of a stored object of `company_id`; 404 when it does not exist."""
    path = _ensure_safe_path(bucket_dir(company_id, bucket), name)
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ficheiro não encontrado")
    return path


# ---------------------------------------------------------------------------
# WRITES
# ---------------------------------------------------------------------------


def read_upload(file: UploadFile) -> bytes:
    """Read an upload in chunks, enforcing STORAGE_MAX_UPLOAD_BYTES when set."""
    limit = max_upload_bytes()
    chunks = []
    total = 0
    while True:
        chunk = file.file.read(_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if limit and total > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="O ficheiro excede o tamanho máximo permitido.",
            )
        chunks.append(chunk)
    if not total:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ficheiro vazio.")
    return b"".join(chunks)


def store_object(
    *,
    company_id: str,
    bucket: Bucket,
    name_for: Callable[[int], str],
    content: bytes,
) -> Tuple[str, str]:
    """
    Write `content` under a fresh name built by `name_for(timestamp_ms)`.

    Names are created exclusively; on collision a new timestamp is tried,
    up to MAX_NAME_ATTEMPTS. Returns (name, public url).
    """
    base = bucket_dir(company_id, bucket)
    base.mkdir(parents=True, exist_ok=True)

    last_ts = None
    for _ in range(MAX_NAME_ATTEMPTS):
        ts = _now_ms()
        if last_ts is not None and ts <= last_ts:
            ts = last_ts + 1
        last_ts = ts
        name = name_for(ts)
        path = _ensure_safe_path(base, name)
        try:
            with path.open("xb") as out:
                out.write(content)
        except FileExistsError:
            logger.info(
                "Storage name collision, retrying",
                extra={"company_id": company_id, "bucket": bucket.value, "object_name": name},
            )
            continue
        return name, public_url(bucket, name)

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Não foi possível gerar um nome único para o ficheiro.",
    )


def remove_object(company_id: str, bucket: Bucket, name: str) -> None:
    path = _ensure_safe_path(bucket_dir(company_id, bucket), name)
    path.unlink(missing_ok=True)


@contextmanager
def discard_on_failure(company_id: str, bucket: Bucket, name: str) -> Iterator[None]:
    """Remove a just-stored object when the block that records it fails."""
    try:
        yield
    except Exception:
        logger.warning(
            "Discarding stored object after failed write",
            extra={"company_id": company_id, "bucket": bucket.value, "object_name": name},
        )
        remove_object(company_id, bucket, name)
        raise
