"""Helpers for persisting uploaded document bytes to local disk or MinIO."""

from __future__ import annotations

import io
import logging
import mimetypes
import os
import re
from dataclasses import dataclass
from typing import Iterator, Optional
from uuid import uuid4

from minio import Minio
from minio.error import S3Error

from .errors import NotFoundError, StorageError

# purpose: centralize object storage reads and writes for document uploads
# status: active

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

_MINIO_CLIENT: Optional[Minio] = None


@dataclass(frozen=True)
class StoredFile:
    path: str
    size: int
    mime_type: str
    file_name: str


def _get_upload_dir() -> str:
    """Return the configured upload directory, creating it when needed."""

    upload_dir = os.getenv("UPLOAD_DIR", "uploaded_files")
    os.makedirs(upload_dir, exist_ok=True)
    return upload_dir


def _bucket() -> str:
    return os.getenv("MINIO_BUCKET", "uploads")


def _ensure_minio_client() -> Optional[Minio]:
    """Initialize and return a MinIO client when configuration is present."""

    global _MINIO_CLIENT
    endpoint = os.getenv("MINIO_ENDPOINT", "").strip()
    access_key = os.getenv("MINIO_ACCESS_KEY")
    secret_key = os.getenv("MINIO_SECRET_KEY")
    if not endpoint or not access_key or not secret_key:
        return None
    if _MINIO_CLIENT is None:
        client = Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=endpoint.startswith("https"),
        )
        try:
            if not client.bucket_exists(_bucket()):
                client.make_bucket(_bucket())
        except S3Error as exc:
            raise StorageError("Object storage is unavailable") from exc
        _MINIO_CLIENT = client
    return _MINIO_CLIENT


def _split_s3_path(storage_path: str) -> tuple[str, str]:
    _, _, bucket, *key_parts = storage_path.split("/", 3)
    if not key_parts or not key_parts[-1]:
        raise NotFoundError("Invalid storage path")
    return bucket, key_parts[-1]


def build_object_name(namespace: str | None, filename: str) -> str:
    """Construct a unique, filesystem-safe object key within an optional namespace."""

    safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", os.path.basename(filename)) or "document.bin"
    if not namespace:
        return f"{uuid4()}_{safe_name}"
    clean_namespace = re.sub(r"[^A-Za-z0-9/_.-]", "_", namespace).strip("/")
    return f"{clean_namespace}/{uuid4()}_{safe_name}"


def save_file(
    data: bytes,
    filename: str,
    *,
    content_type: str | None = None,
    namespace: str | None = None,
) -> StoredFile:
    """Persist bytes to the configured backend and describe where they landed."""

    mime_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    object_name = build_object_name(namespace, filename)
    client = _ensure_minio_client()
    try:
        if client:
            client.put_object(
                _bucket(),
                object_name,
                io.BytesIO(data),
                length=len(data),
                content_type=mime_type,
            )
            return StoredFile(f"s3://{_bucket()}/{object_name}", len(data), mime_type, os.path.basename(object_name))

        upload_dir = _get_upload_dir()
        if namespace:
            target_dir = os.path.join(upload_dir, *os.path.dirname(object_name).split("/"))
            os.makedirs(target_dir, exist_ok=True)
        else:
            target_dir = upload_dir
        storage_path = os.path.join(target_dir, os.path.basename(object_name))
        with open(storage_path, "wb") as handle:
            handle.write(data)
    except (OSError, S3Error) as exc:
        raise StorageError("Failed to store uploaded file") from exc
    return StoredFile(storage_path, len(data), mime_type, os.path.basename(object_name))


def file_exists(storage_path: str) -> bool:
    if storage_path.startswith("s3://"):
        client = _ensure_minio_client()
        if not client:
            return False
        bucket, object_name = _split_s3_path(storage_path)
        try:
            client.stat_object(bucket, object_name)
        except S3Error:
            return False
        return True
    return os.path.isfile(storage_path)


def iter_file(storage_path: str, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the stored payload in chunks without loading it whole."""

    if storage_path.startswith("s3://"):
        client = _ensure_minio_client()
        if not client:
            raise NotFoundError("Object storage client unavailable")
        bucket, object_name = _split_s3_path(storage_path)
        response = client.get_object(bucket, object_name)
        try:
            yield from response.stream(chunk_size)
        finally:
            response.close()
            response.release_conn()
        return

    with open(storage_path, "rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


def delete_file(storage_path: str) -> None:
    if storage_path.startswith("s3://"):
        client = _ensure_minio_client()
        if not client:
            raise StorageError("Object storage client unavailable")
        bucket, object_name = _split_s3_path(storage_path)
        try:
            client.remove_object(bucket, object_name)
        except S3Error as exc:
            raise StorageError("Failed to delete stored file") from exc
        return
    try:
        os.remove(storage_path)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise StorageError("Failed to delete stored file") from exc


def discard_file(storage_path: str) -> None:
    """Best-effort removal used to compensate a failed database write."""

    try:
        delete_file(storage_path)
    except StorageError:
        logger.warning("Could not remove orphaned upload %s", storage_path, exc_info=True)
