"""Helpers for interacting with object storage backends used by the platform."""

from __future__ import annotations

import io
import logging
import os
import re
from typing import Iterable, Optional
from uuid import uuid4

from minio import Minio
from minio.error import S3Error

# purpose: centralize object storage reads, writes and deletes for uploaded documents
# status: active

logger = logging.getLogger(__name__)

VACCINE_BUCKET = os.getenv("VACCINE_BUCKET", "vaccine-certs")
FACILITY_BUCKET = os.getenv("FACILITY_BUCKET", "dog-park-images")
TEMP_PREFIX = "temp/"

_MINIO_CLIENT: Optional[Minio] = None
_KNOWN_BUCKETS: set[str] = set()


def _get_upload_dir() -> str:
    """Return the configured upload directory, creating it when needed."""

    upload_dir = os.getenv("UPLOAD_DIR", "uploaded_files")
    os.makedirs(upload_dir, exist_ok=True)
    return upload_dir


def _ensure_minio_client() -> Optional[Minio]:
    """Initialize and return a MinIO client when configuration is present."""

    # outputs: Minio instance or None when not configured
    global _MINIO_CLIENT
    endpoint = os.getenv("MINIO_ENDPOINT", "").strip()
    access_key = os.getenv("MINIO_ACCESS_KEY")
    secret_key = os.getenv("MINIO_SECRET_KEY")
    if not endpoint or not access_key or not secret_key:
        return None
    if _MINIO_CLIENT is None:
        _MINIO_CLIENT = Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=endpoint.startswith("https"),
        )
    return _MINIO_CLIENT


def _ensure_bucket(client: Minio, bucket: str) -> None:
    if bucket in _KNOWN_BUCKETS:
        return
    if not client.bucket_exists(bucket):
        client.make_bucket(bucket)
    _KNOWN_BUCKETS.add(bucket)


def _build_object_name(namespace: str | None, filename: str) -> str:
    """Construct a normalized storage object key within an optional namespace."""

    safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", filename) or "artifact.bin"
    if not namespace:
        return f"{uuid4()}_{safe_name}"
    clean_namespace = re.sub(r"[^A-Za-z0-9/_.-]", "_", namespace).strip("/")
    return f"{clean_namespace}/{uuid4()}_{safe_name}"


def _local_path(bucket: str, object_name: str) -> str:
    return os.path.join(_get_upload_dir(), bucket, *object_name.split("/"))


def save_binary_payload(
    data: bytes,
    filename: str,
    *,
    bucket: str,
    content_type: str = "application/octet-stream",
    namespace: str | None = None,
) -> str:
    """Persist binary data and return its storage locator."""

    # outputs: "s3://bucket/key" for object storage, a filesystem path otherwise
    object_name = _build_object_name(namespace, filename)
    client = _ensure_minio_client()
    if client:
        _ensure_bucket(client, bucket)
        client.put_object(
            bucket,
            object_name,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        return f"s3://{bucket}/{object_name}"

    storage_path = _local_path(bucket, object_name)
    os.makedirs(os.path.dirname(storage_path), exist_ok=True)
    with open(storage_path, "wb") as handle:
        handle.write(data)
    return storage_path


def resolve_locator(locator: str) -> tuple[str, str]:
    """Split a storage locator into (bucket, object path)."""

    if locator.startswith(("http://", "https://")):
        raise FileNotFoundError(f"External URL is not a managed object: {locator}")
    if locator.startswith("s3://"):
        _, _, remainder = locator.partition("s3://")
        bucket, _, object_name = remainder.partition("/")
        if not bucket or not object_name:
            raise FileNotFoundError(f"Invalid s3 storage path: {locator}")
        return bucket, object_name
    relative = os.path.relpath(os.path.abspath(locator), os.path.abspath(_get_upload_dir()))
    parts = relative.split(os.sep)
    if len(parts) < 2 or parts[0] == "..":
        raise FileNotFoundError(f"Locator outside upload directory: {locator}")
    return parts[0], "/".join(parts[1:])


def facility_namespace(park_id) -> str:
    """Prefix under FACILITY_BUCKET that holds one park's photos."""

    return f"parks/{park_id}"


def is_managed_by(locator: str | None, bucket: str, namespace: str) -> bool:
    """True when the locator names an object inside `bucket` under `namespace`."""

    if not locator:
        return False
    try:
        found_bucket, object_name = resolve_locator(locator)
    except FileNotFoundError:
        return False
    prefix = namespace.strip("/") + "/"
    return found_bucket == bucket and object_name.startswith(prefix) and ".." not in object_name.split("/")


def delete_objects(bucket: str, paths: Iterable[str]) -> list[str]:
    """Remove objects from a bucket; missing objects are not an error."""

    removed: list[str] = []
    client = _ensure_minio_client()
    for object_name in paths:
        if client:
            try:
                client.remove_object(bucket, object_name)
            except S3Error as exc:
                if exc.code not in {"NoSuchKey", "NoSuchBucket"}:
                    raise
                continue
            removed.append(object_name)
            continue
        try:
            os.remove(_local_path(bucket, object_name))
        except FileNotFoundError:
            continue
        removed.append(object_name)
    return removed


def delete_locators(locators: Iterable[str | None]) -> list[str]:
    """Delete stored objects addressed by locator, grouping them per bucket."""

    grouped: dict[str, list[str]] = {}
    for locator in locators:
        if not locator:
            continue
        try:
            bucket, object_name = resolve_locator(locator)
        except FileNotFoundError:
            logger.warning("Skipping unresolvable storage locator %s", locator)
            continue
        grouped.setdefault(bucket, []).append(object_name)
    removed: list[str] = []
    for bucket, object_names in grouped.items():
        removed.extend(f"{bucket}/{name}" for name in delete_objects(bucket, object_names))
    return removed

