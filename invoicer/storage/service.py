"""Key-value persistence for vendor profile, logo and numbering state.

Everything the invoicer persists is a string under a fixed key, so the
backends only implement get/set/delete:

- InMemoryKeyValueStore: process-local dict (tests, single-shot CLIs)
- JsonFileKeyValueStore: one JSON object on local disk
- MinioKeyValueStore: one object per key in an S3-compatible bucket,
  with retry on transient S3 errors

StorageService layers the vendor profile / logo / last-invoice-number
accessors on top of whichever store is configured.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import errno
import io
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from minio import Minio
from minio.error import S3Error
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoicer.shared.config import Settings
from invoicer.shared.errors import StorageError
from invoicer.vendor.schema import VendorProfile

logger = logging.getLogger(__name__)

VENDOR_PROFILE_KEY = "vendor_profile"
VENDOR_LOGO_KEY = "vendor_logo"
LAST_INVOICE_NUMBER_KEY = "invoice_last_number"

_MISSING_OBJECT_CODES = ("NoSuchKey", "NoSuchObject")


class KeyValueStore(Protocol):
    """Synchronous string key-value store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store; state lives as long as the instance."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Store persisted as a single JSON object in a local file.

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous state intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Store {self.path} does not contain a JSON object")
        return data

    def _save(self, data: dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            code = "STORAGE_QUOTA_EXCEEDED" if e.errno == errno.ENOSPC else "NETWORK_ERROR"
            raise StorageError(f"Failed to write store {self.path}: {e}", {"errorCode": code}) from e

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


_retry_s3 = retry(
    retry=retry_if_exception_type(S3Error),
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=1, max=10),
    reraise=True,
)


class MinioKeyValueStore:
    """One object per key in an S3-compatible bucket.

    Transient S3 errors are retried (3 attempts, exponential backoff with
    jitter); a missing object reads as None.
    """

    def __init__(self, settings: Settings, prefix: str = "kv/") -> None:
        self.settings = settings
        self.prefix = prefix
        self._client: Minio | None = None
        self._bucket_ready = False

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Raises:
            StorageError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key or not self.settings.storage_secret_key:
                raise StorageError(
                    "Storage credentials not configured. "
                    "Set APP_STORAGE_ACCESS_KEY and APP_STORAGE_SECRET_KEY."
                )
            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")
        return self._client

    def _ensure_bucket(self) -> Minio:
        client = self._get_client()
        if not self._bucket_ready:
            bucket = self.settings.storage_bucket
            if not client.bucket_exists(bucket):
                client.make_bucket(bucket)
                logger.info(f"Created bucket: {bucket}")
            self._bucket_ready = True
        return client

    def _object_name(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @_retry_s3
    def _get(self, key: str) -> str | None:
        client = self._ensure_bucket()
        try:
            response = client.get_object(self.settings.storage_bucket, self._object_name(key))
        except S3Error as e:
            if e.code in _MISSING_OBJECT_CODES:
                return None
            raise
        try:
            return response.read().decode("utf-8")
        finally:
            response.close()
            response.release_conn()

    @_retry_s3
    def _set(self, key: str, value: str) -> None:
        client = self._ensure_bucket()
        data = value.encode("utf-8")
        client.put_object(
            bucket_name=self.settings.storage_bucket,
            object_name=self._object_name(key),
            data=io.BytesIO(data),
            length=len(data),
            content_type="text/plain; charset=utf-8",
        )

    @_retry_s3
    def _delete(self, key: str) -> None:
        client = self._ensure_bucket()
        client.remove_object(self.settings.storage_bucket, self._object_name(key))

    def get(self, key: str) -> str | None:
        try:
            return self._get(key)
        except S3Error as e:
            logger.error(f"S3 error reading {key}: {e}")
            raise StorageError(f"S3 error: {e.code} - {e.message}", {"key": key}) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._set(key, value)
        except S3Error as e:
            logger.error(f"S3 error writing {key}: {e}")
            raise StorageError(f"S3 error: {e.code} - {e.message}", {"key": key}) from e

    def delete(self, key: str) -> None:
        try:
            self._delete(key)
        except S3Error as e:
            logger.error(f"S3 error deleting {key}: {e}")
            raise StorageError(f"S3 error: {e.code} - {e.message}", {"key": key}) from e


def create_key_value_store(settings: Settings) -> KeyValueStore:
    """Build the store named by settings.storage_backend."""
    if settings.storage_backend == "file":
        return JsonFileKeyValueStore(settings.storage_path)
    if settings.storage_backend == "minio":
        return MinioKeyValueStore(settings)
    return InMemoryKeyValueStore()


class StorageService:
    """Vendor profile, logo and last invoice number over a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def get_vendor_profile(self) -> VendorProfile | None:
        """Load the stored vendor profile.

        Raises:
            StorageError: If the stored blob is not a valid profile
        """
        raw = self.store.get(VENDOR_PROFILE_KEY)
        if raw is None:
            return None
        try:
            return VendorProfile.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Stored vendor profile is corrupted: {e}") from e

    def save_vendor_profile(self, profile: VendorProfile) -> None:
        self.store.set(VENDOR_PROFILE_KEY, profile.model_dump_json(by_alias=True))
        logger.info(f"Saved vendor profile for {profile.name}")

    def get_logo(self) -> str | None:
        return self.store.get(VENDOR_LOGO_KEY)

    def save_logo(self, data_url: str) -> None:
        self.store.set(VENDOR_LOGO_KEY, data_url)

    def get_last_invoice_number(self) -> str | None:
        return self.store.get(LAST_INVOICE_NUMBER_KEY)

    def clear(self) -> None:
        """Remove vendor profile, logo and numbering state."""
        for key in (VENDOR_PROFILE_KEY, VENDOR_LOGO_KEY, LAST_INVOICE_NUMBER_KEY):
            self.store.delete(key)
        logger.info("Cleared stored vendor data and invoice numbering state")
