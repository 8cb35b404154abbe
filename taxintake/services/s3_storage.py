from __future__ import annotations

import re
import uuid
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

from taxintake.core.config import settings

_FIELD_KEY_RE = re.compile(r"[^A-Za-z0-9_-]+")
_FILE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_OWNED_BUCKET_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


def _safe_file_name(file_name: str) -> str:
    return _FILE_NAME_RE.sub("_", str(file_name or "").strip()) or "file.bin"


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def attachment_prefix(filing_id: uuid.UUID | str, field_key: str) -> str:
    """Every object of one filing field lives under ``filings/{filing_id}/{field_key}/``."""
    safe_key = _FIELD_KEY_RE.sub("_", str(field_key or "").strip()) or "general"
    return f"filings/{filing_id}/{safe_key}/"


def build_object_key(prefix: str, file_name: str) -> str:
    return f"{prefix.strip('/')}/{uuid.uuid4().hex}-{_safe_file_name(file_name)}"


class S3Storage:
    """Attachment objects. Browsers upload and download directly with presigned URLs."""

    def __init__(self, bucket: str | None = None):
        self.bucket = bucket or settings.S3_BUCKET
        self.client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
            use_ssl=settings.S3_USE_SSL,
        )
        self._bucket_ready = False

    def _create_bucket(self) -> None:
        kwargs: dict = {"Bucket": self.bucket}
        if settings.S3_REGION and settings.S3_REGION != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": settings.S3_REGION}
        try:
            self.client.create_bucket(**kwargs)
        except ClientError as exc:
            if _error_code(exc) not in _OWNED_BUCKET_CODES:
                raise

    def ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as exc:
            if _error_code(exc) not in _MISSING_BUCKET_CODES:
                raise
            self._create_bucket()
        self._bucket_ready = True

    def create_presigned_put_url(self, key: str, mime_type: str, expires_sec: int = 900) -> str:
        self.ensure_bucket()
        return self.client.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": mime_type},
            ExpiresIn=expires_sec,
            HttpMethod="PUT",
        )

    def create_presigned_get_url(self, key: str, file_name: str | None = None, expires_sec: int = 900) -> str:
        self.ensure_bucket()
        params = {"Bucket": self.bucket, "Key": key}
        if file_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{_safe_file_name(file_name)}"'
        return self.client.generate_presigned_url("get_object", Params=params, ExpiresIn=expires_sec)

    def head_object(self, key: str) -> dict:
        self.ensure_bucket()
        return self.client.head_object(Bucket=self.bucket, Key=key)

    def delete_object(self, key: str) -> None:
        self.ensure_bucket()
        self.client.delete_object(Bucket=self.bucket, Key=key)


@lru_cache(maxsize=1)
def get_s3_storage() -> S3Storage:
    return S3Storage()
