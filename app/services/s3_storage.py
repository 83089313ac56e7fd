from __future__ import annotations

import json
from datetime import datetime
from functools import lru_cache
from typing import Any, Iterable
from urllib.parse import quote

import boto3
from botocore.exceptions import ClientError

from app.core.config import settings

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_OWNED_BUCKET_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
# S3 DeleteObjects accepts at most 1000 keys per request.
_DELETE_BATCH_SIZE = 1000

_PUBLIC_READ_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"AWS": ["*"]},
            "Action": ["s3:GetObject"],
            "Resource": ["arn:aws:s3:::{bucket}/*"],
        }
    ],
}


def error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _iso(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value else None


class S3Storage:
    def __init__(self):
        self.public_buckets = {settings.AVATARS_BUCKET}
        self.client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
            use_ssl=settings.S3_USE_SSL,
        )
        self._checked_buckets: set[str] = set()

    def ensure_bucket(self, bucket: str) -> None:
        if bucket in self._checked_buckets:
            return
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as exc:
            if error_code(exc) not in _MISSING_BUCKET_CODES:
                raise
            kwargs: dict = {"Bucket": bucket}
            if settings.S3_REGION and settings.S3_REGION != "us-east-1":
                kwargs["CreateBucketConfiguration"] = {"LocationConstraint": settings.S3_REGION}
            try:
                self.client.create_bucket(**kwargs)
            except ClientError as create_exc:
                if error_code(create_exc) not in _OWNED_BUCKET_CODES:
                    raise
            if bucket in self.public_buckets:
                policy = json.loads(json.dumps(_PUBLIC_READ_POLICY).replace("{bucket}", bucket))
                self.client.put_bucket_policy(Bucket=bucket, Policy=json.dumps(policy))
        self._checked_buckets.add(bucket)

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        *,
        upsert: bool = False,
        cache_control: str | None = None,
    ) -> dict:
        """Single whole-object PUT; the key only becomes visible once the write succeeds."""
        self.ensure_bucket(bucket)
        kwargs: dict = {"Bucket": bucket, "Key": key, "Body": data, "ContentType": content_type}
        if cache_control:
            kwargs["CacheControl"] = cache_control
        if not upsert:
            kwargs["IfNoneMatch"] = "*"
        return self.client.put_object(**kwargs)

    def get_object(self, bucket: str, key: str) -> bytes:
        self.ensure_bucket(bucket)
        obj = self.client.get_object(Bucket=bucket, Key=key)
        body = obj["Body"]
        try:
            return b"".join(body.iter_chunks(chunk_size=64 * 1024))
        finally:
            body.close()

    def head_object(self, bucket: str, key: str) -> dict:
        self.ensure_bucket(bucket)
        return self.client.head_object(Bucket=bucket, Key=key)

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> list[str]:
        """Delete keys and return the ones the store reported as failed."""
        self.ensure_bucket(bucket)
        pending = [str(key) for key in keys if str(key or "").strip()]
        failed: list[str] = []
        for start in range(0, len(pending), _DELETE_BATCH_SIZE):
            chunk = pending[start : start + _DELETE_BATCH_SIZE]
            response = self.client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": True},
            )
            failed.extend(str(item.get("Key") or "") for item in response.get("Errors") or [])
        return failed

    def list_objects(self, bucket: str, prefix: str) -> list[dict]:
        self.ensure_bucket(bucket)
        paginator = self.client.get_paginator("list_objects_v2")
        items: list[dict] = []
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for entry in page.get("Contents") or []:
                modified = _iso(entry.get("LastModified"))
                items.append(
                    {
                        "name": entry.get("Key"),
                        "size": int(entry.get("Size") or 0),
                        "mime_type": None,
                        "created_at": modified,
                        "updated_at": modified,
                    }
                )
        return items

    def create_signed_url(self, bucket: str, key: str, ttl_seconds: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=int(ttl_seconds),
            HttpMethod="GET",
        )

    def get_public_url(self, bucket: str, key: str) -> str:
        return f"{settings.public_url_base}/{quote(bucket, safe='')}/{quote(key, safe='/')}"


@lru_cache(maxsize=1)
def get_s3_storage() -> S3Storage:
    return S3Storage()
