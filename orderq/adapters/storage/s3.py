"""
S3Storage — CAS document in an S3 object, via aioboto3 conditional writes.

Install extras: pip install "orderq[aws]"

CAS semantics
-------------
  read()                  → (body, ETag); NoSuchKey → (b"", None)
  write(if_match=None)    → PutObject with IfNoneMatch="*" (create-only)
  write(if_match=etag)    → PutObject with IfMatch=etag

S3 answers a lost race with PreconditionFailed (412), or with
ConditionalRequestConflict (409) when two conditional writes overlap; both
become CASConflictError.

Works with S3-compatible stores that implement conditional writes
(MinIO, Cloudflare R2, ...) through ``endpoint_url``.
"""
from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from orderq.adapters.aws import AwsClientConfig, aws_error_code
from orderq.domain.errors import CASConflictError, StorageError

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session

_MISSING_CODES = ("NoSuchKey", "404")
_CONFLICT_CODES = ("PreconditionFailed", "412", "ConditionalRequestConflict", "409")


@dataclasses.dataclass
class S3Storage:
    """
    Parameters
    ----------
    bucket       : S3 bucket name
    key          : object key (e.g. "orderq/queue.json")
    session      : aioboto3.Session — created lazily from env vars if omitted
    region_name  : AWS region passed to the S3 client
    endpoint_url : custom endpoint for S3-compatible backends
    """

    bucket: str
    key: str
    session: AioBoto3Session | None = None
    region_name: str | None = None
    endpoint_url: str | None = None

    _aws: AwsClientConfig = dataclasses.field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._aws = AwsClientConfig(
            session=self.session,
            region_name=self.region_name,
            endpoint_url=self.endpoint_url,
        )

    async def read(self) -> tuple[bytes, str | None]:
        try:
            async with self._aws.client("s3") as s3:
                response = await s3.get_object(Bucket=self.bucket, Key=self.key)
                content: bytes = await response["Body"].read()
                return content, str(response["ETag"])
        except Exception as exc:
            if aws_error_code(exc) in _MISSING_CODES:
                return b"", None
            raise StorageError(f"S3 read of s3://{self.bucket}/{self.key} failed", exc) from exc

    async def write(
        self,
        content: bytes,
        if_match: str | None = None,
    ) -> str:
        put_kwargs: dict[str, str | bytes] = {
            "Bucket": self.bucket,
            "Key": self.key,
            "Body": content,
            "ContentType": "application/json",
        }
        if if_match is None:
            put_kwargs["IfNoneMatch"] = "*"
        else:
            put_kwargs["IfMatch"] = if_match

        try:
            async with self._aws.client("s3") as s3:
                response = await s3.put_object(**put_kwargs)
                return str(response["ETag"])
        except Exception as exc:
            if aws_error_code(exc) in _CONFLICT_CODES:
                raise CASConflictError(
                    f"S3 conditional write rejected ({aws_error_code(exc)})"
                ) from exc
            raise StorageError(f"S3 write of s3://{self.bucket}/{self.key} failed", exc) from exc
