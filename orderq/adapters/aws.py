"""
Shared plumbing for the AWS adapters (S3 document storage, DynamoDB table).

Install extras: pip install "orderq[aws]"
"""
from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session


@dataclasses.dataclass
class AwsClientConfig:
    """
    session      : aioboto3.Session — created lazily from env vars if omitted
    region_name  : AWS region passed to the client
    endpoint_url : custom endpoint (MinIO, LocalStack, DynamoDB Local, ...)
    """

    session: AioBoto3Session | None = None
    region_name: str | None = None
    endpoint_url: str | None = None

    def client(self, service: str) -> Any:
        """Async context manager yielding a client for ``service``."""
        kwargs: dict[str, str] = {}
        if self.region_name:
            kwargs["region_name"] = self.region_name
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return self._get_session().client(service, **kwargs)  # type: ignore[attr-defined]

    def _get_session(self) -> AioBoto3Session:
        if self.session is None:
            try:
                import aioboto3  # type: ignore[import-untyped]
            except ImportError as exc:
                raise ImportError(
                    "AWS adapters require aioboto3. Install with: pip install 'orderq[aws]'"
                ) from exc
            self.session = aioboto3.Session()
        return self.session  # type: ignore[return-value]


def aws_error_code(exc: Exception) -> str:
    """Extract the error code from a botocore ClientError, or return ''."""
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return ""
    error = response.get("Error")
    if not isinstance(error, dict):
        return ""
    return str(error.get("Code") or "")
