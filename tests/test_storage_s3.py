from unittest.mock import AsyncMock, MagicMock

import pytest

from orderq.adapters.aws import AwsClientConfig, aws_error_code
from orderq.adapters.storage.s3 import S3Storage
from orderq.domain.errors import CASConflictError, StorageError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _AsyncCM:
    """Minimal async context manager wrapping a return value."""

    def __init__(self, value: object) -> None:
        self._value = value

    async def __aenter__(self) -> object:
        return self._value

    async def __aexit__(self, *args: object) -> None:
        pass


def _make_storage(s3: AsyncMock | None = None) -> tuple[S3Storage, AsyncMock, MagicMock]:
    if s3 is None:
        s3 = AsyncMock()
    session = MagicMock()
    session.client.return_value = _AsyncCM(s3)
    storage = S3Storage(bucket="orders-bucket", key="orderq/queue.json", session=session)
    return storage, s3, session


def _client_error(code: str) -> Exception:
    exc = Exception(f"ClientError: {code}")
    exc.response = {"Error": {"Code": code}}  # type: ignore[attr-defined]
    return exc


# ---------------------------------------------------------------------------
# aws_error_code / AwsClientConfig
# ---------------------------------------------------------------------------


def test_aws_error_code_extracts_code():
    assert aws_error_code(_client_error("NoSuchKey")) == "NoSuchKey"


def test_aws_error_code_without_response():
    assert aws_error_code(ValueError("plain")) == ""


def test_aws_error_code_with_malformed_response():
    exc = Exception("weird")
    exc.response = {"Error": "not-a-dict"}  # type: ignore[attr-defined]
    assert aws_error_code(exc) == ""


def test_client_config_passes_region_and_endpoint():
    session = MagicMock()
    config = AwsClientConfig(
        session=session, region_name="eu-west-1", endpoint_url="http://localhost:4566"
    )
    config.client("s3")
    session.client.assert_called_once_with(
        "s3", region_name="eu-west-1", endpoint_url="http://localhost:4566"
    )


def test_client_config_omits_unset_options():
    session = MagicMock()
    AwsClientConfig(session=session).client("dynamodb")
    session.client.assert_called_once_with("dynamodb")


# ---------------------------------------------------------------------------
# read()
# ---------------------------------------------------------------------------


async def test_read_returns_content_and_etag():
    storage, s3, _ = _make_storage()
    body = AsyncMock()
    body.read.return_value = b'{"messages": [], "version": 0}'
    s3.get_object.return_value = {"Body": body, "ETag": '"abc123"'}

    content, etag = await storage.read()

    assert content == b'{"messages": [], "version": 0}'
    assert etag == '"abc123"'
    s3.get_object.assert_awaited_once_with(Bucket="orders-bucket", Key="orderq/queue.json")


@pytest.mark.parametrize("code", ["NoSuchKey", "404"])
async def test_read_missing_object_returns_empty(code: str):
    storage, s3, _ = _make_storage()
    s3.get_object.side_effect = _client_error(code)

    content, etag = await storage.read()

    assert content == b""
    assert etag is None


async def test_read_other_error_raises_storage_error():
    storage, s3, _ = _make_storage()
    s3.get_object.side_effect = _client_error("InternalError")

    with pytest.raises(StorageError, match="s3://orders-bucket/orderq/queue.json"):
        await storage.read()


# ---------------------------------------------------------------------------
# write()
# ---------------------------------------------------------------------------


async def test_write_create_only_uses_if_none_match():
    storage, s3, _ = _make_storage()
    s3.put_object.return_value = {"ETag": '"new-etag"'}

    etag = await storage.write(b"{}", if_match=None)

    assert etag == '"new-etag"'
    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["IfNoneMatch"] == "*"
    assert "IfMatch" not in kwargs
    assert kwargs["ContentType"] == "application/json"


async def test_write_with_etag_uses_if_match():
    storage, s3, _ = _make_storage()
    s3.put_object.return_value = {"ETag": '"v2"'}

    await storage.write(b"{}", if_match='"v1"')

    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["IfMatch"] == '"v1"'
    assert "IfNoneMatch" not in kwargs


@pytest.mark.parametrize(
    "code", ["PreconditionFailed", "412", "ConditionalRequestConflict", "409"]
)
async def test_write_conflict_codes_raise_cas_conflict(code: str):
    storage, s3, _ = _make_storage()
    s3.put_object.side_effect = _client_error(code)

    with pytest.raises(CASConflictError):
        await storage.write(b"{}", if_match='"stale"')


async def test_write_other_error_raises_storage_error():
    storage, s3, _ = _make_storage()
    s3.put_object.side_effect = _client_error("AccessDenied")

    with pytest.raises(StorageError) as exc_info:
        await storage.write(b"{}", if_match='"v1"')
    assert not isinstance(exc_info.value, CASConflictError)


async def test_session_client_is_s3_with_endpoint():
    s3 = AsyncMock()
    session = MagicMock()
    session.client.return_value = _AsyncCM(s3)
    s3.put_object.return_value = {"ETag": '"e"'}
    storage = S3Storage(
        bucket="b", key="k", session=session, endpoint_url="http://minio:9000"
    )

    await storage.write(b"{}")

    session.client.assert_called_once_with("s3", endpoint_url="http://minio:9000")
