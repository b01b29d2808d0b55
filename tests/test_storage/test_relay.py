"""Tests for the upload relay and the S3-compatible backend."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError as BotoClientError
from botocore.exceptions import EndpointConnectionError

from rpcgate.config import StorageConfig, UploadArtifact
from rpcgate.exceptions import (
    ConfigurationError,
    InternalError,
    PayloadTooLarge,
    UpstreamError,
)
from rpcgate.storage import CID_HEADER, S3StorageBackend, UploadRelay


def storage_config(**overrides) -> StorageConfig:
    values = {
        "access_key": "key",
        "secret_key": "secret",
        "bucket": "tokens",
        "gateway_url": "https://ipfs.example.test/ipfs/",
    }
    values.update(overrides)
    return StorageConfig(**values)


def boto_client(cid: str | None = "bafyTestCid") -> MagicMock:
    headers = {CID_HEADER: cid} if cid else {}
    client = MagicMock()
    client.put_object.return_value = {
        "ResponseMetadata": {"HTTPStatusCode": 200, "HTTPHeaders": headers}
    }
    return client


def relay_with(client: MagicMock, **config_overrides) -> UploadRelay:
    return UploadRelay(
        storage_config(**config_overrides),
        backend_factory=lambda config: S3StorageBackend(config, client=client),
    )


class TestConfiguration:
    def test_missing_lists_env_names(self):
        config = StorageConfig(access_key="k")
        assert config.missing() == ["FILEBASE_SECRET", "FILEBASE_BUCKETNAME", "FILEBASE_GATEWAY"]
        assert config.configured is False

    @pytest.mark.asyncio
    async def test_unconfigured_fails_before_any_call(self):
        factory = MagicMock()
        relay = UploadRelay(StorageConfig(), backend_factory=factory)

        with pytest.raises(ConfigurationError) as exc_info:
            await relay.upload(UploadArtifact.from_json("meta.json", {"name": "X"}))

        assert exc_info.value.status_code == 500
        assert "FILEBASE_KEY" in exc_info.value.details["missing"]
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_partially_configured_is_rejected(self):
        client = boto_client()
        relay = relay_with(client, bucket=None)

        with pytest.raises(ConfigurationError):
            await relay.upload(UploadArtifact.from_bytes("a.png", b"\x89PNG"))

        client.put_object.assert_not_called()


class TestUpload:
    @pytest.mark.asyncio
    async def test_json_upload_returns_gateway_url(self):
        client = boto_client("bafyMeta")
        relay = relay_with(client)

        url = await relay.upload(UploadArtifact.from_json("meta.json", {"name": "X"}))

        assert url == "https://ipfs.example.test/ipfs/bafyMeta"
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "tokens"
        assert kwargs["Key"] == "meta.json"
        assert kwargs["Body"] == b'{"name":"X"}'
        assert kwargs["ContentType"] == "application/json"

    @pytest.mark.asyncio
    async def test_image_upload_keeps_content_type(self):
        client = boto_client()
        relay = relay_with(client)

        await relay.upload(UploadArtifact.from_bytes("logo.png", b"\x89PNG", "image/png"))

        assert client.put_object.call_args.kwargs["ContentType"] == "image/png"

    @pytest.mark.asyncio
    async def test_backend_created_once(self):
        client = boto_client()
        calls = []

        def factory(config):
            calls.append(config)
            return S3StorageBackend(config, client=client)

        relay = UploadRelay(storage_config(), backend_factory=factory)
        await relay.upload(UploadArtifact.from_bytes("a", b"1"))
        await relay.upload(UploadArtifact.from_bytes("b", b"22"))

        assert len(calls) == 1
        assert relay.stats() == {"configured": True, "uploads": 2, "bytes": 3}

    @pytest.mark.asyncio
    async def test_too_large_rejected(self):
        client = boto_client()
        relay = relay_with(client, max_upload_bytes=4)

        with pytest.raises(PayloadTooLarge) as exc_info:
            await relay.upload(UploadArtifact.from_bytes("big", b"12345"))

        assert exc_info.value.status_code == 413
        client.put_object.assert_not_called()


class TestBackendFailures:
    @pytest.mark.asyncio
    async def test_missing_cid_is_upstream_error(self):
        relay = relay_with(boto_client(cid=None))

        with pytest.raises(UpstreamError, match="content identifier") as exc_info:
            await relay.upload(UploadArtifact.from_bytes("a", b"1"))

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_backend_rejection_keeps_status(self):
        client = boto_client()
        client.put_object.side_effect = BotoClientError(
            {
                "Error": {"Code": "AccessDenied", "Message": "Access Denied"},
                "ResponseMetadata": {"HTTPStatusCode": 403},
            },
            "PutObject",
        )
        relay = relay_with(client)

        with pytest.raises(UpstreamError) as exc_info:
            await relay.upload(UploadArtifact.from_bytes("a", b"1"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.to_dict() == {"error": "Storage backend error: Access Denied"}

    @pytest.mark.asyncio
    async def test_unreachable_backend_is_internal_error(self):
        client = boto_client()
        client.put_object.side_effect = EndpointConnectionError(
            endpoint_url="https://s3.filebase.com"
        )
        relay = relay_with(client)

        with pytest.raises(InternalError, match="unreachable"):
            await relay.upload(UploadArtifact.from_bytes("a", b"1"))
