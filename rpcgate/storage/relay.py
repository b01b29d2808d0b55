"""Relay uploads to a content-addressed storage backend.

The backend is reached through its S3-compatible write API (Filebase by
default). A successful put returns the content identifier in the
``x-amz-meta-cid`` response header; the public URL is the configured
gateway base with that identifier appended.

The relay keeps no state between uploads apart from a lazily created
backend client.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError as BotoClientError

from ..config import StorageConfig, UploadArtifact
from ..exceptions import ConfigurationError, InternalError, PayloadTooLarge, UpstreamError

logger = logging.getLogger(__name__)

CID_HEADER = "x-amz-meta-cid"


class StorageBackend(Protocol):
    async def put(self, artifact: UploadArtifact) -> str:
        """Store ``artifact`` and return its content identifier."""
        ...


class S3StorageBackend:
    """S3-compatible backend. Blocking boto3 calls run in a worker thread."""

    def __init__(self, config: StorageConfig, client: Any = None):
        self.config = config
        self._client = client or boto3.session.Session().client(
            "s3",
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            config=BotoConfig(
                s3={"addressing_style": "path"},
                connect_timeout=config.timeout_seconds,
                read_timeout=config.timeout_seconds,
                retries={"max_attempts": 2},
            ),
        )

    async def put(self, artifact: UploadArtifact) -> str:
        try:
            response = await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.config.bucket,
                Key=artifact.name,
                Body=artifact.payload,
                ContentType=artifact.content_type,
                ACL="public-read",
            )
        except BotoClientError as e:
            error = e.response.get("Error", {})
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 502
            message = error.get("Message") or error.get("Code") or "Storage backend error"
            logger.error(f"Storage backend rejected {artifact.name}: {status} {message}")
            raise UpstreamError(
                f"Storage backend error: {message}",
                status_code=status,
                details={"code": error.get("Code")},
            ) from e
        except BotoCoreError as e:
            logger.error(f"Storage backend unreachable: {e}")
            raise InternalError("Storage backend unreachable") from e

        headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
        cid = headers.get(CID_HEADER)
        if not cid:
            raise UpstreamError(
                "Storage backend did not return a content identifier", status_code=502
            )
        return cid


class UploadRelay:
    """Validates configuration, stores an artifact and returns its public URL.

    Usage:
        relay = UploadRelay(StorageConfig(...))
        url = await relay.upload(UploadArtifact.from_json("meta.json", {"name": "X"}))
    """

    def __init__(
        self,
        config: StorageConfig,
        backend_factory: Callable[[StorageConfig], StorageBackend] = S3StorageBackend,
    ):
        self.config = config
        self._backend_factory = backend_factory
        self._backend: StorageBackend | None = None
        self.uploads_total = 0
        self.bytes_total = 0

    def check_configured(self) -> None:
        """Raise ConfigurationError if required backend settings are missing."""
        missing = self.config.missing()
        if missing:
            raise ConfigurationError(
                "Storage backend is not configured", details={"missing": missing}
            )

    async def upload(self, artifact: UploadArtifact) -> str:
        """Store ``artifact`` and return ``{gateway}/{content identifier}``."""
        self.check_configured()
        if artifact.size > self.config.max_upload_bytes:
            raise PayloadTooLarge(
                f"Upload exceeds {self.config.max_upload_bytes} bytes",
                details={"size": artifact.size},
            )

        if self._backend is None:
            self._backend = self._backend_factory(self.config)
        cid = await self._backend.put(artifact)

        self.uploads_total += 1
        self.bytes_total += artifact.size
        url = f"{self.config.gateway_url.rstrip('/')}/{cid}"
        logger.info(
            f"Uploaded {artifact.name} ({artifact.size} bytes, {artifact.content_type}) -> {url}"
        )
        return url

    def stats(self) -> dict:
        return {
            "configured": self.config.configured,
            "uploads": self.uploads_total,
            "bytes": self.bytes_total,
        }
