"""
Storage abstraction for S3-compatible object storage and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def presign_put(
        self,
        path: str,
        *,
        content_type: str,
        content_length: int,
        expires_in: int = 300,
    ) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    issued: list[dict] = field(default_factory=list)

    def presign_put(
        self,
        path: str,
        *,
        content_type: str,
        content_length: int,
        expires_in: int = 300,
    ) -> str:
        self.issued.append(
            {
                "path": path,
                "content_type": content_type,
                "content_length": content_length,
                "expires_in": expires_in,
            }
        )
        return f"{self.base_url}/{path}?op=put&expires={expires_in}"


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, R2, MinIO, COS).
    """

    bucket: str
    region: str
    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def presign_put(
        self,
        path: str,
        *,
        content_type: str,
        content_length: int,
        expires_in: int = 300,
    ) -> str:
        # The signature binds type and length, so the browser upload must match.
        return self._client.generate_presigned_url(
            ClientMethod="put_object",
            Params={
                "Bucket": self.bucket,
                "Key": path,
                "ContentType": content_type,
                "ContentLength": content_length,
            },
            ExpiresIn=expires_in,
        )
