"""
Storage abstraction for the S3-compatible media bucket and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Object storage for post media and profile pictures."""

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def delete(self, paths: Iterable[str]) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Keeps uploaded media in a dict; for development and tests."""

    base_url: str = "https://example.test/storage/media"
    # path -> (bytes, content_type)
    stored_objects: dict = field(default_factory=dict)

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        self.stored_objects[path] = (bytes(data), content_type)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def delete(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.stored_objects.pop(path, None)

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored[0]


@dataclass
class S3StorageClient:
    """
    Client for any S3-compatible bucket that serves media publicly.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

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

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
        )

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{path}"
        return f"https://{self.bucket}.s3.amazonaws.com/{path}"

    def delete(self, paths: Iterable[str]) -> None:
        keys = [{"Key": path} for path in paths]
        if not keys:
            return
        # delete_objects accepts at most 1000 keys per request.
        for start in range(0, len(keys), 1000):
            self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": keys[start : start + 1000], "Quiet": True},
            )
