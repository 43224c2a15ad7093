from __future__ import annotations

"""Blob storage for uploaded channel files (local directory or S3)."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol


class ObjectStoreError(RuntimeError):
    pass


class ObjectNotFoundError(ObjectStoreError):
    pass


class BlobStore(Protocol):
    def put(self, path: str, data: bytes) -> None: ...

    def get(self, path: str) -> bytes: ...

    def delete(self, path: str) -> None: ...


@dataclass
class LocalBlobStore:
    """Store blobs as files under a root directory."""
    root: Path

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ObjectStoreError(f"Blob path escapes store root: {path}")
        return target

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise ObjectNotFoundError(f"Blob not found: {path}")
        return target.read_bytes()

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()


@dataclass(frozen=True)
class ObjectStoreConfig:
    bucket: str
    endpoint_url: str | None
    region: str | None
    access_key: str | None
    secret_key: str | None
    session_token: str | None
    max_bytes: int | None


@dataclass
class S3BlobStore:
    """Store blobs in an S3-compatible bucket via boto3."""
    config: ObjectStoreConfig
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is not None:
            return
        import boto3

        session = boto3.session.Session(
            aws_access_key_id=self.config.access_key,
            aws_secret_access_key=self.config.secret_key,
            aws_session_token=self.config.session_token,
            region_name=self.config.region,
        )
        self.client = session.client("s3", endpoint_url=self.config.endpoint_url)

    def put(self, path: str, data: bytes) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.put_object(Bucket=self.config.bucket, Key=path, Body=data)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Failed to store object: {exc}") from exc

    def get(self, path: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self.client.get_object(Bucket=self.config.bucket, Key=path)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                raise ObjectNotFoundError(f"Blob not found: {path}") from exc
            raise ObjectStoreError(f"Failed to fetch object: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"Failed to fetch object: {exc}") from exc
        body = response.get("Body")
        if body is None:
            raise ObjectStoreError("Object body missing in response")
        data = body.read()
        if not isinstance(data, (bytes, bytearray)):
            raise ObjectStoreError("Invalid object body data")
        if self.config.max_bytes is not None and len(data) > self.config.max_bytes:
            raise ObjectStoreError("Object exceeds configured max_bytes")
        return bytes(data)

    def delete(self, path: str) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.delete_object(Bucket=self.config.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Failed to delete object: {exc}") from exc
