"""
Storage backends for image assets.

AssetStore is written once against StorageBackend; configuration picks
LocalStorage (files under a root directory) or S3Storage (an S3-compatible
bucket via boto3).
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from quizscout.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    """One stored file as reported by list()."""

    path: str
    modified_at: datetime
    size: int

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def directory(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""


class StorageBackend(ABC):
    """Capability interface over a flat key space of '/'-separated paths."""

    storage_type: str = "abstract"

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Write data at path, replacing any existing object."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Read an object; raises FileNotFoundError when missing."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove an object; returns False when it did not exist."""

    @abstractmethod
    def list(self, prefix: str) -> List[StoredObject]:
        """All objects whose path starts with prefix."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether an object exists at path."""

    @abstractmethod
    def move(self, src: str, dst: str) -> None:
        """Move an object; raises FileNotFoundError when src is missing."""

    @abstractmethod
    def touch(self, path: str) -> None:
        """Set an object's modification time to now; raises FileNotFoundError when missing."""

    @abstractmethod
    def url(self, path: str) -> str:
        """Public URL for a path."""


class LocalStorage(StorageBackend):
    """Files under a root directory, served from /{path}."""

    storage_type = "local"

    def __init__(self, root: str):
        self.root = Path(root)

    def _full(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if self.root.resolve() not in full.parents and full != self.root.resolve():
            raise ValueError(f"Path escapes storage root: {path}")
        return full

    def put(self, path, data, content_type=None):
        target = self._full(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get(self, path):
        return self._full(path).read_bytes()

    def delete(self, path):
        target = self._full(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        self._prune_empty_dirs(target.parent)
        return True

    def _prune_empty_dirs(self, directory: Path) -> None:
        root = self.root.resolve()
        while directory != root and root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def list(self, prefix):
        base = self._full(prefix.rstrip("/")) if prefix.strip("/") else self.root.resolve()
        if base.is_file():
            candidates = [base]
        elif base.is_dir():
            candidates = [p for p in base.rglob("*") if p.is_file()]
        else:
            return []

        root = self.root.resolve()
        objects = []
        for file_path in candidates:
            if file_path.name.startswith(".tmp-"):
                continue
            stat = file_path.stat()
            objects.append(
                StoredObject(
                    path=file_path.relative_to(root).as_posix(),
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size=stat.st_size,
                )
            )
        return sorted(objects, key=lambda o: o.path)

    def exists(self, path):
        return self._full(path).is_file()

    def move(self, src, dst):
        source = self._full(src)
        if not source.is_file():
            raise FileNotFoundError(src)
        target = self._full(dst)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)
        self._prune_empty_dirs(source.parent)

    def touch(self, path):
        target = self._full(path)
        if not target.is_file():
            raise FileNotFoundError(path)
        os.utime(target, None)

    def url(self, path):
        return f"/{path}"


class S3Storage(StorageBackend):
    """
    S3-compatible object store.

    URLs use virtual-host style: https://{bucket}.{host}/{path}
    """

    storage_type = "s3"

    def __init__(self, bucket: str, host: str, client):
        self.bucket = bucket
        self.host = host
        self.client = client

    def put(self, path, data, content_type=None):
        kwargs = {"Bucket": self.bucket, "Key": path, "Body": data, "ACL": "public-read"}
        if content_type:
            kwargs["ContentType"] = content_type
        self.client.put_object(**kwargs)

    def get(self, path):
        from botocore.exceptions import ClientError

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(path)
            raise
        return response["Body"].read()

    def delete(self, path):
        if not self.exists(path):
            return False
        self.client.delete_object(Bucket=self.bucket, Key=path)
        return True

    def list(self, prefix):
        paginator = self.client.get_paginator("list_objects_v2")
        objects = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                objects.append(
                    StoredObject(
                        path=item["Key"],
                        modified_at=item["LastModified"],
                        size=item.get("Size", 0),
                    )
                )
        return sorted(objects, key=lambda o: o.path)

    def exists(self, path):
        from botocore.exceptions import ClientError

        try:
            self.client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def move(self, src, dst):
        if not self.exists(src):
            raise FileNotFoundError(src)
        self.client.copy_object(
            Bucket=self.bucket,
            Key=dst,
            CopySource={"Bucket": self.bucket, "Key": src},
            ACL="public-read",
        )
        self.client.delete_object(Bucket=self.bucket, Key=src)

    def touch(self, path):
        from botocore.exceptions import ClientError

        try:
            head = self.client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                raise FileNotFoundError(path)
            raise
        # S3 only rewrites LastModified on a copy that replaces metadata
        kwargs = {
            "Bucket": self.bucket,
            "Key": path,
            "CopySource": {"Bucket": self.bucket, "Key": path},
            "MetadataDirective": "REPLACE",
            "Metadata": head.get("Metadata") or {},
            "ACL": "public-read",
        }
        if head.get("ContentType"):
            kwargs["ContentType"] = head["ContentType"]
        self.client.copy_object(**kwargs)

    def url(self, path):
        return f"https://{self.bucket}.{self.host}/{path}"


def get_storage_backend(settings) -> StorageBackend:
    """
    Build the configured backend.

    Raises:
        ConfigurationError: When s3 is selected without a bucket
    """
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ConfigurationError("S3_BUCKET", "a bucket name when STORAGE_BACKEND=s3")

        import boto3

        client = boto3.client(
            "s3",
            endpoint_url=f"https://{settings.s3_host}",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
        )
        logger.info(f"Using S3 storage bucket={settings.s3_bucket} host={settings.s3_host}")
        return S3Storage(settings.s3_bucket, settings.s3_host, client)

    logger.info(f"Using local storage at {settings.storage_root}")
    return LocalStorage(settings.storage_root)
