from __future__ import annotations

import hashlib
import hmac
import os
import time
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError


class StorageError(RuntimeError):
    pass


class ObjectNotFound(StorageError):
    pass


@dataclass(frozen=True)
class WriteCapability:
    path: str
    url: str
    token: str | None = None


@dataclass(frozen=True)
class StorageEntry:
    name: str
    size: int | None = None


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def list(self, prefix: str, name_filter: str | None = None) -> list[StorageEntry]:
        """Direct children of `prefix` whose name contains `name_filter`."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def create_write_capability(self, key: str) -> WriteCapability:
        raise NotImplementedError

    def create_read_capability(self, key: str, ttl_seconds: int) -> str:
        raise NotImplementedError


def _clean_key(key: str) -> str:
    safe_key = (key or "").lstrip("/").replace("\\", "/")
    if not safe_key or any(part in ("", ".", "..") for part in safe_key.split("/")):
        raise StorageError(f"Invalid storage key: {key!r}")
    return safe_key


@dataclass(frozen=True)
class LocalStorage(Storage):
    """
    Filesystem backend for development and tests.

    Capabilities are HMAC-signed, expiring URLs served by the app itself
    (see routes.put_object / routes.get_object).
    """

    root: Path
    signing_key: str
    base_url: str = "/storage/objects"
    write_ttl_seconds: int = 2 * 60 * 60
    clock: Callable[[], float] = field(default=time.time, compare=False, repr=False)

    def _path(self, key: str) -> Path:
        return self.root / _clean_key(key)

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        if not p.is_file():
            raise ObjectNotFound(f"No such object: {key}")
        return p.open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def list(self, prefix: str, name_filter: str | None = None) -> list[StorageEntry]:
        folder = self._path(prefix)
        if not folder.is_dir():
            return []
        out = []
        for p in sorted(folder.iterdir()):
            if not p.is_file():
                continue
            if name_filter and name_filter not in p.name:
                continue
            out.append(StorageEntry(name=p.name, size=p.stat().st_size))
        return out

    def delete(self, key: str) -> None:
        p = self._path(key)
        if not p.is_file():
            raise ObjectNotFound(f"No such object: {key}")
        p.unlink()

    def _now(self) -> int:
        return int(self.clock())

    def _sign(self, method: str, key: str, expires: int) -> str:
        msg = f"{method}\n{key}\n{expires}".encode("utf-8")
        return hmac.new(self.signing_key.encode("utf-8"), msg, hashlib.sha256).hexdigest()

    def _capability_token(self, method: str, key: str, ttl_seconds: int) -> str:
        expires = self._now() + int(ttl_seconds)
        return f"{expires}.{self._sign(method, key, expires)}"

    def verify_capability(self, method: str, key: str, token: str | None) -> bool:
        if not token or "." not in token:
            return False
        raw_exp, sig = token.split(".", 1)
        try:
            expires = int(raw_exp)
            key = _clean_key(key)
        except (ValueError, StorageError):
            return False
        if self._now() > expires:
            return False
        expected = self._sign(method, key, expires)
        return hmac.compare_digest(expected.encode("utf-8"), sig.encode("utf-8"))

    def _url(self, key: str, token: str) -> str:
        return f"{self.base_url}/{urllib.parse.quote(key)}?token={urllib.parse.quote(token)}"

    def create_write_capability(self, key: str) -> WriteCapability:
        key = _clean_key(key)
        token = self._capability_token("PUT", key, self.write_ttl_seconds)
        return WriteCapability(path=key, url=self._url(key, token), token=token)

    def create_read_capability(self, key: str, ttl_seconds: int) -> str:
        key = _clean_key(key)
        if not self.exists(key):
            raise ObjectNotFound(f"No such object: {key}")
        return self._url(key, self._capability_token("GET", key, ttl_seconds))


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    write_ttl_seconds: int = 2 * 60 * 60

    def _client(self):
        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 put_object failed for {key}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ObjectNotFound(f"No such object: {key}") from e
            raise StorageError(f"S3 get_object failed for {key}: {e}") from e
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"S3 head_object failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"S3 head_object failed for {key}: {e}") from e

    def list(self, prefix: str, name_filter: str | None = None) -> list[StorageEntry]:
        folder = _clean_key(prefix).rstrip("/") + "/"
        out: list[StorageEntry] = []
        try:
            paginator = self._client().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=folder, Delimiter="/"):
                for obj in page.get("Contents") or []:
                    name = obj["Key"][len(folder):]
                    if not name or (name_filter and name_filter not in name):
                        continue
                    out.append(StorageEntry(name=name, size=obj.get("Size")))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 list failed for {folder}: {e}") from e
        return out

    def delete(self, key: str) -> None:
        if not self.exists(key):
            raise ObjectNotFound(f"No such object: {key}")
        try:
            self._client().delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 delete_object failed for {key}: {e}") from e

    def create_write_capability(self, key: str) -> WriteCapability:
        key = _clean_key(key)
        try:
            url = self._client().generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.write_ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 presign (put) failed for {key}: {e}") from e
        return WriteCapability(path=key, url=url, token=None)

    def create_read_capability(self, key: str, ttl_seconds: int) -> str:
        try:
            return self._client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl_seconds),
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 presign (get) failed for {key}: {e}") from e


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    # default local
    root_cfg = (config.get("STORAGE_ROOT") or "").strip()
    root = Path(root_cfg) if root_cfg else Path(os.getcwd()) / "storage"
    return LocalStorage(root=root, signing_key=str(config.get("SECRET_KEY") or ""))
