"""
S3-compatible object store adapter.

Wraps a boto3 S3 client with paginated listing, streamed downloads and
size-dependent uploads, reporting byte progress through ProgressHook.
"""
import os
import threading
import time
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any, BinaryIO, Callable, Iterator, List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from dhcore.config import S3Config
from dhcore.internal.constants import (
    DOWNLOAD_CHUNK_SIZE,
    LIST_PAGE_SIZE,
    MULTIPART_THRESHOLD,
    PARTIAL_SUFFIX,
)
from dhcore.internal.logging import get_logger
from dhcore.kernel.contracts import FileInfo, ObjectEntry, ProgressHook
from dhcore.kernel.errors import TransferError
from dhcore.kernel.sniff import sniff_file

logger = get_logger(__name__)

# s3transfer switches to multipart at >= multipart_threshold
_TRANSFER_CONFIG = TransferConfig(multipart_threshold=MULTIPART_THRESHOLD + 1)


def uses_multipart(size: int) -> bool:
    return size > MULTIPART_THRESHOLD


def create_s3_client(config: S3Config):
    options = {}
    if config.endpoint_url:
        options["endpoint_url"] = config.endpoint_url
    return boto3.client(
        "s3",
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        aws_session_token=config.session_token,
        region_name=config.region,
        # most S3-compatible stores only speak path-style addressing
        config=BotoConfig(s3={"addressing_style": "path" if config.endpoint_url else "auto"}),
        **options,
    )


def _iso(value: Any) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return str(value) if value is not None else ""


def _is_placeholder(key: str, size: int, prefix: str) -> bool:
    if key == prefix and size == 0:
        return True
    return key.endswith("/") and size == 0


def describe_local_file(local_path: Path, relative: str, content_type: str) -> FileInfo:
    st = os.stat(local_path)
    modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
    return FileInfo(
        path=relative,
        name=Path(local_path).name,
        content_type=content_type,
        last_modified=format_datetime(modified, usegmt=True),
        size=st.st_size,
    )


class S3ObjectStore:
    def __init__(self, client=None, config: Optional[S3Config] = None):
        if client is None:
            client = create_s3_client(config or S3Config())
        self._client = client

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(
        self,
        bucket: str,
        prefix: str,
        page_size: int = LIST_PAGE_SIZE,
        continuation_token: Optional[str] = None,
    ) -> tuple[list[ObjectEntry], Optional[str]]:
        params = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": page_size}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            resp = self._client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as exc:
            raise TransferError(f"failed to list s3://{bucket}/{prefix}: {exc}", key=prefix) from exc

        entries = []
        for obj in resp.get("Contents", []):
            key = obj["Key"]
            size = int(obj.get("Size", 0))
            if _is_placeholder(key, size, prefix):
                continue
            if key == prefix and prefix.endswith("/"):
                # a body stored on the directory key itself has no name below it
                logger.warning("Skipping object stored on the prefix key", bucket=bucket, key=key, size=size)
                continue
            entries.append(ObjectEntry(
                key=key,
                name=key[len(prefix):] if prefix and key.startswith(prefix) else key,
                size=size,
                last_modified=_iso(obj.get("LastModified")),
            ))
        return entries, resp.get("NextContinuationToken") or None

    def iter_objects(self, bucket: str, prefix: str, page_size: int = LIST_PAGE_SIZE) -> Iterator[ObjectEntry]:
        """
        Lazily walk every page under `prefix`. Restarting means listing again.
        """
        token = None
        while True:
            entries, token = self.list(bucket, prefix, page_size, token)
            yield from entries
            if not token:
                return

    def list_all(self, bucket: str, prefix: str) -> List[ObjectEntry]:
        return list(self.iter_objects(bucket, prefix))

    def walk(self, bucket: str, prefix: str, fn: Callable[[ObjectEntry], None], page_size: int = LIST_PAGE_SIZE) -> None:
        # an exception from fn stops the walk and propagates as-is
        for entry in self.iter_objects(bucket, prefix, page_size):
            fn(entry)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def get(self, bucket: str, key: str) -> tuple[Any, Optional[int]]:
        try:
            resp = self._client.get_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise TransferError(f"failed to get s3://{bucket}/{key}: {exc}", key=key) from exc
        length = resp.get("ContentLength")
        return resp["Body"], (int(length) if length is not None else None)

    def download_file(self, bucket: str, key: str, local_path: Path, hook: Optional[ProgressHook] = None) -> int:
        """
        Stream one object into `local_path` through a `.part` file.
        Returns the number of bytes written.
        """
        local_path = Path(local_path)
        body, total = self.get(bucket, key)
        if hook is not None and total is not None:
            hook.on_start(key, total)

        temp_path = local_path.with_name(local_path.name + PARTIAL_SUFFIX)
        written = 0
        start = time.monotonic()
        try:
            with open(temp_path, "wb") as f:
                for chunk in body.iter_chunks(DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    written += len(chunk)
                    if hook is not None:
                        hook.on_progress(key, written, total)
            temp_path.replace(local_path)
        except (ClientError, BotoCoreError) as exc:
            raise TransferError(f"failed to read s3://{bucket}/{key}: {exc}", key=key) from exc
        except OSError as exc:
            raise TransferError(f"failed to write {local_path}: {exc}", key=key) from exc
        finally:
            body.close()
            if temp_path.exists():
                temp_path.unlink()

        if hook is not None:
            hook.on_done(key, total if total is not None else written, time.monotonic() - start)
        return written

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def put(
        self,
        bucket: str,
        key: str,
        fileobj: BinaryIO,
        content_type: str,
        size: int,
        hook: Optional[ProgressHook] = None,
    ) -> dict:
        """
        Store `size` bytes from `fileobj`. Objects up to MULTIPART_THRESHOLD go
        out as one PutObject, larger ones as a managed multipart upload.
        """
        if hook is not None:
            hook.on_start(key, size)

        written = 0
        lock = threading.Lock()

        def _callback(n: int) -> None:
            nonlocal written
            # multipart parts report from s3transfer worker threads
            with lock:
                # negative amounts come back when s3transfer rewinds for a retry
                written = max(0, written + n)
                if hook is not None:
                    hook.on_progress(key, written, size)

        start = time.monotonic()
        try:
            self._client.upload_fileobj(
                fileobj,
                bucket,
                key,
                ExtraArgs={"ContentType": content_type},
                Callback=_callback,
                Config=_TRANSFER_CONFIG,
            )
        except (ClientError, BotoCoreError, S3UploadFailedError) as exc:
            raise TransferError(f"failed to upload s3://{bucket}/{key}: {exc}", key=key) from exc

        if hook is not None:
            hook.on_done(key, size, time.monotonic() - start)

        logger.debug("Object stored", bucket=bucket, key=key, size=size, multipart=uses_multipart(size))
        return self._head(bucket, key)

    def put_file(self, bucket: str, key: str, local_path: Path, relative: str = "", hook: Optional[ProgressHook] = None) -> FileInfo:
        local_path = Path(local_path)
        try:
            with open(local_path, "rb") as f:
                content_type = sniff_file(f)
                size = os.fstat(f.fileno()).st_size
                self.put(bucket, key, f, content_type, size, hook=hook)
            return describe_local_file(local_path, relative, content_type)
        except OSError as exc:
            raise TransferError(f"failed to read {local_path}: {exc}", key=key) from exc

    def _head(self, bucket: str, key: str) -> dict:
        # upload_fileobj returns nothing; ETag and version come from HEAD
        try:
            resp = self._client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Could not describe stored object", bucket=bucket, key=key, error=str(exc))
            return {}
        result = {}
        if resp.get("ETag"):
            result["etag"] = resp["ETag"]
        if resp.get("VersionId"):
            result["version_id"] = resp["VersionId"]
        return result
