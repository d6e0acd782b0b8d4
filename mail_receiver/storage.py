"""Attachment storage: local directory or S3 bucket.

Both stores name objects after the sanitized resolved attachment name and
return a location string (filesystem path or ``s3://`` URI) that is kept
on the :class:`~mail_receiver.message.ReceivedAttachment`.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Protocol

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .config import AttachmentStorageConfig
from .errors import AttachmentStorageError
from .filenames import sanitize_file_name
from .message import ReceivedAttachment

logger = structlog.get_logger()


class AttachmentStore(Protocol):
    def save(self, message_number: int, attachment: ReceivedAttachment) -> str:
        """Persist *attachment* and return where it was written."""
        ...


def _content_hash(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()[:12]


class FileSystemAttachmentStore:
    """Write attachment bytes under a directory.

    A name collision with different content is resolved by prefixing the
    file name with a short content hash; identical content is reused.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def save(self, message_number: int, attachment: ReceivedAttachment) -> str:
        self._directory.mkdir(parents=True, exist_ok=True)
        safe_name = sanitize_file_name(attachment.name)
        path = self._directory / safe_name

        if path.exists() and path.read_bytes() != attachment.payload:
            path = self._directory / f"{_content_hash(attachment.payload)}_{safe_name}"

        path.write_bytes(attachment.payload)
        logger.debug(
            "attachment_stored",
            message_number=message_number,
            filename=attachment.name,
            path=str(path),
            size=attachment.size,
        )
        return str(path)


class S3AttachmentStore:
    """Upload attachment bytes to S3 under ``<prefix>/<message number>/``."""

    def __init__(self, config: AttachmentStorageConfig) -> None:
        if not config.s3_bucket:
            raise ValueError("S3 attachment storage requires s3_bucket")
        self._config = config
        kwargs: dict = {"region_name": config.s3_region}
        if config.s3_endpoint_url:
            kwargs["endpoint_url"] = config.s3_endpoint_url
        self._client = boto3.client("s3", **kwargs)

    def save(self, message_number: int, attachment: ReceivedAttachment) -> str:
        safe_name = sanitize_file_name(attachment.name)
        key = (
            f"{self._config.s3_prefix}/{message_number}/"
            f"{_content_hash(attachment.payload)}_{safe_name}"
        )
        try:
            self._client.put_object(
                Bucket=self._config.s3_bucket,
                Key=key,
                Body=attachment.payload,
                ContentType=attachment.mime_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise AttachmentStorageError(
                f"Failed to upload {attachment.name} to s3://{self._config.s3_bucket}/{key}"
            ) from exc
        uri = f"s3://{self._config.s3_bucket}/{key}"
        logger.debug(
            "attachment_uploaded",
            message_number=message_number,
            filename=attachment.name,
            uri=uri,
        )
        return uri


def create_attachment_store(config: AttachmentStorageConfig) -> AttachmentStore | None:
    """Pick the configured store; ``None`` when attachments stay in memory only."""
    if config.s3_bucket:
        return S3AttachmentStore(config)
    if config.directory is not None:
        return FileSystemAttachmentStore(config.directory)
    return None
