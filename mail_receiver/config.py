"""Receiver configuration loaded from environment variables.

Every session is built from an explicit :class:`ReceiverConfig` value;
nothing is read from or written to process-wide state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    timeout_seconds: float = Field(default=30.0, description="Socket timeout")


class Pop3Config(BaseSettings):
    """POP3 server connection settings."""

    model_config = {"env_prefix": "POP3_"}

    host: str = Field(description="POP3 server hostname")
    port: int = Field(default=995, description="POP3 server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(description="POP3 login username")
    password: SecretStr = Field(description="POP3 login password")
    timeout_seconds: float = Field(default=30.0, description="Socket timeout")


class AttachmentStorageConfig(BaseSettings):
    """Where parsed attachment bytes are persisted, if anywhere."""

    model_config = {"env_prefix": "ATTACHMENTS_"}

    directory: Path | None = Field(
        default=None,
        description="Local directory for attachment files",
    )
    s3_bucket: str | None = Field(
        default=None,
        description="S3 bucket for attachments (takes precedence over directory)",
    )
    s3_prefix: str = Field(default="attachments", description="S3 key prefix")
    s3_region: str = Field(default="us-east-1", description="AWS region")
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint URL (e.g. for MinIO)",
    )


class ReceiverConfig(BaseSettings):
    """Root configuration for a receiving session."""

    model_config = {"env_prefix": "RECEIVER_"}

    protocol: Literal["imap", "pop3"] = Field(default="imap", description="Mailbox protocol")
    default_folder: str = Field(default="INBOX", description="Folder opened when none was chosen")
    decode_filenames: bool = Field(
        default=True,
        description="Decode RFC 2047 encoded attachment names",
    )
    debug: bool = Field(default=False, description="Trace protocol commands")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")

    imap: ImapConfig | None = None
    pop3: Pop3Config | None = None
    attachments: AttachmentStorageConfig = Field(default_factory=AttachmentStorageConfig)
