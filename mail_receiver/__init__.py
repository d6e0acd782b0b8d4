"""Mailbox retrieval engine: deferred, flag-aware message receiving over IMAP/POP3.

Public API re-exported here for convenience::

    from mail_receiver import MailboxSession, ReceiverConfig, create_session
"""

from .builder import ReceiveBuilder, ReceiveRunner
from .config import AttachmentStorageConfig, ImapConfig, Pop3Config, ReceiverConfig
from .content_type import extract_encoding, extract_encoding_or_default, extract_mime_type
from .errors import (
    AttachmentStorageError,
    FetchError,
    FlagError,
    FolderError,
    MailConnectionError,
    MailError,
    MoveError,
    ServiceError,
    UnsupportedOperationError,
)
from .factory import create_session
from .filenames import resolve_file_name, sanitize_file_name
from .flag_sync import FlagSynchronizer
from .flags import FlagSet, SystemFlag, is_empty_flags
from .logging import DebugTraceSink, setup_logging
from .message import Envelope, ReceivedAttachment, ReceivedMessage
from .plan import FetchExecutor, FetchPlan
from .service import FetchedMessage, FolderMode, MailboxService
from .session import FolderState, MailboxSession
from .storage import FileSystemAttachmentStore, S3AttachmentStore

__all__ = [
    "AttachmentStorageConfig",
    "AttachmentStorageError",
    "DebugTraceSink",
    "Envelope",
    "FetchError",
    "FetchExecutor",
    "FetchPlan",
    "FetchedMessage",
    "FileSystemAttachmentStore",
    "FlagError",
    "FlagSet",
    "FlagSynchronizer",
    "FolderError",
    "FolderMode",
    "FolderState",
    "ImapConfig",
    "MailConnectionError",
    "MailError",
    "MailboxService",
    "MailboxSession",
    "MoveError",
    "Pop3Config",
    "ReceiveBuilder",
    "ReceiveRunner",
    "ReceivedAttachment",
    "ReceivedMessage",
    "ReceiverConfig",
    "S3AttachmentStore",
    "ServiceError",
    "SystemFlag",
    "UnsupportedOperationError",
    "create_session",
    "extract_encoding",
    "extract_encoding_or_default",
    "extract_mime_type",
    "is_empty_flags",
    "resolve_file_name",
    "sanitize_file_name",
    "setup_logging",
]
