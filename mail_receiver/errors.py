"""Error kinds surfaced by the retrieval engine.

Backends raise :class:`ServiceError`; the engine translates it into one of
the caller-facing kinds below.
"""

from __future__ import annotations


class MailError(Exception):
    """Base class for all mail_receiver errors."""


class MailConnectionError(MailError, ConnectionError):
    """The mailbox service cannot be reached, authenticated or enumerated."""


class FolderError(MailError):
    """A folder could not be opened, selected or queried."""


class FetchError(MailError):
    """Selecting or materializing messages failed; no partial results."""


class FlagError(MailError):
    """A flag write was rejected by the server."""


class MoveError(MailError):
    """Copying messages into the target folder failed."""


class ServiceError(Exception):
    """Protocol-level failure reported by a MailboxService backend."""


class UnsupportedOperationError(ServiceError):
    """The backend protocol cannot perform the requested operation (e.g. POP3 flags)."""


class AttachmentStorageError(ServiceError):
    """Persisting attachment bytes to the configured store failed."""
