"""MailboxService: the protocol every mailbox backend implements.

The engine never talks to a socket itself.  It drives a backend through
this interface, which models the IMAP4 folder/message operations; POP3
backends implement the subset they can and reject the rest with
:class:`~mail_receiver.errors.UnsupportedOperationError`.

All message references are sequence numbers within the currently open
folder.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .flags import FlagSet

# Passed through unchanged to ``MailboxService.search``.
SearchPredicate = Any


class FolderMode(str, Enum):
    READ_WRITE = "read_write"
    READ_ONLY = "read_only"


@dataclass
class FetchedMessage:
    """Raw message data as returned by a backend.

    ``raw_bytes`` holds the full RFC 822 message, or only the header block
    when fetched through :meth:`MailboxService.fetch_headers`.
    """

    number: int
    flags: FlagSet
    raw_bytes: bytes
    headers_only: bool = False


class MailboxService(Protocol):
    """Blocking mailbox operations against one authenticated connection."""

    def list_folders(self) -> list[str]:
        """Full names of every folder below the root."""
        ...

    def open_folder(self, name: str, mode: FolderMode) -> None:
        """Select *name*; raise ServiceError if *mode* is refused."""
        ...

    def close_folder(self, *, expunge: bool = True) -> None:
        ...

    def message_numbers(self) -> list[int]:
        ...

    def search(self, predicate: SearchPredicate) -> list[int]:
        ...

    def fetch_headers(self, numbers: Sequence[int]) -> list[FetchedMessage]:
        """Fetch headers and flags for all *numbers* in one round trip."""
        ...

    def fetch_message(self, number: int) -> FetchedMessage:
        ...

    def store_flags(self, numbers: Sequence[int], flags: FlagSet, enabled: bool) -> None:
        ...

    def expunge(self) -> None:
        ...

    def copy_messages(self, numbers: Sequence[int], target_folder: str) -> None:
        ...

    def message_count(self) -> int:
        ...

    def recent_count(self) -> int:
        ...

    def unseen_count(self) -> int:
        ...

    def deleted_count(self) -> int:
        ...

    def logout(self) -> None:
        ...
