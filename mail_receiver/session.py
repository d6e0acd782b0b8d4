"""MailboxSession: folder lifecycle and the receive entry points.

A session owns one :class:`MailboxService` and at most one open folder.
Opening another folder, or closing the session, closes the current one
first (expunging messages marked deleted).  Sessions are not thread-safe.
"""

from __future__ import annotations

from enum import Enum

import structlog

from .builder import ReceiveBuilder
from .config import ReceiverConfig
from .errors import FolderError, MailConnectionError, ServiceError
from .flag_sync import FlagSynchronizer
from .flags import FlagSet, SystemFlag
from .message import ReceivedMessage
from .plan import FetchExecutor, FetchPlan
from .service import FolderMode, MailboxService, SearchPredicate
from .storage import AttachmentStore

logger = structlog.get_logger()


class FolderState(str, Enum):
    CLOSED = "closed"
    READ_WRITE = "read_write"
    READ_ONLY = "read_only"


class MailboxSession:
    """Receiving session over an authenticated mailbox service.

    Usage::

        with MailboxSession(service) as session:
            session.use_folder("INBOX")
            for msg in session.receive().filter("UNSEEN").mark_seen().get():
                print(msg.subject)
    """

    def __init__(
        self,
        service: MailboxService,
        config: ReceiverConfig | None = None,
        *,
        attachment_store: AttachmentStore | None = None,
    ) -> None:
        self._service = service
        self._config = config or ReceiverConfig()
        self._attachment_store = attachment_store
        self._state = FolderState.CLOSED
        self._folder_name: str | None = None
        self._last_folder_name: str | None = None
        self._closed = False

    @property
    def service(self) -> MailboxService:
        return self._service

    @property
    def config(self) -> ReceiverConfig:
        return self._config

    @property
    def attachment_store(self) -> AttachmentStore | None:
        return self._attachment_store

    @property
    def state(self) -> FolderState:
        return self._state

    @property
    def folder_name(self) -> str | None:
        return self._folder_name

    @property
    def is_read_only(self) -> bool:
        return self._state is FolderState.READ_ONLY

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def list_folders(self) -> list[str]:
        try:
            return self._service.list_folders()
        except ServiceError as exc:
            raise MailConnectionError("Failed to list folders") from exc

    def use_folder(self, name: str, mode: FolderMode = FolderMode.READ_WRITE) -> None:
        """Close the current folder and open *name*.

        A refused read-write open falls back to read-only; only a failed
        read-only open raises :class:`FolderError`.
        """
        self._close_folder()
        self._last_folder_name = name

        if mode is FolderMode.READ_WRITE:
            try:
                self._service.open_folder(name, FolderMode.READ_WRITE)
            except ServiceError as exc:
                logger.info("folder_read_only_fallback", folder=name, error=str(exc))
            else:
                self._set_open(name, FolderState.READ_WRITE)
                return

        try:
            self._service.open_folder(name, FolderMode.READ_ONLY)
        except ServiceError as exc:
            raise FolderError(f"Failed to open folder: {name}") from exc
        self._set_open(name, FolderState.READ_ONLY)

    def use_default_folder(self) -> None:
        self.use_folder(self._config.default_folder)

    def ensure_folder_open(self) -> None:
        if self._state is not FolderState.CLOSED:
            return
        if self._last_folder_name is not None:
            self.use_folder(self._last_folder_name)
        else:
            self.use_default_folder()

    def _set_open(self, name: str, state: FolderState) -> None:
        self._folder_name = name
        self._state = state
        logger.debug("folder_opened", folder=name, mode=state.value)

    def _close_folder(self) -> None:
        if self._state is FolderState.CLOSED:
            return
        try:
            self._service.close_folder(expunge=True)
        except ServiceError as exc:
            logger.warning("folder_close_failed", folder=self._folder_name, error=str(exc))
        finally:
            logger.debug("folder_closed", folder=self._folder_name)
            self._state = FolderState.CLOSED
            self._folder_name = None

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def message_count(self) -> int:
        return self._count("message_count")

    def new_message_count(self) -> int:
        return self._count("recent_count")

    def unread_message_count(self) -> int:
        return self._count("unseen_count")

    def deleted_message_count(self) -> int:
        return self._count("deleted_count")

    def _count(self, counter: str) -> int:
        self.ensure_folder_open()
        try:
            return getattr(self._service, counter)()
        except ServiceError as exc:
            raise FolderError(f"Failed to read {counter} of {self._folder_name}") from exc

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def receive(self) -> ReceiveBuilder:
        """Start a deferred receive; nothing touches the network until a terminal call."""
        return ReceiveBuilder(self)

    def receive_messages(self, plan: FetchPlan) -> list[ReceivedMessage]:
        return FetchExecutor(self).execute(plan)

    def receive_email(self, predicate: SearchPredicate = None) -> list[ReceivedMessage]:
        """Receive messages without changing their flags.

        Servers may mark fetched messages as seen anyway; unseen messages
        are reverted to unseen on writable folders.
        """
        return self.receive_messages(FetchPlan(predicate=predicate))

    def receive_email_and_mark_seen(self, predicate: SearchPredicate = None) -> list[ReceivedMessage]:
        return self.receive_messages(
            FetchPlan(predicate=predicate, flags_to_set=FlagSet.of(SystemFlag.SEEN))
        )

    def receive_email_and_delete(self, predicate: SearchPredicate = None) -> list[ReceivedMessage]:
        """Receive messages, mark them seen and deleted, then expunge."""
        return self.receive_messages(
            FetchPlan(
                predicate=predicate,
                flags_to_set=FlagSet.of(SystemFlag.SEEN, SystemFlag.DELETED),
            )
        )

    def receive_envelopes(self, predicate: SearchPredicate = None) -> list[ReceivedMessage]:
        return self.receive_messages(FetchPlan(predicate=predicate, envelope_only=True))

    def update_email_flags(self, message: ReceivedMessage) -> None:
        """Write *message*'s current flags to the server copy."""
        self.ensure_folder_open()
        FlagSynchronizer(self._service).update_flags(message)

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        try:
            self._close_folder()
        finally:
            self._last_folder_name = None
            self._closed = True
            self._service.logout()

    def __enter__(self) -> MailboxSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
