"""FetchPlan and FetchExecutor: the "receive messages" operation.

A FetchPlan is a frozen description of what to receive; the executor runs
it against a session's open folder.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from .errors import FetchError, FolderError, MoveError, ServiceError
from .flag_sync import FlagSynchronizer
from .flags import FlagSet, SystemFlag
from .message import ReceivedMessage, materialize
from .service import FetchedMessage, SearchPredicate

if TYPE_CHECKING:
    from .session import MailboxSession

logger = structlog.get_logger()

_DELETED = FlagSet.of(SystemFlag.DELETED)

# Receives the raw selection (message numbers) once all snapshots exist
PostSelectionAction = Callable[[Sequence[int]], None]


@dataclass(frozen=True)
class FetchPlan:
    """Immutable receive request.

    ``predicate=None`` selects every message in the folder.
    """

    predicate: SearchPredicate = None
    flags_to_set: FlagSet = field(default_factory=FlagSet)
    flags_to_unset: FlagSet = field(default_factory=FlagSet)
    envelope_only: bool = False
    post_selection: PostSelectionAction | None = None

    def describe(self) -> dict[str, object]:
        """Loggable summary of the plan."""
        return {
            "predicate": None if self.predicate is None else str(self.predicate),
            "flags_to_set": self.flags_to_set.to_imap(),
            "flags_to_unset": self.flags_to_unset.to_imap(),
            "envelope_only": self.envelope_only,
            "post_selection": self.post_selection is not None,
        }


class FetchExecutor:
    """Runs a :class:`FetchPlan` inside a :class:`MailboxSession`."""

    def __init__(self, session: MailboxSession) -> None:
        self._session = session
        self._flags = FlagSynchronizer(session.service)

    def execute(self, plan: FetchPlan) -> list[ReceivedMessage]:
        session = self._session
        session.ensure_folder_open()
        service = session.service

        try:
            if plan.predicate is None:
                numbers = service.message_numbers()
            else:
                numbers = service.search(plan.predicate)
        except ServiceError as exc:
            raise FetchError("Failed to select messages") from exc

        log = logger.bind(folder=session.folder_name, **plan.describe())
        if not numbers:
            log.debug("fetch_empty")
            return []

        writable = not session.is_read_only
        prefetched: dict[int, FetchedMessage] = {}
        if plan.envelope_only:
            # One round trip for all headers instead of one per message
            try:
                prefetched = {m.number: m for m in service.fetch_headers(numbers)}
            except ServiceError as exc:
                raise FetchError("Failed to prefetch envelopes") from exc

        messages: list[ReceivedMessage] = []
        for number in numbers:
            message = self._materialize(number, plan, prefetched)
            self._flags.apply_flags(message, plan.flags_to_set, plan.flags_to_unset, writable)
            messages.append(message)

        if plan.post_selection is not None:
            try:
                plan.post_selection(numbers)
            except MoveError:
                if writable:
                    self._undo_deletion(numbers, plan.flags_to_set)
                raise

        if self._flags.should_expunge(plan.flags_to_set, writable):
            try:
                service.expunge()
            except ServiceError as exc:
                raise FolderError(f"Failed to expunge {session.folder_name}") from exc

        log.info("fetch_complete", count=len(messages), writable=writable)
        return messages

    def _undo_deletion(self, numbers: Sequence[int], flags_to_set: FlagSet) -> None:
        """Clear the DELETED marks this plan wrote so closing the folder keeps the messages."""
        if SystemFlag.DELETED not in flags_to_set:
            return
        try:
            self._session.service.store_flags(numbers, _DELETED, False)
        except ServiceError as exc:
            logger.warning(
                "deletion_undo_failed",
                folder=self._session.folder_name,
                count=len(numbers),
                error=str(exc),
            )

    def _materialize(
        self,
        number: int,
        plan: FetchPlan,
        prefetched: dict[int, FetchedMessage],
    ) -> ReceivedMessage:
        session = self._session
        try:
            if plan.envelope_only:
                fetched = prefetched.get(number)
                if fetched is None:
                    raise FetchError(f"No envelope returned for message {number}")
            else:
                fetched = session.service.fetch_message(number)
            return materialize(
                fetched,
                envelope_only=plan.envelope_only,
                decode_filenames=session.config.decode_filenames,
                store=session.attachment_store,
            )
        except (ServiceError, OSError) as exc:
            raise FetchError(f"Failed to fetch message {number}") from exc
