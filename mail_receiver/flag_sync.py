"""FlagSynchronizer: keeps snapshot flags and server flags in step."""

from __future__ import annotations

import structlog

from .errors import FlagError, ServiceError, UnsupportedOperationError
from .flags import FlagSet, SystemFlag, is_empty_flags
from .message import ReceivedMessage
from .service import MailboxService

logger = structlog.get_logger()

_SEEN = FlagSet.of(SystemFlag.SEEN)


class FlagSynchronizer:
    """Apply requested flag changes to snapshots and, when writable, the server.

    Must only be called once the snapshot content has been parsed, so the
    content reflects the message state before any flag change.
    """

    def __init__(self, service: MailboxService) -> None:
        self._service = service

    def apply_flags(
        self,
        message: ReceivedMessage,
        flags_to_set: FlagSet | None,
        flags_to_unset: FlagSet | None,
        writable: bool,
    ) -> None:
        if not is_empty_flags(flags_to_set):
            message.flags = message.flags | flags_to_set
            if writable:
                self._write(message.number, flags_to_set, enabled=True)

        if not is_empty_flags(flags_to_unset):
            message.flags = message.flags - flags_to_unset
            if writable:
                self._write(message.number, flags_to_unset, enabled=False)

        if is_empty_flags(flags_to_set) and not message.is_seen and writable:
            # Some servers set \Seen merely because the body was fetched
            try:
                self._service.store_flags([message.number], _SEEN, False)
            except ServiceError as exc:
                logger.debug("seen_revert_failed", number=message.number, error=str(exc))

    def update_flags(self, message: ReceivedMessage) -> None:
        """Write the snapshot's current flags back to the server."""
        try:
            self._service.store_flags([message.number], message.flags, True)
        except ServiceError as exc:
            raise FlagError(f"Failed to update flags of message {message.number}") from exc

    @staticmethod
    def should_expunge(flags_to_set: FlagSet | None, writable: bool) -> bool:
        return (
            writable
            and not is_empty_flags(flags_to_set)
            and SystemFlag.DELETED in flags_to_set
        )

    def _write(self, number: int, flags: FlagSet, *, enabled: bool) -> None:
        try:
            self._service.store_flags([number], flags, enabled)
        except UnsupportedOperationError as exc:
            logger.warning("flag_write_unsupported", number=number, flags=flags.to_imap(), error=str(exc))
        except ServiceError as exc:
            raise FlagError(f"Failed to store {flags.to_imap()} on message {number}") from exc
