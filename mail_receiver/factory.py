"""Build a connected :class:`MailboxSession` from configuration."""

from __future__ import annotations

from collections.abc import Callable

from .backends import ImapMailboxService, Pop3MailboxService
from .config import ReceiverConfig
from .logging import DebugTraceSink
from .session import MailboxSession
from .storage import create_attachment_store


def create_session(
    config: ReceiverConfig,
    *,
    debug_consumer: Callable[[str], None] | None = None,
) -> MailboxSession:
    """Connect the configured backend and wrap it in a session.

    When ``config.debug`` is set, protocol commands are traced to
    *debug_consumer* (or to the structlog ``mail_receiver.trace`` logger).

    Raises:
        ValueError: the selected protocol has no connection settings.
        MailConnectionError: the server cannot be reached or login fails.
    """
    trace = DebugTraceSink(debug_consumer) if config.debug else None

    if config.protocol == "pop3":
        if config.pop3 is None:
            raise ValueError("protocol 'pop3' requires pop3 settings")
        service: ImapMailboxService | Pop3MailboxService = Pop3MailboxService(config.pop3, trace=trace)
    else:
        if config.imap is None:
            raise ValueError("protocol 'imap' requires imap settings")
        service = ImapMailboxService(config.imap, trace=trace)

    service.connect()
    return MailboxSession(
        service,
        config,
        attachment_store=create_attachment_store(config.attachments),
    )
