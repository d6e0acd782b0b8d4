"""Concrete MailboxService implementations."""

from .imap import ImapMailboxService
from .pop3 import Pop3MailboxService

__all__ = ["ImapMailboxService", "Pop3MailboxService"]
