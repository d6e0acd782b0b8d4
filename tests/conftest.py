"""Shared test fixtures for the mail_receiver test suite."""

from __future__ import annotations

from collections.abc import Sequence
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from mail_receiver.config import ImapConfig, Pop3Config, ReceiverConfig
from mail_receiver.errors import ServiceError, UnsupportedOperationError
from mail_receiver.flags import FlagSet, SystemFlag
from mail_receiver.service import FetchedMessage, FolderMode
from mail_receiver.session import MailboxSession


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def pop3_config() -> Pop3Config:
    return Pop3Config(
        host="pop.test.com",
        port=995,
        use_ssl=True,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def receiver_config() -> ReceiverConfig:
    return ReceiverConfig(default_folder="INBOX")


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    cc: str | None = None,
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"
    if cc:
        msg["Cc"] = cc
    return msg.as_bytes()


def build_multipart_email(
    *,
    subject: str = "Multipart Email",
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return build_plain_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


# ------------------------------------------------------------------
# In-memory mailbox service
# ------------------------------------------------------------------


class FakeMailboxService:
    """Recording MailboxService over in-memory folders.

    ``folders`` maps a folder name to raw messages; every message starts
    with empty flags.  Each call is appended to ``calls`` as a tuple.
    """

    def __init__(
        self,
        folders: dict[str, list[bytes]] | None = None,
        *,
        read_only_folders: Sequence[str] = (),
        seen_on_fetch: bool = False,
    ) -> None:
        self.folders = {
            name: [{"raw": raw, "flags": FlagSet()} for raw in raws]
            for name, raws in (folders or {"INBOX": []}).items()
        }
        self.read_only_folders = set(read_only_folders)
        self.seen_on_fetch = seen_on_fetch
        self.selected: str | None = None
        self.calls: list[tuple] = []
        self.search_results: list[int] | None = None
        self.fail_on: dict[str, Exception] = {}

    # helpers --------------------------------------------------------

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def _messages(self) -> list[dict]:
        if self.selected is None:
            raise ServiceError("No folder selected")
        return self.folders[self.selected]

    # MailboxService ------------------------------------------------

    def list_folders(self) -> list[str]:
        self._record("list_folders")
        return list(self.folders)

    def open_folder(self, name: str, mode: FolderMode) -> None:
        self._record("open_folder", name, mode)
        if name not in self.folders:
            raise ServiceError(f"no such folder {name}")
        if mode is FolderMode.READ_WRITE and name in self.read_only_folders:
            raise ServiceError(f"{name} is not writable")
        self.selected = name

    def close_folder(self, *, expunge: bool = True) -> None:
        self._record("close_folder", expunge)
        if expunge and self.selected not in self.read_only_folders:
            self._expunge()
        self.selected = None

    def message_numbers(self) -> list[int]:
        self._record("message_numbers")
        return list(range(1, len(self._messages()) + 1))

    def search(self, predicate) -> list[int]:
        self._record("search", predicate)
        if self.search_results is not None:
            return list(self.search_results)
        return list(range(1, len(self._messages()) + 1))

    def fetch_headers(self, numbers: Sequence[int]) -> list[FetchedMessage]:
        self._record("fetch_headers", list(numbers))
        messages = self._messages()
        return [
            FetchedMessage(
                number=n,
                flags=messages[n - 1]["flags"],
                raw_bytes=messages[n - 1]["raw"].split(b"\n\n", 1)[0] + b"\n\n",
                headers_only=True,
            )
            for n in numbers
        ]

    def fetch_message(self, number: int) -> FetchedMessage:
        self._record("fetch_message", number)
        entry = self._messages()[number - 1]
        flags = entry["flags"]
        if self.seen_on_fetch:
            entry["flags"] = flags | FlagSet.of(SystemFlag.SEEN)
        return FetchedMessage(number=number, flags=flags, raw_bytes=entry["raw"])

    def store_flags(self, numbers: Sequence[int], flags: FlagSet, enabled: bool) -> None:
        self._record("store_flags", list(numbers), flags, enabled)
        for n in numbers:
            entry = self._messages()[n - 1]
            entry["flags"] = entry["flags"] | flags if enabled else entry["flags"] - flags

    def expunge(self) -> None:
        self._record("expunge")
        self._expunge()

    def _expunge(self) -> None:
        if self.selected is None:
            return
        self.folders[self.selected] = [
            m for m in self.folders[self.selected] if SystemFlag.DELETED not in m["flags"]
        ]

    def copy_messages(self, numbers: Sequence[int], target_folder: str) -> None:
        self._record("copy_messages", list(numbers), target_folder)
        if target_folder not in self.folders:
            raise ServiceError(f"no such folder {target_folder}")
        source = self._messages()
        for n in numbers:
            self.folders[target_folder].append({"raw": source[n - 1]["raw"], "flags": FlagSet()})

    def message_count(self) -> int:
        self._record("message_count")
        return len(self._messages())

    def recent_count(self) -> int:
        self._record("recent_count")
        return 0

    def unseen_count(self) -> int:
        self._record("unseen_count")
        return sum(1 for m in self._messages() if SystemFlag.SEEN not in m["flags"])

    def deleted_count(self) -> int:
        self._record("deleted_count")
        return sum(1 for m in self._messages() if SystemFlag.DELETED in m["flags"])

    def logout(self) -> None:
        self._record("logout")


class Pop3LikeService(FakeMailboxService):
    """Fake that rejects non-DELETED flag writes and copies like POP3."""

    def store_flags(self, numbers, flags, enabled):
        self._record("store_flags", list(numbers), flags, enabled)
        raise UnsupportedOperationError("POP3 only supports the DELETED flag")

    def copy_messages(self, numbers, target_folder):
        self._record("copy_messages", list(numbers), target_folder)
        raise UnsupportedOperationError("POP3 does not support copying")


@pytest.fixture
def inbox_service() -> FakeMailboxService:
    return FakeMailboxService(
        {
            "INBOX": [
                build_plain_email(subject="one", message_id="<1@example.com>"),
                build_plain_email(subject="two", message_id="<2@example.com>"),
                build_plain_email(subject="three", message_id="<3@example.com>"),
            ],
            "Archive": [],
        }
    )


@pytest.fixture
def session(inbox_service: FakeMailboxService, receiver_config: ReceiverConfig) -> MailboxSession:
    return MailboxSession(inbox_service, receiver_config)