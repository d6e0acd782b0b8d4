"""Received message snapshots and their materialization from raw bytes.

Envelope extraction uses ``BytesHeaderParser`` and never walks the MIME
body; full materialization walks every part to collect bodies and
attachments.  Messages are parsed with the ``compat32`` policy so stored
attachment names keep their raw (possibly RFC 2047 encoded) form for
:func:`~mail_receiver.filenames.resolve_file_name`.
"""

from __future__ import annotations

import email
import email.errors
import email.header
import email.parser
import email.utils
from dataclasses import dataclass, field
from email.message import Message
from typing import TYPE_CHECKING

from .content_type import extract_encoding_or_default
from .filenames import resolve_file_name
from .flags import FlagSet, SystemFlag
from .service import FetchedMessage

if TYPE_CHECKING:
    from .storage import AttachmentStore


@dataclass(frozen=True)
class Envelope:
    """Lightweight header metadata available without the message body."""

    message_id: str
    subject: str
    from_address: str
    to_addresses: list[str]
    cc_addresses: list[str]
    date: str


@dataclass
class ReceivedAttachment:
    """A single attachment extracted from a received message."""

    name: str
    mime_type: str
    payload: bytes
    content_id: str | None = None
    location: str | None = None

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass
class ReceivedMessage:
    """Snapshot of one message as it was when fetched.

    ``flags`` is the only field updated after construction, by the flag
    synchronizer, once the content has been parsed.
    """

    number: int
    flags: FlagSet
    envelope: Envelope
    envelope_only: bool = False
    body_text: str | None = None
    body_html: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    attachments: list[ReceivedAttachment] = field(default_factory=list)

    @property
    def subject(self) -> str:
        return self.envelope.subject

    @property
    def from_address(self) -> str:
        return self.envelope.from_address

    @property
    def is_seen(self) -> bool:
        return SystemFlag.SEEN in self.flags

    @property
    def is_deleted(self) -> bool:
        return SystemFlag.DELETED in self.flags

    @property
    def is_answered(self) -> bool:
        return SystemFlag.ANSWERED in self.flags

    @property
    def is_flagged(self) -> bool:
        return SystemFlag.FLAGGED in self.flags


def extract_envelope(raw_bytes: bytes) -> Envelope:
    """Parse only the header block of *raw_bytes*."""
    headers = email.parser.BytesHeaderParser().parsebytes(raw_bytes)
    return _envelope_from(headers)


def materialize(
    fetched: FetchedMessage,
    *,
    envelope_only: bool = False,
    decode_filenames: bool = True,
    store: AttachmentStore | None = None,
) -> ReceivedMessage:
    """Build a :class:`ReceivedMessage` from backend data.

    Attachments are parsed (and handed to *store*, if given) unless
    *envelope_only* is set or the backend only delivered headers.
    """
    if envelope_only or fetched.headers_only:
        return ReceivedMessage(
            number=fetched.number,
            flags=fetched.flags,
            envelope=extract_envelope(fetched.raw_bytes),
            envelope_only=True,
        )

    msg = email.message_from_bytes(fetched.raw_bytes)
    body_text, body_html = _extract_bodies(msg)
    attachments = _extract_attachments(msg, decode_filenames)

    if store is not None:
        for attachment in attachments:
            attachment.location = store.save(fetched.number, attachment)

    return ReceivedMessage(
        number=fetched.number,
        flags=fetched.flags,
        envelope=_envelope_from(msg),
        body_text=body_text,
        body_html=body_html,
        headers={k: _decode_header(v) for k, v in msg.items()},
        attachments=attachments,
    )


def _envelope_from(msg: Message) -> Envelope:
    return Envelope(
        message_id=str(msg.get("Message-ID", "")),
        subject=_decode_header(msg.get("Subject", "")),
        from_address=_decode_header(msg.get("From", "")),
        to_addresses=_parse_address_list(msg.get_all("To")),
        cc_addresses=_parse_address_list(msg.get_all("Cc")),
        date=str(msg.get("Date", "")),
    )


def _decode_header(value: object) -> str:
    try:
        return str(email.header.make_header(email.header.decode_header(str(value))))
    except (ValueError, LookupError, email.errors.HeaderParseError):
        return str(value)


def _parse_address_list(values: list[str] | None) -> list[str]:
    if not values:
        return []
    return [addr for _, addr in email.utils.getaddresses([str(v) for v in values]) if addr]


def _is_attachment(part: Message) -> bool:
    if part.get_content_maintype() == "multipart":
        return False
    disposition = str(part.get("Content-Disposition", "")).lower()
    if disposition.startswith("attachment"):
        return True
    # Named non-text parts (inline images etc.) are attachments as well
    return part.get_filename() is not None or (
        part.get("Content-ID") is not None and part.get_content_maintype() != "text"
    )


def _decode_text(part: Message) -> str | None:
    payload = part.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return None
    charset = extract_encoding_or_default(part.get("Content-Type", ""))
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _extract_bodies(msg: Message) -> tuple[str | None, str | None]:
    """Walk MIME parts and return (plain_text, html_text)."""
    body_text: str | None = None
    body_html: str | None = None

    for part in msg.walk():
        if part.get_content_maintype() == "multipart" or _is_attachment(part):
            continue

        content_type = part.get_content_type()
        if content_type == "text/plain" and body_text is None:
            body_text = _decode_text(part)
        elif content_type == "text/html" and body_html is None:
            body_html = _decode_text(part)

    return body_text, body_html


def _extract_attachments(msg: Message, decode_filenames: bool) -> list[ReceivedAttachment]:
    attachments: list[ReceivedAttachment] = []

    for part in msg.walk():
        if not _is_attachment(part):
            continue

        payload = part.get_payload(decode=True)
        if payload is None:
            # message/rfc822 parts carry a nested Message, not bytes
            inner = part.get_payload()
            if isinstance(inner, list) and inner:
                payload = inner[0].as_bytes()
            else:
                continue

        content_id = part.get("Content-ID")
        attachments.append(
            ReceivedAttachment(
                name=resolve_file_name(part, decode=decode_filenames),
                mime_type=part.get_content_type(),
                payload=payload,
                content_id=str(content_id).strip() if content_id is not None else None,
            )
        )

    return attachments
