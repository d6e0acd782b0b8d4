"""Attachment name resolution and filesystem-safe sanitizing."""

from __future__ import annotations

import email.errors
import email.header
import re
from email.message import Message

NO_NAME = "no-name"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-]")


def resolve_file_name(part: Message, *, decode: bool = True) -> str:
    """Resolve the display name of a MIME part.

    Names without RFC 2047 encoded words are returned as stored. Encoded
    names are decoded; when decoding fails, or the part stores no name at
    all, the name is derived from the Content-ID (or ``no-name``) plus the
    content subtype.
    """
    filename = part.get_filename()
    if filename is not None and (not decode or "=?" not in filename):
        return filename

    try:
        if filename is None:
            raise ValueError("part has no stored file name")
        return str(email.header.make_header(email.header.decode_header(filename)))
    except (ValueError, LookupError, email.errors.HeaderParseError):
        return _fallback_name(part)


def _fallback_name(part: Message) -> str:
    suffix = "." + part.get_content_subtype()
    content_id = part.get("Content-ID")
    if content_id is not None:
        return str(content_id).strip() + suffix
    return NO_NAME + suffix


def sanitize_file_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9.-]`` with ``_``."""
    return _UNSAFE_CHARS.sub("_", name)
