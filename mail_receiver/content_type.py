"""Helpers for raw ``Content-Type`` header values.

Case is preserved as given; callers that need canonical types should
normalize themselves.
"""

from __future__ import annotations

_CHARSET_ATTR = "charset="
DEFAULT_ENCODING = "UTF-8"


def extract_mime_type(content_type: str) -> str:
    """Return everything before the first ``;`` (or the whole value)."""
    mime, _, _ = content_type.partition(";")
    return mime


def extract_encoding(content_type: str) -> str | None:
    """Return the ``charset`` parameter value, or ``None`` if absent.

    Only the parameter section (after the first ``;``) is searched. A
    leading quote is skipped and the value ends at a closing quote,
    whitespace or ``;``.
    """
    _, _, params = content_type.partition(";")
    ndx = params.find(_CHARSET_ATTR)
    if ndx == -1:
        return None

    start = ndx + len(_CHARSET_ATTR)
    if start < len(params) and params[start] == '"':
        start += 1

    end = start
    while end < len(params):
        c = params[end]
        if c == '"' or c == ";" or c.isspace():
            break
        end += 1
    return params[start:end]


def extract_encoding_or_default(content_type: str, default: str | None = None) -> str:
    """Like :func:`extract_encoding` but never ``None``.

    Falls back to *default*, or to UTF-8 when *default* is ``None``.
    """
    encoding = extract_encoding(content_type)
    if encoding is None:
        return default if default is not None else DEFAULT_ENCODING
    return encoding
