"""IMAP4 MailboxService backed by stdlib ``imaplib``."""

from __future__ import annotations

import base64
import imaplib
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import structlog

from ..config import ImapConfig
from ..errors import MailConnectionError, ServiceError
from ..flags import FlagSet, SystemFlag
from ..logging import DebugTraceSink
from ..service import FetchedMessage, FolderMode, SearchPredicate

logger = structlog.get_logger()

_LIST_RE = re.compile(r'\((?P<flags>[^)]*)\)\s+(?P<delim>"[^"]*"|NIL)\s+(?P<name>.+)')
_STATUS_RE = re.compile(r"(MESSAGES|RECENT|UNSEEN)\s+(\d+)")
_UTF7_RE = re.compile(r"&([^-]*)-")
_FETCH_NUMBER_RE = re.compile(rb"\s*(\d+) \(")

HEADER_FETCH = "(FLAGS BODY.PEEK[HEADER])"
MESSAGE_FETCH = "(FLAGS BODY.PEEK[])"


def _encode_folder_name(name: str) -> str:
    """Encode *name* as IMAP modified UTF-7 (RFC 3501 section 5.1.3)."""
    out: list[str] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            raw = base64.b64encode("".join(pending).encode("utf-16-be"))
            out.append("&" + raw.rstrip(b"=").replace(b"/", b",").decode("ascii") + "-")
            pending.clear()

    for ch in name:
        if 0x20 <= ord(ch) <= 0x7E:
            flush()
            out.append("&-" if ch == "&" else ch)
        else:
            pending.append(ch)
    flush()
    return "".join(out)


def _decode_folder_name(name: str) -> str:
    def expand(match: re.Match[str]) -> str:
        chunk = match.group(1)
        if not chunk:
            return "&"
        b64 = chunk.replace(",", "/")
        b64 += "=" * (-len(b64) % 4)
        try:
            return base64.b64decode(b64).decode("utf-16-be")
        except ValueError:
            return match.group(0)

    return _UTF7_RE.sub(expand, name)


def _quote_folder_name(name: str) -> str:
    """Encode and quote a folder name for IMAP commands."""
    escaped = _encode_folder_name(name).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _message_set(numbers: Sequence[int]) -> str:
    return ",".join(str(n) for n in numbers)


def _parse_list_line(line: bytes | str) -> str | None:
    """Extract the folder name from one LIST response line.

    Format: ``(\\HasNoChildren) "/" "INBOX"``
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    match = _LIST_RE.match(line)
    if match is None:
        logger.warning("imap_list_line_unparsed", line=line)
        return None
    if "\\NOSELECT" in match.group("flags").upper():
        return None
    name = match.group("name").strip()
    if name.startswith('"') and name.endswith('"'):
        name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return _decode_folder_name(name)


class ImapMailboxService:
    """Blocking IMAP client implementing :class:`MailboxService`.

    Messages are addressed by sequence number in the selected folder.
    Content is fetched with ``BODY.PEEK`` so reads never set ``\\Seen``
    on their own.
    """

    def __init__(self, config: ImapConfig, *, trace: DebugTraceSink | None = None) -> None:
        self._config = config
        self._trace_sink = trace
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._selected: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Connect and log in; raise MailConnectionError on failure."""
        try:
            if self._config.use_ssl:
                self._conn = imaplib.IMAP4_SSL(
                    self._config.host, self._config.port, timeout=self._config.timeout_seconds
                )
            else:
                self._conn = imaplib.IMAP4(
                    self._config.host, self._config.port, timeout=self._config.timeout_seconds
                )
            self._trace(f"LOGIN {self._config.username}")
            self._conn.login(self._config.username, self._config.password.get_secret_value())
        except (imaplib.IMAP4.error, OSError) as exc:
            self._conn = None
            raise MailConnectionError(
                f"Failed to connect to {self._config.host}:{self._config.port}: {exc}"
            ) from exc
        logger.info("imap_connected", host=self._config.host, port=self._config.port)

    def logout(self) -> None:
        if self._conn is None:
            return
        try:
            self._trace("LOGOUT")
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.warning("imap_logout_failed", error=str(exc))
        finally:
            self._conn = None
            self._selected = None
        logger.info("imap_disconnected")

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def list_folders(self) -> list[str]:
        conn = self._require_conn()
        with self._protocol("LIST"):
            typ, data = conn.list('""', "*")
        self._check(typ, data, "LIST")
        names = [_parse_list_line(line) for line in data if line]
        return [name for name in names if name]

    def open_folder(self, name: str, mode: FolderMode) -> None:
        conn = self._require_conn()
        readonly = mode is FolderMode.READ_ONLY
        command = "EXAMINE" if readonly else "SELECT"
        with self._protocol(f"{command} {name}"):
            typ, data = conn.select(_quote_folder_name(name), readonly=readonly)
        self._check(typ, data, command)
        self._selected = name

    def close_folder(self, *, expunge: bool = True) -> None:
        conn = self._require_conn()
        if self._selected is None:
            return
        try:
            # CLOSE expunges \Deleted messages on a read-write folder
            with self._protocol("CLOSE" if expunge else "UNSELECT"):
                if expunge:
                    conn.close()
                else:
                    conn.unselect()
        finally:
            self._selected = None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def message_numbers(self) -> list[int]:
        return self._search("ALL")

    def search(self, predicate: SearchPredicate) -> list[int]:
        return self._search(str(predicate))

    def _search(self, criteria: str) -> list[int]:
        conn = self._require_conn()
        with self._protocol(f"SEARCH {criteria}"):
            typ, data = conn.search(None, criteria)
        self._check(typ, data, "SEARCH")
        if not data or not data[0]:
            return []
        return [int(n) for n in data[0].split()]

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch_headers(self, numbers: Sequence[int]) -> list[FetchedMessage]:
        results = self._fetch(_message_set(numbers), HEADER_FETCH, headers_only=True)
        by_number = {msg.number: msg for msg in results}
        return [by_number[n] for n in numbers if n in by_number]

    def fetch_message(self, number: int) -> FetchedMessage:
        results = self._fetch(str(number), MESSAGE_FETCH, headers_only=False)
        for msg in results:
            if msg.number == number:
                return msg
        raise ServiceError(f"FETCH returned no data for message {number}")

    def _fetch(self, message_set: str, items: str, *, headers_only: bool) -> list[FetchedMessage]:
        conn = self._require_conn()
        with self._protocol(f"FETCH {message_set} {items}"):
            typ, data = conn.fetch(message_set, items)
        self._check(typ, data, "FETCH")

        results: list[FetchedMessage] = []
        for item in data:
            if isinstance(item, tuple):
                meta, payload = item
                results.append(
                    FetchedMessage(
                        number=int(meta.split(None, 1)[0]),
                        flags=FlagSet.from_fetch_response(meta),
                        raw_bytes=payload,
                        headers_only=headers_only,
                    )
                )
            elif isinstance(item, bytes) and results and b"FLAGS" in item:
                # Some servers send FLAGS after the literal; a leading number
                # marks a separate FETCH response for that message
                match = _FETCH_NUMBER_RE.match(item)
                number = int(match.group(1)) if match else results[-1].number
                for msg in results:
                    if msg.number == number:
                        msg.flags = FlagSet.from_fetch_response(item)
        return results

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def store_flags(self, numbers: Sequence[int], flags: FlagSet, enabled: bool) -> None:
        # \Recent is server-managed and cannot be stored
        flags = flags - FlagSet.of(SystemFlag.RECENT)
        if flags.is_empty() or not numbers:
            return
        conn = self._require_conn()
        command = "+FLAGS" if enabled else "-FLAGS"
        message_set = _message_set(numbers)
        with self._protocol(f"STORE {message_set} {command} {flags.to_imap()}"):
            typ, data = conn.store(message_set, command, flags.to_imap())
        self._check(typ, data, "STORE")

    def expunge(self) -> None:
        conn = self._require_conn()
        with self._protocol("EXPUNGE"):
            typ, data = conn.expunge()
        self._check(typ, data, "EXPUNGE")

    def copy_messages(self, numbers: Sequence[int], target_folder: str) -> None:
        if not numbers:
            return
        conn = self._require_conn()
        message_set = _message_set(numbers)
        with self._protocol(f"COPY {message_set} {target_folder}"):
            typ, data = conn.copy(message_set, _quote_folder_name(target_folder))
        self._check(typ, data, "COPY")

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def message_count(self) -> int:
        return self._status()["MESSAGES"]

    def recent_count(self) -> int:
        return self._status()["RECENT"]

    def unseen_count(self) -> int:
        return self._status()["UNSEEN"]

    def deleted_count(self) -> int:
        return len(self._search("DELETED"))

    def _status(self) -> dict[str, int]:
        conn = self._require_conn()
        if self._selected is None:
            raise ServiceError("No folder selected")
        with self._protocol(f"STATUS {self._selected}"):
            typ, data = conn.status(_quote_folder_name(self._selected), "(MESSAGES RECENT UNSEEN)")
        self._check(typ, data, "STATUS")
        raw = data[0].decode("utf-8", errors="replace") if isinstance(data[0], bytes) else str(data[0])
        counts = {"MESSAGES": 0, "RECENT": 0, "UNSEEN": 0}
        counts.update({key: int(value) for key, value in _STATUS_RE.findall(raw)})
        return counts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise ServiceError("Not connected")
        return self._conn

    @contextmanager
    def _protocol(self, command: str) -> Iterator[None]:
        """Trace *command* and translate imaplib/socket failures."""
        self._trace(command)
        try:
            yield
        except (imaplib.IMAP4.error, OSError, UnicodeError) as exc:
            raise ServiceError(f"{command.split(None, 1)[0]} failed: {exc}") from exc

    @staticmethod
    def _check(typ: str, data: list, command: str) -> None:
        if typ != "OK":
            raise ServiceError(f"{command} failed: {data!r}")

    def _trace(self, line: str) -> None:
        if self._trace_sink is not None:
            self._trace_sink.trace(line)
