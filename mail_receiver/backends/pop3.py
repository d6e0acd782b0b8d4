"""POP3 MailboxService backed by stdlib ``poplib``.

POP3 has a single folder (INBOX), no server-side search and no flags
except deletion.  Unsupported operations raise
:class:`UnsupportedOperationError`; the engine treats rejected flag writes
as read-only folder behaviour.  ``DELETED`` is honoured by issuing DELE,
which the server applies when the session ends.
"""

from __future__ import annotations

import poplib
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import structlog

from ..config import Pop3Config
from ..errors import MailConnectionError, ServiceError, UnsupportedOperationError
from ..flags import FlagSet, SystemFlag
from ..logging import DebugTraceSink
from ..service import FetchedMessage, FolderMode, SearchPredicate

logger = structlog.get_logger()

POP3_FOLDER = "INBOX"


class Pop3MailboxService:
    """Blocking POP3 client implementing :class:`MailboxService`."""

    def __init__(self, config: Pop3Config, *, trace: DebugTraceSink | None = None) -> None:
        self._config = config
        self._trace_sink = trace
        self._conn: poplib.POP3_SSL | poplib.POP3 | None = None
        self._open = False
        self._deleted: set[int] = set()

    def connect(self) -> None:
        try:
            if self._config.use_ssl:
                self._conn = poplib.POP3_SSL(
                    self._config.host, self._config.port, timeout=self._config.timeout_seconds
                )
            else:
                self._conn = poplib.POP3(
                    self._config.host, self._config.port, timeout=self._config.timeout_seconds
                )
            self._trace(f"USER {self._config.username}")
            self._conn.user(self._config.username)
            self._conn.pass_(self._config.password.get_secret_value())
        except (poplib.error_proto, OSError) as exc:
            self._conn = None
            raise MailConnectionError(
                f"Failed to connect to {self._config.host}:{self._config.port}: {exc}"
            ) from exc
        logger.info("pop3_connected", host=self._config.host, port=self._config.port)

    def logout(self) -> None:
        if self._conn is None:
            return
        try:
            self._trace("QUIT")
            self._conn.quit()
        except (poplib.error_proto, OSError) as exc:
            logger.warning("pop3_quit_failed", error=str(exc))
        finally:
            self._conn = None
            self._open = False
        logger.info("pop3_disconnected")

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def list_folders(self) -> list[str]:
        self._require_conn()
        return [POP3_FOLDER]

    def open_folder(self, name: str, mode: FolderMode) -> None:
        self._require_conn()
        if name.upper() != POP3_FOLDER:
            raise UnsupportedOperationError(f"POP3 has no folder named {name!r}")
        self._open = True
        self._deleted.clear()

    def close_folder(self, *, expunge: bool = True) -> None:
        # DELE marks are committed by the server on QUIT
        if not expunge and self._deleted:
            conn = self._require_conn()
            with self._protocol("RSET"):
                conn.rset()
        self._open = False
        self._deleted.clear()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def message_numbers(self) -> list[int]:
        conn = self._require_conn()
        with self._protocol("STAT"):
            count, _ = conn.stat()
        return [n for n in range(1, count + 1) if n not in self._deleted]

    def search(self, predicate: SearchPredicate) -> list[int]:
        raise UnsupportedOperationError("POP3 does not support server-side search")

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch_headers(self, numbers: Sequence[int]) -> list[FetchedMessage]:
        conn = self._require_conn()
        results: list[FetchedMessage] = []
        for number in numbers:
            with self._protocol(f"TOP {number} 0"):
                _, lines, _ = conn.top(number, 0)
            results.append(
                FetchedMessage(
                    number=number,
                    flags=self._flags_for(number),
                    raw_bytes=b"\r\n".join(lines) + b"\r\n\r\n",
                    headers_only=True,
                )
            )
        return results

    def fetch_message(self, number: int) -> FetchedMessage:
        conn = self._require_conn()
        with self._protocol(f"RETR {number}"):
            _, lines, _ = conn.retr(number)
        return FetchedMessage(
            number=number,
            flags=self._flags_for(number),
            raw_bytes=b"\r\n".join(lines) + b"\r\n",
        )

    def _flags_for(self, number: int) -> FlagSet:
        if number in self._deleted:
            return FlagSet.of(SystemFlag.DELETED)
        return FlagSet()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def store_flags(self, numbers: Sequence[int], flags: FlagSet, enabled: bool) -> None:
        conn = self._require_conn()
        if SystemFlag.DELETED in flags:
            if enabled:
                for number in numbers:
                    with self._protocol(f"DELE {number}"):
                        conn.dele(number)
                    self._deleted.add(number)
            elif self._deleted.intersection(numbers):
                # RSET undeletes everything; POP3 cannot undelete selectively
                with self._protocol("RSET"):
                    conn.rset()
                self._deleted.clear()

        unsupported = flags - FlagSet.of(SystemFlag.DELETED)
        if not unsupported.is_empty():
            raise UnsupportedOperationError(
                f"POP3 only supports the DELETED flag, not {unsupported.to_imap()}"
            )

    def expunge(self) -> None:
        # Deletions take effect at QUIT; nothing to do mid-session
        self._require_conn()

    def copy_messages(self, numbers: Sequence[int], target_folder: str) -> None:
        raise UnsupportedOperationError("POP3 does not support copying between folders")

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def message_count(self) -> int:
        return len(self.message_numbers())

    def recent_count(self) -> int:
        # POP3 has no notion of recent messages
        return 0

    def unseen_count(self) -> int:
        return self.message_count()

    def deleted_count(self) -> int:
        return len(self._deleted)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> poplib.POP3:
        if self._conn is None:
            raise ServiceError("Not connected")
        return self._conn

    @contextmanager
    def _protocol(self, command: str) -> Iterator[None]:
        self._trace(command)
        try:
            yield
        except (poplib.error_proto, OSError) as exc:
            raise ServiceError(f"{command.split(None, 1)[0]} failed: {exc}") from exc

    def _trace(self, line: str) -> None:
        if self._trace_sink is not None:
            self._trace_sink.trace(line)
