"""ReceiveBuilder: accumulate a receive request without touching the network.

Configuration calls only record intent.  A terminal call (``get()`` or
``with_(...)``) turns the accumulated state into a :class:`FetchPlan`;
the plan itself runs when the returned runner's ``fetch()`` is called.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
from typing import TYPE_CHECKING

import structlog

from .errors import MoveError, ServiceError
from .flags import FlagSet, SystemFlag
from .message import ReceivedMessage
from .plan import FetchPlan
from .service import SearchPredicate

if TYPE_CHECKING:
    from .session import MailboxSession

logger = structlog.get_logger()


class ReceiveRunner:
    """Deferred handle returned by :meth:`ReceiveBuilder.with_`."""

    def __init__(
        self,
        session: MailboxSession,
        plan: FetchPlan,
        callback: Callable[[ReceiveRunner], None],
    ) -> None:
        self._session = session
        self._plan = plan
        self._callback = callback

    @property
    def plan(self) -> FetchPlan:
        return self._plan

    def run(self) -> ReceiveRunner:
        """Hand this runner to the callback; messages are fetched only if it calls ``fetch()``."""
        self._callback(self)
        return self

    def fetch(self) -> list[ReceivedMessage]:
        return self._session.receive_messages(self._plan)


def _no_op(runner: ReceiveRunner) -> None:
    pass


class ReceiveBuilder:
    """Fluent, side-effect free description of a receive."""

    def __init__(self, session: MailboxSession) -> None:
        self._session = session
        self._predicate: SearchPredicate = None
        self._flags_to_set = FlagSet()
        self._flags_to_unset = FlagSet()
        self._envelope_only = False
        self._from_folder: str | None = None
        self._target_folder: str | None = None

    def filter(self, predicate: SearchPredicate) -> ReceiveBuilder:
        self._predicate = predicate
        return self

    def mark_seen(self) -> ReceiveBuilder:
        return self.mark(SystemFlag.SEEN)

    def mark(self, flag: SystemFlag | str) -> ReceiveBuilder:
        self._flags_to_set = self._flags_to_set | FlagSet.of(flag)
        return self

    def unmark(self, flag: SystemFlag | str) -> ReceiveBuilder:
        self._flags_to_unset = self._flags_to_unset | FlagSet.of(flag)
        return self

    def mark_deleted(self) -> ReceiveBuilder:
        return self.mark(SystemFlag.DELETED)

    def from_folder(self, name: str) -> ReceiveBuilder:
        self._from_folder = name
        return self

    def move_to_folder(self, name: str) -> ReceiveBuilder:
        """Copy the selection into *name* and delete it from the source folder."""
        self.mark_deleted()
        self._target_folder = name
        return self

    def envelope_only(self) -> ReceiveBuilder:
        self._envelope_only = True
        return self

    def build_plan(self) -> FetchPlan:
        return FetchPlan(
            predicate=self._predicate,
            flags_to_set=self._flags_to_set,
            flags_to_unset=self._flags_to_unset,
            envelope_only=self._envelope_only,
            post_selection=(
                partial(self._move_selection, self._target_folder)
                if self._target_folder
                else None
            ),
        )

    def get(self) -> list[ReceivedMessage]:
        return self.with_(_no_op).fetch()

    def with_(self, callback: Callable[[ReceiveRunner], None]) -> ReceiveRunner:
        if self._from_folder is not None:
            self._session.use_folder(self._from_folder)
        return ReceiveRunner(self._session, self.build_plan(), callback)

    def _move_selection(self, target: str, numbers: Sequence[int]) -> None:
        try:
            self._session.service.copy_messages(numbers, target)
        except ServiceError as exc:
            raise MoveError(f"Copying messages to {target} failed") from exc
        logger.info("messages_copied", target=target, count=len(numbers))
