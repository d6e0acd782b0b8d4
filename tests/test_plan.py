"""Tests for mail_receiver.plan."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from mail_receiver.errors import (
    AttachmentStorageError,
    FetchError,
    FolderError,
    MoveError,
    ServiceError,
)
from mail_receiver.flags import FlagSet, SystemFlag
from mail_receiver.plan import FetchExecutor, FetchPlan
from mail_receiver.session import FolderState, MailboxSession

from tests.conftest import (
    FakeMailboxService,
    Pop3LikeService,
    build_multipart_email,
    build_plain_email,
)


def _inbox(count: int, **kwargs) -> dict[str, list[bytes]]:
    return {
        "INBOX": [build_plain_email(subject=f"m{i}") for i in range(1, count + 1)],
        **kwargs,
    }


class TestFetchPlan:
    def test_defaults(self):
        plan = FetchPlan()
        assert plan.predicate is None
        assert plan.flags_to_set.is_empty()
        assert plan.flags_to_unset.is_empty()
        assert plan.envelope_only is False
        assert plan.post_selection is None

    def test_describe(self):
        plan = FetchPlan(predicate="UNSEEN", flags_to_set=FlagSet.of(SystemFlag.SEEN))
        assert plan.describe() == {
            "predicate": "UNSEEN",
            "flags_to_set": "(\\Seen)",
            "flags_to_unset": "()",
            "envelope_only": False,
            "post_selection": False,
        }

    def test_frozen(self):
        with pytest.raises(AttributeError):
            FetchPlan().envelope_only = True


class TestFetchExecutor:
    def test_returns_messages_in_selection_order(self, session, inbox_service):
        messages = FetchExecutor(session).execute(FetchPlan())
        assert [m.subject for m in messages] == ["one", "two", "three"]
        assert [m.number for m in messages] == [1, 2, 3]
        assert inbox_service.calls_named("message_numbers") == [("message_numbers",)]

    def test_opens_default_folder_lazily(self, session, inbox_service):
        assert session.state is FolderState.CLOSED
        FetchExecutor(session).execute(FetchPlan())
        assert session.folder_name == "INBOX"
        assert session.state is FolderState.READ_WRITE

    def test_predicate_uses_search(self, session, inbox_service):
        inbox_service.search_results = [2]
        messages = FetchExecutor(session).execute(FetchPlan(predicate="SUBJECT two"))
        assert [m.subject for m in messages] == ["two"]
        assert inbox_service.calls_named("search") == [("search", "SUBJECT two")]
        assert inbox_service.calls_named("message_numbers") == []

    def test_empty_selection_short_circuits(self, session, inbox_service):
        inbox_service.search_results = []
        plan = FetchPlan(predicate="UNSEEN", flags_to_set=FlagSet.of(SystemFlag.DELETED))
        assert FetchExecutor(session).execute(plan) == []
        for name in ("fetch_message", "fetch_headers", "store_flags", "expunge"):
            assert inbox_service.calls_named(name) == []

    def test_deleted_expunges_once(self, session, inbox_service):
        plan = FetchPlan(flags_to_set=FlagSet.of(SystemFlag.DELETED))
        messages = FetchExecutor(session).execute(plan)
        assert len(messages) == 3
        assert all(m.is_deleted for m in messages)
        assert len(inbox_service.calls_named("expunge")) == 1
        assert inbox_service.folders["INBOX"] == []

    def test_snapshot_content_parsed_before_flags_written(self, session, inbox_service):
        FetchExecutor(session).execute(FetchPlan(flags_to_set=FlagSet.of(SystemFlag.SEEN)))
        names = [c[0] for c in inbox_service.calls if c[0] in ("fetch_message", "store_flags")]
        assert names == ["fetch_message", "store_flags"] * 3

    def test_read_only_folder_writes_no_flags(self, receiver_config):
        service = FakeMailboxService(_inbox(2), read_only_folders=["INBOX"])
        session = MailboxSession(service, receiver_config)
        plan = FetchPlan(flags_to_set=FlagSet.of(SystemFlag.SEEN, SystemFlag.DELETED))
        messages = FetchExecutor(session).execute(plan)
        assert session.is_read_only
        assert all(m.is_seen and m.is_deleted for m in messages)
        assert service.calls_named("store_flags") == []
        assert service.calls_named("expunge") == []

    def test_unseen_reverted_after_plain_fetch(self, receiver_config):
        service = FakeMailboxService(_inbox(2), seen_on_fetch=True)
        session = MailboxSession(service, receiver_config)
        messages = FetchExecutor(session).execute(FetchPlan())
        assert not any(m.is_seen for m in messages)
        assert all(SystemFlag.SEEN not in m["flags"] for m in service.folders["INBOX"])

    def test_unset_flags(self, session, inbox_service):
        inbox_service.folders["INBOX"][0]["flags"] = FlagSet.of(SystemFlag.FLAGGED, SystemFlag.SEEN)
        inbox_service.search_results = [1]
        plan = FetchPlan(predicate="FLAGGED", flags_to_unset=FlagSet.of(SystemFlag.FLAGGED))
        [message] = FetchExecutor(session).execute(plan)
        assert not message.is_flagged
        assert message.is_seen
        assert inbox_service.folders["INBOX"][0]["flags"] == FlagSet.of(SystemFlag.SEEN)

    def test_envelope_only_batches_header_fetch(self, session, inbox_service):
        messages = FetchExecutor(session).execute(FetchPlan(envelope_only=True))
        assert inbox_service.calls_named("fetch_headers") == [("fetch_headers", [1, 2, 3])]
        assert inbox_service.calls_named("fetch_message") == []
        assert all(m.envelope_only for m in messages)
        assert [m.subject for m in messages] == ["one", "two", "three"]

    def test_post_selection_runs_after_flags_before_expunge(self, session, inbox_service):
        seen: list[tuple[list[int], int, int]] = []

        def record(numbers):
            seen.append(
                (
                    list(numbers),
                    len(inbox_service.calls_named("store_flags")),
                    len(inbox_service.calls_named("expunge")),
                )
            )

        plan = FetchPlan(flags_to_set=FlagSet.of(SystemFlag.DELETED), post_selection=record)
        FetchExecutor(session).execute(plan)
        assert seen == [([1, 2, 3], 3, 0)]
        assert len(inbox_service.calls_named("expunge")) == 1

    def test_selection_failure(self, session, inbox_service):
        inbox_service.fail_on["message_numbers"] = ServiceError("dropped")
        with pytest.raises(FetchError):
            FetchExecutor(session).execute(FetchPlan())

    def test_fetch_failure_returns_no_partial_result(self, session, inbox_service):
        inbox_service.fail_on["fetch_message"] = ServiceError("dropped")
        with pytest.raises(FetchError) as exc_info:
            FetchExecutor(session).execute(FetchPlan())
        assert isinstance(exc_info.value.__cause__, ServiceError)

    def test_header_fetch_failure(self, session, inbox_service):
        inbox_service.fail_on["fetch_headers"] = ServiceError("dropped")
        with pytest.raises(FetchError):
            FetchExecutor(session).execute(FetchPlan(envelope_only=True))

    def test_expunge_failure(self, session, inbox_service):
        inbox_service.fail_on["expunge"] = ServiceError("dropped")
        with pytest.raises(FolderError):
            FetchExecutor(session).execute(FetchPlan(flags_to_set=FlagSet.of(SystemFlag.DELETED)))

    def test_pop3_like_service_keeps_snapshot_flags(self, receiver_config):
        service = Pop3LikeService(_inbox(2))
        session = MailboxSession(service, receiver_config)
        messages = FetchExecutor(session).execute(
            FetchPlan(flags_to_set=FlagSet.of(SystemFlag.SEEN))
        )
        assert all(m.is_seen for m in messages)
        assert len(service.calls_named("store_flags")) == 2

    def test_failed_move_clears_deleted_marks(self, session, inbox_service):
        def fail(numbers):
            raise MoveError("copy failed")

        plan = FetchPlan(flags_to_set=FlagSet.of(SystemFlag.DELETED), post_selection=fail)
        with pytest.raises(MoveError):
            FetchExecutor(session).execute(plan)
        assert inbox_service.calls_named("expunge") == []
        assert all(SystemFlag.DELETED not in m["flags"] for m in inbox_service.folders["INBOX"])

    def test_failed_move_on_read_only_folder_writes_nothing(self, receiver_config):
        service = FakeMailboxService(_inbox(2), read_only_folders=["INBOX"])
        session = MailboxSession(service, receiver_config)

        def fail(numbers):
            raise MoveError("copy failed")

        plan = FetchPlan(flags_to_set=FlagSet.of(SystemFlag.DELETED), post_selection=fail)
        with pytest.raises(MoveError):
            FetchExecutor(session).execute(plan)
        assert service.calls_named("store_flags") == []

    def test_attachment_storage_failure(self, receiver_config):
        raw = build_multipart_email(attachments=[("report.pdf", "application/pdf", b"%PDF")])
        service = FakeMailboxService({"INBOX": [raw]})
        store = MagicMock()
        store.save.side_effect = AttachmentStorageError("upload failed")
        session = MailboxSession(service, receiver_config, attachment_store=store)
        with pytest.raises(FetchError) as exc_info:
            FetchExecutor(session).execute(FetchPlan())
        assert isinstance(exc_info.value.__cause__, AttachmentStorageError)
