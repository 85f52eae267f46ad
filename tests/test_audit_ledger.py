"""
Tests for the append-only audit ledger.
"""
import re

import pytest

from conftest import OWNER_A, OWNER_B
from filebroker.features.audit.ledger import AuditLedger, parse_action
from filebroker.features.audit.models import AuditAction, AuditEntry
from filebroker.shared.exceptions import InvalidActionError, InvalidCursorError, ValidationError


ISO_MILLIS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


class FakeSequenceManager:
    """Counter standing in for the Redis INCR sequence."""

    def __init__(self, start=0):
        self.value = start
        self.calls = []

    async def next_sequence(self, name):
        self.calls.append(name)
        self.value += 1
        return self.value


class UnavailableSequenceManager:
    async def next_sequence(self, name):
        return None


async def insert_entry(session, owner_id, timestamp, sequence, file_id="file-1", action="view"):
    session.add(AuditEntry(
        owner_id=owner_id,
        timestamp=timestamp,
        sequence=sequence,
        file_id=file_id,
        action=action,
        details={},
    ))
    await session.commit()


class TestParseAction:
    @pytest.mark.parametrize("action", AuditAction.values())
    def test_all_actions_accepted(self, action):
        assert parse_action(action).value == action

    def test_enum_member_accepted(self):
        assert parse_action(AuditAction.SHARE) is AuditAction.SHARE

    def test_unknown_action_lists_allowed(self):
        with pytest.raises(InvalidActionError) as exc_info:
            parse_action("invalid_action")

        assert exc_info.value.status_code == 400
        assert exc_info.value.extra["allowed_actions"] == [
            "view", "download", "upload", "delete", "share", "access_attempt",
        ]


class TestAppend:
    async def test_append_every_action(self, ledger_a):
        for action in AuditAction.values():
            entry = await ledger_a.append("file-1", action)
            assert entry.action == action

        entries, _ = await ledger_a.query(50)
        assert sorted(e.action for e in entries) == sorted(AuditAction.values())

    async def test_timestamp_format(self, ledger_a):
        entry = await ledger_a.append("file-1", AuditAction.VIEW)

        assert ISO_MILLIS.match(entry.timestamp)
        assert entry.owner_id == OWNER_A

    async def test_invalid_action_writes_nothing(self, ledger_a):
        with pytest.raises(InvalidActionError):
            await ledger_a.append("file-1", "invalid_action")

        entries, _ = await ledger_a.query(50)
        assert entries == []

    async def test_request_meta_overrides_metadata(self, ledger_a):
        entry = await ledger_a.append(
            "file-1",
            AuditAction.SHARE,
            {"sharedWith": "bob", "ipAddress": "spoofed"},
            {"ipAddress": "203.0.113.9", "userAgent": "agent"},
        )

        assert entry.details == {
            "sharedWith": "bob",
            "ipAddress": "203.0.113.9",
            "userAgent": "agent",
        }

    async def test_file_need_not_exist(self, ledger_a):
        entry = await ledger_a.append("never-existed", AuditAction.ACCESS_ATTEMPT)
        assert entry.file_id == "never-existed"

    async def test_client_file_ids_longer_than_uuid_are_accepted(self, ledger_a):
        file_id = "external-" + "x" * 40

        entry = await ledger_a.append(file_id, AuditAction.VIEW)

        assert entry.file_id == file_id

    async def test_overlong_file_id_is_rejected(self, ledger_a):
        with pytest.raises(ValidationError):
            await ledger_a.append("x" * 256, AuditAction.VIEW)

        entries, _ = await ledger_a.query(50)
        assert entries == []

    async def test_redis_sequence_used_when_available(self, session):
        sequences = FakeSequenceManager(start=41)
        ledger = AuditLedger(session, OWNER_A, sequences)

        first = await ledger.append("file-1", AuditAction.VIEW)
        second = await ledger.append("file-1", AuditAction.VIEW)

        assert (first.sequence, second.sequence) == (42, 43)
        assert sequences.calls == ["audit", "audit"]

    async def test_clock_fallback_when_redis_unavailable(self, session):
        ledger = AuditLedger(session, OWNER_A, UnavailableSequenceManager())

        first = await ledger.append("file-1", AuditAction.VIEW)
        second = await ledger.append("file-1", AuditAction.VIEW)

        assert second.sequence > first.sequence


class TestQuery:
    async def test_newest_first(self, ledger_a):
        for action in ("upload", "view", "download"):
            await ledger_a.append("file-1", action)

        entries, next_cursor = await ledger_a.query(50)

        assert [e.action for e in entries] == ["download", "view", "upload"]
        assert next_cursor is None

    async def test_same_millisecond_entries_are_ordered_by_sequence(self, session):
        ts = "2024-05-01T12:00:00.000Z"
        for sequence, action in ((1, "upload"), (2, "view"), (3, "download")):
            await insert_entry(session, OWNER_A, ts, sequence, action=action)

        entries, _ = await AuditLedger(session, OWNER_A).query(50)

        assert [e.action for e in entries] == ["download", "view", "upload"]

    async def test_pagination_across_identical_timestamps(self, session):
        ts = "2024-05-01T12:00:00.000Z"
        for sequence in range(1, 6):
            await insert_entry(session, OWNER_A, ts, sequence)
        ledger = AuditLedger(session, OWNER_A)

        seen = []
        cursor = None
        while True:
            entries, cursor = await ledger.query(2, cursor=cursor)
            seen.extend(e.sequence for e in entries)
            if cursor is None:
                break

        assert seen == [5, 4, 3, 2, 1]

    async def test_date_range_is_inclusive(self, session):
        for day in ("2024-01-01", "2024-01-15", "2024-01-31", "2024-02-10"):
            await insert_entry(session, OWNER_A, f"{day}T08:00:00.000Z", 1)
        ledger = AuditLedger(session, OWNER_A)

        entries, _ = await ledger.query(
            50,
            start_date="2024-01-15T08:00:00.000Z",
            end_date="2024-01-31T08:00:00.000Z",
        )

        assert [e.timestamp[:10] for e in entries] == ["2024-01-31", "2024-01-15"]

    async def test_open_ended_ranges(self, session):
        for day in ("2024-01-01", "2024-01-15", "2024-02-10"):
            await insert_entry(session, OWNER_A, f"{day}T08:00:00.000Z", 1)
        ledger = AuditLedger(session, OWNER_A)

        after, _ = await ledger.query(50, start_date="2024-01-10")
        before, _ = await ledger.query(50, end_date="2024-01-10")

        assert [e.timestamp[:10] for e in after] == ["2024-02-10", "2024-01-15"]
        assert [e.timestamp[:10] for e in before] == ["2024-01-01"]

    async def test_filter_by_file_and_action(self, ledger_a):
        await ledger_a.append("file-1", AuditAction.UPLOAD)
        await ledger_a.append("file-1", AuditAction.DOWNLOAD)
        await ledger_a.append("file-2", AuditAction.DOWNLOAD)

        by_file, _ = await ledger_a.query(50, file_id="file-1")
        by_action, _ = await ledger_a.query(50, action="download")
        both, _ = await ledger_a.query(50, file_id="file-2", action="download")

        assert {e.action for e in by_file} == {"upload", "download"}
        assert {e.file_id for e in by_action} == {"file-1", "file-2"}
        assert [(e.file_id, e.action) for e in both] == [("file-2", "download")]

    async def test_filtered_pages_are_full(self, ledger_a):
        for i in range(6):
            await ledger_a.append("noise", AuditAction.VIEW)
            await ledger_a.append("target", AuditAction.VIEW)

        entries, next_cursor = await ledger_a.query(3, file_id="target")

        assert len(entries) == 3
        assert all(e.file_id == "target" for e in entries)
        assert next_cursor is not None

    async def test_invalid_cursor(self, ledger_a):
        with pytest.raises(InvalidCursorError):
            await ledger_a.query(10, cursor="%%%")

    async def test_owner_isolation(self, ledger_a, ledger_b):
        await ledger_a.append("file-a", AuditAction.UPLOAD)
        await ledger_b.append("file-b", AuditAction.UPLOAD)

        entries_a, _ = await ledger_a.query(50)
        entries_b, _ = await ledger_b.query(50)

        assert [(e.owner_id, e.file_id) for e in entries_a] == [(OWNER_A, "file-a")]
        assert [(e.owner_id, e.file_id) for e in entries_b] == [(OWNER_B, "file-b")]

    async def test_owner_isolation_with_file_filter(self, ledger_a, ledger_b):
        await ledger_a.append("shared-id", AuditAction.VIEW)

        entries, _ = await ledger_b.query(50, file_id="shared-id")

        assert entries == []
