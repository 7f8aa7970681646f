"""Tests for PartLedger and UploadSession."""

import random
import time
from concurrent.futures import ThreadPoolExecutor

from uploadgate.uploads.ledger import PartLedger, UploadSession
from uploadgate.uploads.models import PartInfo


class TestPartLedger:
    """Tests for part bookkeeping."""

    def test_empty_ledger(self):
        ledger = PartLedger()
        assert len(ledger) == 0
        assert ledger.ordered_parts() == []
        assert ledger.is_complete(0)
        assert not ledger.is_complete(1)

    def test_ordered_parts_sorted_ascending(self):
        """Parts added out of order come back sorted by part number."""
        ledger = PartLedger()
        ledger.add_part(3, '"c"')
        ledger.add_part(1, '"a"')
        ledger.add_part(2, '"b"')
        assert ledger.ordered_parts() == [
            PartInfo(1, '"a"'),
            PartInfo(2, '"b"'),
            PartInfo(3, '"c"'),
        ]

    def test_last_write_wins(self):
        """Re-adding a part number overwrites the ETag without adding an entry."""
        ledger = PartLedger()
        ledger.add_part(1, '"old"')
        ledger.add_part(1, '"new"')
        assert len(ledger) == 1
        assert ledger.ordered_parts() == [PartInfo(1, '"new"')]

    def test_is_complete_counts_distinct_numbers(self):
        ledger = PartLedger()
        ledger.add_part(1, "x")
        ledger.add_part(1, "y")
        assert not ledger.is_complete(2)
        ledger.add_part(2, "z")
        assert ledger.is_complete(2)

    def test_snapshot_if_complete(self):
        ledger = PartLedger()
        ledger.add_part(2, "b")
        assert ledger.snapshot_if_complete(2) is None
        ledger.add_part(1, "a")
        assert ledger.snapshot_if_complete(2) == [PartInfo(1, "a"), PartInfo(2, "b")]

    def test_concurrent_adds_from_threads(self):
        """Distinct parts added from many threads in shuffled order all land once."""
        total = 500
        numbers = list(range(1, total + 1))
        random.shuffle(numbers)
        ledger = PartLedger()

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(lambda n: ledger.add_part(n, f"etag-{n}"), numbers))

        parts = ledger.ordered_parts()
        assert len(parts) == total
        assert [p.part_number for p in parts] == list(range(1, total + 1))
        assert all(p.etag == f"etag-{p.part_number}" for p in parts)


class TestUploadSession:
    """Tests for the session record."""

    def test_record_part_updates_activity(self):
        session = UploadSession(upload_id="u1", object_key="k", expected_part_count=1)
        assert session.last_activity == session.created_at
        time.sleep(0.01)
        session.record_part(PartInfo(1, "e"))
        assert session.last_activity > session.created_at
        assert session.ledger.is_complete(1)

    def test_idle_seconds(self):
        session = UploadSession(upload_id="u1", object_key="k", expected_part_count=1)
        assert session.idle_seconds(session.last_activity + 42) == 42

    def test_not_idle_while_part_in_flight(self):
        session = UploadSession(upload_id="u1", object_key="k", expected_part_count=1)
        session.begin_part()
        assert session.idle_seconds(session.last_activity + 3600) == 0
        session.end_part()
        assert session.parts_in_flight == 0
        assert session.idle_seconds(session.last_activity + 42) == 42

    def test_sessions_do_not_share_ledgers(self):
        a = UploadSession(upload_id="a", object_key="k", expected_part_count=1)
        b = UploadSession(upload_id="b", object_key="k", expected_part_count=1)
        a.record_part(PartInfo(1, "e"))
        assert len(b.ledger) == 0
