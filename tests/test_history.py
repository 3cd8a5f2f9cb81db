"""Tests for HistoryLog."""

import pytest

from agritrace.ledger.history import HistoryLog


@pytest.fixture
def log():
    return HistoryLog("test_ledger")


class TestAppend:
    """Per-parent indexing."""

    def test_indexes_per_parent(self, log):
        """Each parent numbers its entries from 0."""
        a0 = log.append(1, "created", "ST1A", 0)
        b0 = log.append(2, "created", "ST1B", 0)
        a1 = log.append(1, "updated", "ST1A", 5, {"title": "x"})

        assert (a0.key, b0.key, a1.key) == ((1, 0), (2, 0), (1, 1))
        assert log.count(1) == 2
        assert log.count(2) == 1
        assert log.count(3) == 0
        assert len(log) == 3

    def test_entries_in_order(self, log):
        log.append(1, "created", "ST1A", 0)
        log.append(1, "updated", "ST1A", 5, {"title": "x"})
        entries = log.entries(1)
        assert [e.action for e in entries] == ["created", "updated"]
        assert entries[1].details == {"title": "x"}

    def test_get(self, log):
        log.append(1, "created", "ST1A", 0)
        assert log.get(1, 0).actor == "ST1A"
        assert log.get(1, 1) is None
        assert log.get(9, 0) is None

    def test_unknown_parent_has_no_entries(self, log):
        assert log.entries(42) == []


class TestChain:
    """SHA-256 chain hashing."""

    def test_chain_links_entries(self, log):
        first = log.append(1, "created", "ST1A", 0)
        second = log.append(2, "created", "ST1B", 1)
        assert len(first.chain_hash) == 64
        assert second.previous_hash == first.chain_hash

    def test_verify_intact_chain(self, log):
        for i in range(5):
            log.append(i % 2, "event", "ST1A", i, {"n": i})
        assert log.verify_chain() is True

    def test_verify_detects_tampering(self, log):
        """Altering a stored entry breaks verification."""
        log.append(1, "created", "ST1A", 0, {"owner": "ST1A"})
        log.append(1, "transferred", "ST1A", 3, {"new_owner": "ST1B"})
        log.entries(1)[1].details["new_owner"] = "ST1EVIL"
        assert log.verify_chain() is False

    def test_empty_log_verifies(self, log):
        assert log.verify_chain() is True
