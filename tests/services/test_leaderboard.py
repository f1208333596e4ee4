import pytest

from app.core.store import MemoryStore
from app.services.leaderboard import FEED_GALLERY, FEED_GALLERY_FEATURED, LeaderboardEntry, LeaderboardStore


@pytest.fixture
def leaderboard(test_settings, clock):
    clock.step = 1.0
    return LeaderboardStore(MemoryStore(clock=clock), test_settings, clock=clock)


class TestLeaderboardStore:
    """Capped recency feeds"""

    def test_cap_keeps_most_recent(self, leaderboard):
        """Concrete scenario: feed capped at 8 receives 10 records"""
        for i in range(10):
            leaderboard.record(FEED_GALLERY, f"nft-{i}", "addr_a")

        entries = leaderboard.latest(FEED_GALLERY, 8)

        assert [entry.nft_id for entry in entries] == [f"nft-{i}" for i in range(9, 1, -1)]

    def test_latest_defaults_to_cap(self, leaderboard):
        for i in range(12):
            leaderboard.record(FEED_GALLERY, f"nft-{i}", "addr_a")
        assert len(leaderboard.latest(FEED_GALLERY)) == 8

    def test_latest_smaller_n(self, leaderboard):
        for i in range(5):
            leaderboard.record(FEED_GALLERY, f"nft-{i}", "addr_a")
        assert [entry.nft_id for entry in leaderboard.latest(FEED_GALLERY, 2)] == ["nft-4", "nft-3"]

    def test_feeds_are_separate(self, leaderboard):
        leaderboard.record(FEED_GALLERY, "nft-1", "addr_a")
        leaderboard.record(FEED_GALLERY_FEATURED, "nft-2", "addr_b")
        assert [entry.nft_id for entry in leaderboard.latest(FEED_GALLERY_FEATURED)] == ["nft-2"]

    def test_empty_feed(self, leaderboard):
        assert leaderboard.latest(FEED_GALLERY) == []

    def test_unknown_feed(self, leaderboard):
        with pytest.raises(ValueError):
            leaderboard.record("unknown", "nft-1", "addr_a")

    def test_explicit_timestamp(self, leaderboard):
        entry = leaderboard.record(FEED_GALLERY, "nft-1", "addr_a", timestamp=1_700_000_000_123)
        assert entry.iso_timestamp == "2023-11-14T22:13:20.123Z"

    def test_entry_json(self):
        entry = LeaderboardEntry(nft_id="nft-1", address="addr_a", timestamp=5)
        assert LeaderboardEntry.from_json(entry.to_json()) == entry
