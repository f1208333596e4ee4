import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from app.core.config import Settings
from app.core.store import KeyValueStore

logger = logging.getLogger(__name__)

FEED_GALLERY = "gallery"
FEED_GALLERY_FEATURED = "gallery_featured"


@dataclass(frozen=True)
class LeaderboardEntry:
    nft_id: str
    address: str
    timestamp: int  # unix ms, also the sorted-set score

    def to_json(self) -> str:
        return json.dumps({"nftId": self.nft_id, "address": self.address, "timestamp": self.timestamp})

    @classmethod
    def from_json(cls, raw: str) -> "LeaderboardEntry":
        data = json.loads(raw)
        return cls(nft_id=data["nftId"], address=data.get("address", ""), timestamp=int(data["timestamp"]))

    @property
    def iso_timestamp(self) -> str:
        moment = datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LeaderboardStore:
    """Capped, recency-ordered feeds backed by sorted sets."""

    def __init__(self, store: KeyValueStore, settings: Settings, clock: Callable[[], float] = time.time):
        self.store = store
        self.key_prefix = settings.FEED_KEY_PREFIX
        self.caps: Dict[str, int] = {
            FEED_GALLERY: settings.GALLERY_FEED_CAP,
            FEED_GALLERY_FEATURED: settings.GALLERY_FEATURED_FEED_CAP,
        }
        self._clock = clock

    def _key(self, feed: str) -> str:
        if feed not in self.caps:
            raise ValueError(f"unknown feed: {feed}")
        return f"{self.key_prefix}{feed}"

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def record(self, feed: str, nft_id: str, address: str, timestamp: Optional[int] = None) -> LeaderboardEntry:
        key = self._key(feed)
        entry = LeaderboardEntry(nft_id=nft_id, address=address, timestamp=timestamp or self.now_ms())
        self.store.sorted_set_add(key, entry.timestamp, entry.to_json())
        self.store.sorted_set_trim(key, self.caps[feed])
        return entry

    def latest(self, feed: str, n: Optional[int] = None) -> List[LeaderboardEntry]:
        """Newest first; n defaults to the feed cap."""
        key = self._key(feed)
        count = self.caps[feed] if n is None else n
        entries: List[LeaderboardEntry] = []
        for raw, _ in self.store.sorted_set_top_n(key, count):
            try:
                entries.append(LeaderboardEntry.from_json(raw))
            except (ValueError, KeyError) as e:
                logger.warning("skipping unreadable feed entry in %s: %s", key, e)
        return entries
