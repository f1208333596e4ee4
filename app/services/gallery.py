"""
Gallery submissions.

A submission code's first character picks the tier:

    1  -> general + featured feed, reward in [19, 20)
    3  -> no feed,                 reward in [15, 17)
    2  -> general feed,            reward in [17, 19)   (also any other code)

Every address gets at most one gallery reward; later submissions are only
recorded in the address's submission list.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from app.core.config import Settings
from app.core.store import KeyValueStore
from app.services.leaderboard import FEED_GALLERY, FEED_GALLERY_FEATURED, LeaderboardEntry, LeaderboardStore
from app.services.ledger_client import LedgerClient
from app.services.reward import RewardEligibilityTracker, RewardProgram
from app.services.sign_flow import SignFlowService
from app.services.sign_request import RequestLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GalleryTier:
    reward_range: Tuple[float, float]
    feeds: Tuple[str, ...]


GALLERY_TIERS: Dict[str, GalleryTier] = {
    "1": GalleryTier(reward_range=(19, 20), feeds=(FEED_GALLERY, FEED_GALLERY_FEATURED)),
    "2": GalleryTier(reward_range=(17, 19), feeds=(FEED_GALLERY,)),
    "3": GalleryTier(reward_range=(15, 17), feeds=()),
}
DEFAULT_TIER = "2"


def tier_for_code(code: str) -> GalleryTier:
    return GALLERY_TIERS.get((code or DEFAULT_TIER)[0], GALLERY_TIERS[DEFAULT_TIER])


class GalleryService(SignFlowService):
    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        requests: RequestLedger,
        store: KeyValueStore,
        leaderboard: LeaderboardStore,
        rewards: RewardEligibilityTracker,
        rng: random.Random | None = None,
    ):
        super().__init__(settings, ledger, requests)
        self.store = store
        self.leaderboard = leaderboard
        self.rewards = rewards
        self.submission_prefix = settings.GALLERY_SUBMISSION_PREFIX
        self.rng = rng or random.Random()

    def _random_amount(self, low: float, high: float) -> str:
        return f"{self.rng.uniform(low, high):.6f}"

    def submit(self, signer: str, nft_id: str, code: str) -> Dict[str, Any]:
        if not signer or not nft_id:
            raise ValueError("signer and nftId are required")

        tier = tier_for_code(code)
        for feed in tier.feeds:
            self.leaderboard.record(feed, nft_id, signer)
        self.store.list_push(f"{self.submission_prefix}{signer}", nft_id)

        amount = self._random_amount(*tier.reward_range)
        rewarded = self.rewards.claim(signer, RewardProgram.GALLERY, amount)
        return {"rewarded": rewarded, "amount": amount if rewarded else ""}

    def my_gallery(self, address: str) -> Dict[str, Any]:
        submitted = self.store.list_range(f"{self.submission_prefix}{address}")
        return {
            "nftIdList": list(reversed(submitted)),
            "isRewarded": not self.rewards.is_eligible(address, RewardProgram.GALLERY),
        }

    @staticmethod
    def _feed_view(entries: List[LeaderboardEntry]) -> Dict[str, Any]:
        return {"nftList": [{"nftId": entry.nft_id, "timestamp": entry.iso_timestamp} for entry in entries]}

    def latest(self) -> Dict[str, Any]:
        return self._feed_view(self.leaderboard.latest(FEED_GALLERY))

    def latest_featured(self) -> Dict[str, Any]:
        return self._feed_view(self.leaderboard.latest(FEED_GALLERY_FEATURED))
