"""
FastAPI dependencies and service wiring.

All components are built once at startup from one Settings object and kept
on `app.state.services`. Route handlers receive them through Depends():

    @router.get("/requests/{request_key}")
    def get_status(request_key: str, nft: NftService = Depends(get_nft_service)):
        ...
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from app.core.config import Settings
from app.core.store import KeyValueStore, create_store
from app.services.address_book import AddressBook
from app.services.airdrop_wallet import load_airdrop_wallet
from app.services.gallery import GalleryService
from app.services.ipfs import IpfsClient
from app.services.leaderboard import LeaderboardStore
from app.services.ledger_client import LedgerClient
from app.services.nft import NftService
from app.services.nft_draft import NftDraftStore
from app.services.notice import NotificationSink, create_notifier
from app.services.payout_worker import PayoutDispatcher
from app.services.reward import RewardEligibilityTracker, RewardQueue
from app.services.sign_request import RequestLedger


@dataclass
class Services:
    settings: Settings
    store: KeyValueStore
    ledger: LedgerClient
    queue: RewardQueue
    rewards: RewardEligibilityTracker
    requests: RequestLedger
    leaderboard: LeaderboardStore
    nft: NftService
    gallery: GalleryService
    dispatcher: PayoutDispatcher


def build_services(
    settings: Settings,
    store: Optional[KeyValueStore] = None,
    ledger: Optional[LedgerClient] = None,
    ipfs: Optional[IpfsClient] = None,
    notifier: Optional[NotificationSink] = None,
    clock: Callable[[], float] = time.time,
) -> Services:
    store = store or create_store(settings)
    ledger = ledger or LedgerClient(settings)
    ipfs = ipfs or IpfsClient(settings)
    notifier = notifier or create_notifier(settings)

    queue = RewardQueue(store, settings)
    rewards = RewardEligibilityTracker(store, queue, settings)
    address_book = AddressBook(store, settings)
    drafts = NftDraftStore(store, settings, clock=clock)
    requests = RequestLedger(store, settings, ledger, address_book, drafts, rewards, clock=clock)
    leaderboard = LeaderboardStore(store, settings, clock=clock)

    return Services(
        settings=settings,
        store=store,
        ledger=ledger,
        queue=queue,
        rewards=rewards,
        requests=requests,
        leaderboard=leaderboard,
        nft=NftService(settings, ledger, requests, ipfs, address_book, drafts),
        gallery=GalleryService(settings, ledger, requests, store, leaderboard, rewards),
        dispatcher=PayoutDispatcher(
            queue, ledger, lambda: load_airdrop_wallet(settings), notifier, settings, clock=clock
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_nft_service(request: Request) -> NftService:
    return get_services(request).nft


def get_gallery_service(request: Request) -> GalleryService:
    return get_services(request).gallery
