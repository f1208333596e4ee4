import json
from typing import Any, Dict, List
from unittest.mock import Mock

import fakeredis
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from fastapi.testclient import TestClient
from pycardano import Address, Network
from pycardano.key import VerificationKey

from app.core.config import Settings
from app.core.dependencies import Services, build_services
from app.core.store import MemoryStore, RedisStore
from app.services.ipfs import IpfsClient
from app.services.ledger_client import LedgerClient
from app.services.notice import NotificationSink
from main import create_app


class FakeClock:
    """Controllable time source; `step` advances the clock on every read."""

    def __init__(self, start: float = 1_700_000_000.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RelayStub:
    """Stands in for the requests.Session talking to the signing relay."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.issued = 0
        self.fail = False

    def _response(self, payload: Dict[str, Any]) -> Mock:
        response = Mock()
        response.json.return_value = payload
        return response

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        if self.fail:
            return self._response({"code": 500, "message": "relay down"})
        if url.endswith("/v1/projects/auth"):
            return self._response({"code": 0, "result": {"projectKey": "project-key"}})
        self.issued += 1
        return self._response({"code": 0, "result": {"data": f"sign://req-{self.issued}"}})


class RecordingNotifier(NotificationSink):
    def __init__(self):
        self.messages: List[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


class WalletKey:
    """Test wallet: a real Ed25519 key with its preprod address."""

    def __init__(self):
        self.private_key = Ed25519PrivateKey.generate()
        self.public_key_bytes = self.private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.public_key_hex = self.public_key_bytes.hex()
        key_hash = VerificationKey.from_primitive(self.public_key_bytes).hash()
        self.address = Address(payment_part=key_hash, network=Network.TESTNET).encode()

    def sign(self, data: bytes) -> str:
        return self.private_key.sign(data).hex()

    def login_sign_data(self, challenge: str) -> Dict[str, Any]:
        """Wallet answer to an arbitrary-sign request (hex challenges are signed as raw bytes)."""
        try:
            signed = bytes.fromhex(challenge)
        except ValueError:
            signed = challenge.encode()
        raw = {
            "pubkey": self.public_key_hex,
            "signature": self.sign(signed),
            "message": challenge,
        }
        return {"address": self.address, "rawData": json.dumps(raw)}


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        REDIS_HOST="",
        RELAY_URL="http://relay.test",
        PROJECT_ID="firmadrop",
        PROJECT_SECRET_KEY="project-secret",
        API_HOST="http://api.test",
        STATION_IDENTITY="station",
        EXPLORER_HOST="https://explorer.test",
        MINT_REWARD_AMOUNT="2",
        GALLERY_FEED_CAP=8,
        GALLERY_FEATURED_FEED_CAP=300,
        PAYOUT_WORKER_ENABLED=False,
        PAYOUT_IDLE_SECONDS=0.01,
        PAYOUT_REQUEUE_INFLIGHT_ON_START=False,
        TELEGRAM_BOT_TOKEN=None,
        TELEGRAM_CHAT_ID=None,
        DOC_PASSWORD="doc-secret",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture
def redis_store(test_settings) -> RedisStore:
    """RedisStore over an in-process fake server; the Lua scripts run for real."""
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisStore(test_settings, client=client)


@pytest.fixture
def relay() -> RelayStub:
    return RelayStub()


@pytest.fixture
def ledger(test_settings, relay) -> LedgerClient:
    """Real relay/signature logic over a stubbed HTTP session."""
    return LedgerClient(test_settings, http=relay)


@pytest.fixture
def mock_ipfs() -> Mock:
    ipfs = Mock(spec=IpfsClient)
    ipfs.add_bytes.return_value = "QmImage"
    ipfs.add_json.return_value = "QmMeta"
    ipfs.url_for.side_effect = lambda content_hash: f"https://ipfs.test/ipfs/{content_hash}"
    return ipfs


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def services(test_settings, store, ledger, mock_ipfs, notifier, clock) -> Services:
    return build_services(
        test_settings, store=store, ledger=ledger, ipfs=mock_ipfs, notifier=notifier, clock=clock
    )


@pytest.fixture
def redis_services(test_settings, redis_store, ledger, mock_ipfs, notifier, clock) -> Services:
    return build_services(
        test_settings, store=redis_store, ledger=ledger, ipfs=mock_ipfs, notifier=notifier, clock=clock
    )


@pytest.fixture
def wallet() -> WalletKey:
    return WalletKey()


@pytest.fixture
def client(test_settings, services) -> TestClient:
    """Create a test client for the FastAPI application"""
    with TestClient(create_app(test_settings, services)) as test_client:
        yield test_client


@pytest.fixture
def other_wallet() -> WalletKey:
    return WalletKey()
