"""
Sign request ledger.

A sign request is opened when a QR code is issued and resolved when the
wallet calls back. Records live in the store as `request:<key>` hashes with
a TTL; an expired record reads exactly like one that never existed.

status transitions (never backward, never between terminal states):

    PENDING(0) -> SUCCESS(1) | INVALID(-2) | FAILED(-1)

Every transition is a compare-and-set from PENDING, so two callbacks for
the same key cannot both apply their side effects.
"""

import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Optional, assert_never

from app.core.config import Settings
from app.core.exceptions import (
    CallbackPayloadMalformed,
    DuplicateRequestKey,
    RequestNotFound,
    SignatureInvalid,
    StoreUnavailable,
)
from app.core.store import KeyValueStore
from app.services.address_book import AddressBook
from app.services.ledger_client import LedgerClient, parse_raw_signed_data
from app.services.nft_draft import NftDraftStore
from app.services.reward import RewardEligibilityTracker, RewardProgram

logger = logging.getLogger(__name__)


class RequestType(str, Enum):
    LOGIN = "LOGIN"
    MINT = "MINT"


class RequestStatus(IntEnum):
    PENDING = 0
    SUCCESS = 1
    FAILED = -1
    INVALID = -2


@dataclass
class SignRequest:
    request_key: str
    type: Optional[RequestType] = None
    message: str = ""
    status: int = RequestStatus.FAILED
    signer: str = ""
    sign_data: str = ""
    extra: str = ""
    added_at: str = ""

    @property
    def found(self) -> bool:
        return self.type is not None

    @classmethod
    def from_record(cls, request_key: str, record: Dict[str, str]) -> "SignRequest":
        """Build from a store hash; an empty or unreadable hash means not found (status -1)."""
        try:
            request_type = RequestType(record.get("type", ""))
            status = int(record["status"])
        except (KeyError, ValueError):
            return cls(request_key=request_key)
        return cls(
            request_key=request_key,
            type=request_type,
            message=record.get("message", ""),
            status=status,
            signer=record.get("signer", ""),
            sign_data=record.get("signData", ""),
            extra=record.get("extra", ""),
            added_at=record.get("addedAt", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value if self.type else "",
            "message": self.message,
            "status": int(self.status),
            "signer": self.signer,
            "signData": self.sign_data,
            "extra": self.extra,
            "addedAt": self.added_at,
        }


@dataclass(frozen=True)
class LoginCallback:
    address: str
    raw_data: Any


@dataclass(frozen=True)
class MintCallback:
    transaction_hash: str
    nft_id: str
    payload: Dict[str, Any]


def _as_mapping(sign_data: Any) -> Dict[str, Any]:
    if isinstance(sign_data, str):
        try:
            sign_data = json.loads(sign_data)
        except json.JSONDecodeError as e:
            raise CallbackPayloadMalformed(f"signData is not JSON: {e}") from e
    if not isinstance(sign_data, dict):
        raise CallbackPayloadMalformed("signData must be an object")
    return sign_data


def parse_login_callback(sign_data: Any) -> LoginCallback:
    data = _as_mapping(sign_data)
    address = data.get("address")
    raw_data = data.get("rawData")
    if not isinstance(address, str) or not address or raw_data in (None, ""):
        raise CallbackPayloadMalformed("login signData needs address and rawData")
    return LoginCallback(address=address, raw_data=raw_data)


def parse_mint_callback(sign_data: Any) -> MintCallback:
    data = _as_mapping(sign_data)
    # the wallet may nest the broadcast result inside rawData
    fields = dict(data)
    if data.get("rawData") not in (None, ""):
        fields.update(parse_raw_signed_data(data["rawData"]))
    tx_hash = fields.get("transactionHash") or fields.get("txHash")
    if not isinstance(tx_hash, str) or not tx_hash:
        raise CallbackPayloadMalformed("mint signData has no transaction hash")
    nft_id = fields.get("nftId", "")
    return MintCallback(transaction_hash=tx_hash, nft_id=str(nft_id or ""), payload=data)


class RequestLedger:
    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        ledger: LedgerClient,
        address_book: AddressBook,
        drafts: NftDraftStore,
        rewards: RewardEligibilityTracker,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ledger = ledger
        self.address_book = address_book
        self.drafts = drafts
        self.rewards = rewards
        self.key_prefix = settings.REQUEST_KEY_PREFIX
        self.expire_seconds = settings.REQUEST_EXPIRE_SECONDS
        self.mint_reward_amount = settings.MINT_REWARD_AMOUNT
        self._clock = clock

    def _key(self, request_key: str) -> str:
        return f"{self.key_prefix}{request_key}"

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def open(
        self,
        type: RequestType,
        message: str,
        signer: str = "",
        extra: str = "",
        request_key: Optional[str] = None,
    ) -> str:
        """
        Persist a PENDING request with TTL and return its key.

        A relay-issued pairing key can be passed as `request_key`; otherwise
        a random url-safe token is allocated.
        """
        request_key = request_key or secrets.token_urlsafe(32)
        added_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        created = self.store.create_hash(
            self._key(request_key),
            {
                "type": RequestType(type).value,
                "message": message,
                "status": int(RequestStatus.PENDING),
                "signer": signer,
                "signData": "",
                "extra": extra,
                "addedAt": added_at,
            },
            self.expire_seconds,
        )
        if not created:
            raise DuplicateRequestKey(request_key)
        return request_key

    def get(self, request_key: str) -> SignRequest:
        return SignRequest.from_record(request_key, self.store.hash_get_all(self._key(request_key)))

    def set_status(self, request_key: str, status: RequestStatus) -> bool:
        """Move a PENDING request to a terminal status. False if expired or already terminal."""
        if status == RequestStatus.PENDING:
            raise ValueError("a request cannot be moved back to PENDING")
        return self.store.hash_compare_and_set(
            self._key(request_key), "status", int(RequestStatus.PENDING), int(status)
        )

    def bind_signer(self, request_key: str, address: str) -> bool:
        """Set the signer once. False if already bound or expired."""
        return self.store.hash_compare_and_set(self._key(request_key), "signer", "", address)

    def record_signature(self, request_key: str, sign_data: Any) -> bool:
        value = sign_data if isinstance(sign_data, str) else json.dumps(sign_data)
        return self.store.hash_set_if_exists(self._key(request_key), "signData", value)

    # ------------------------------------------------------------------
    # wallet callback
    # ------------------------------------------------------------------

    def resolve(self, request_key: str, approved: bool, sign_data: Any) -> SignRequest:
        """
        Apply a wallet callback to its request and return the resulting state.

        Raises:
            RequestNotFound: unknown or expired key
            StoreUnavailable: store unreachable
        """
        request = self.get(request_key)
        if not request.found:
            raise RequestNotFound(request_key)

        if not approved:
            self.set_status(request_key, RequestStatus.INVALID)
            return self.get(request_key)

        try:
            match request.type:
                case RequestType.LOGIN:
                    self._resolve_login(request, sign_data)
                case RequestType.MINT:
                    self._resolve_mint(request, sign_data)
                case _:
                    assert_never(request.type)
        except StoreUnavailable:
            raise
        except SignatureInvalid as e:
            logger.info("%s", e)
            self.set_status(request_key, RequestStatus.INVALID)
        except CallbackPayloadMalformed as e:
            logger.warning("malformed callback for %s: %s", request_key, e)
            self.set_status(request_key, RequestStatus.FAILED)
        except Exception:
            logger.exception("callback for %s could not be processed", request_key)
            self.set_status(request_key, RequestStatus.FAILED)

        return self.get(request_key)

    def _resolve_login(self, request: SignRequest, sign_data: Any) -> None:
        callback = parse_login_callback(sign_data)
        if not self.ledger.verify_arbitrary_signature(callback.raw_data, request.message, callback.address):
            raise SignatureInvalid(f"login signature rejected for {request.request_key}")

        if not self.set_status(request.request_key, RequestStatus.SUCCESS):
            return
        self.bind_signer(request.request_key, callback.address)
        if not self.address_book.contains(callback.address):
            self.address_book.register(callback.address, self.ledger.signer_public_key(callback.raw_data))

    def _resolve_mint(self, request: SignRequest, sign_data: Any) -> None:
        callback = parse_mint_callback(sign_data)
        if not self.set_status(request.request_key, RequestStatus.SUCCESS):
            return
        self.record_signature(request.request_key, callback.payload)
        if request.extra and not self.drafts.complete(request.extra, callback.nft_id, callback.transaction_hash):
            logger.warning("nft draft %s missing for request %s", request.extra, request.request_key)
        self.rewards.claim(request.signer, RewardProgram.MINT, self.mint_reward_amount)

    # ------------------------------------------------------------------
    # direct signature check
    # ------------------------------------------------------------------

    def verify(self, request_key: str, signature: str) -> Dict[str, Any]:
        """Check a direct signature over a MINT request's sign document."""
        request = self.get(request_key)
        is_valid = False
        if request.type == RequestType.MINT and request.signer:
            public_key = self.address_book.public_key(request.signer)
            if public_key:
                is_valid = self.ledger.verify_direct_signature(request.signer, signature, request.message, public_key)
        return {"requestKey": request_key, "signature": signature, "isValid": is_valid}
