"""
Ledger client: everything that talks to the wallet relay or the chain.

- pairing sessions and QR payloads come from the signing relay (HTTP)
- signatures are checked locally (app.core.cardano_auth)
- payouts are built, signed and submitted with pycardano over Blockfrost
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests
from blockfrost.utils import ApiError
from pycardano import (
    Address,
    BlockFrostChainContext,
    Network,
    TransactionBuilder,
    TransactionOutput,
    Value,
)
from pycardano.exception import PyCardanoException

from app.core.cardano_auth import verify_document_signature, verify_signature
from app.core.config import Settings
from app.core.exceptions import CallbackPayloadMalformed, LedgerError, LedgerSubmissionFailed
from app.services.airdrop_wallet import AirdropWallet

logger = logging.getLogger(__name__)

BLOCKFROST_ENDPOINTS = {
    Network.MAINNET: "https://cardano-mainnet.blockfrost.io/api/",
    Network.TESTNET: "https://cardano-preprod.blockfrost.io/api/",
}

LOVELACE_PER_ADA = Decimal(1_000_000)

QR_TYPE_DEFAULT = 0
SIGN_TYPE_ARBITRARY = 0
SIGN_TYPE_DIRECT = 1


@dataclass(frozen=True)
class PairingSession:
    project_key: str


@dataclass(frozen=True)
class TransferResult:
    code: int  # 0 on success
    transaction_hash: str = ""
    raw_log: str = ""


def to_lovelace(amount: str) -> int:
    """Convert a decimal ADA string to lovelace. Raises ValueError for bad or non-positive amounts."""
    try:
        lovelace = int((Decimal(str(amount)) * LOVELACE_PER_ADA).to_integral_value())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"invalid amount: {amount!r}") from e
    if lovelace <= 0:
        raise ValueError(f"amount must be positive: {amount!r}")
    return lovelace


def parse_raw_signed_data(raw_signed_data: Any) -> Dict[str, Any]:
    """Wallet rawData arrives as a JSON string or an already-decoded mapping."""
    if isinstance(raw_signed_data, dict):
        return raw_signed_data
    if not isinstance(raw_signed_data, str) or not raw_signed_data.strip():
        raise CallbackPayloadMalformed("rawData is missing")
    try:
        parsed = json.loads(raw_signed_data)
    except json.JSONDecodeError as e:
        raise CallbackPayloadMalformed(f"rawData is not JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise CallbackPayloadMalformed("rawData must be a JSON object")
    return parsed


def _key_value(value: Any) -> str:
    # some wallets wrap the key as {"type": ..., "value": ...}
    if isinstance(value, dict):
        value = value.get("value")
    return value if isinstance(value, str) else ""


class LedgerClient:
    def __init__(
        self,
        settings: Settings,
        http: Optional[requests.Session] = None,
        chain_context: Optional[BlockFrostChainContext] = None,
    ):
        self.settings = settings
        self.http = http or requests.Session()
        self._chain_context = chain_context

    # ------------------------------------------------------------------
    # relay
    # ------------------------------------------------------------------

    def _relay_post(self, uri: str, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Any:
        url = self.settings.RELAY_URL.rstrip("/") + uri
        try:
            response = self.http.post(
                url, json=body, headers=headers or {}, timeout=self.settings.RELAY_TIMEOUT_SECONDS
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise LedgerError(f"relay request failed: {uri}: {e}") from e
        if data.get("code") != 0:
            raise LedgerError(f"relay rejected {uri}: {data.get('message')}")
        return data.get("result")

    def create_pairing_session(self, secret: str) -> PairingSession:
        result = self._relay_post("/v1/projects/auth", {"projectSecretKey": secret})
        return PairingSession(project_key=result["projectKey"])

    def _request_signature(
        self, session: PairingSession, sign_type: int, signer: str, message: str, info: str, argument: Dict[str, Any]
    ) -> str:
        result = self._relay_post(
            "/v1/projects/sign",
            {
                "qrType": QR_TYPE_DEFAULT,
                "type": sign_type,
                "signer": signer,
                "message": message,
                "info": info,
                "argument": argument,
                "isMultiple": False,
            },
            {"authorization": f"Bearer {session.project_key}"},
        )
        return result["data"]

    def request_arbitrary_signature(self, session: PairingSession, message: str, info: str, signer: str = "") -> str:
        """Ask the relay for a QR payload that makes the wallet sign `message`."""
        return self._request_signature(session, SIGN_TYPE_ARBITRARY, signer, message, info, {})

    def request_direct_signature(
        self, session: PairingSession, signer: str, document: str, info: str, argument: Optional[Dict[str, Any]] = None
    ) -> str:
        """Ask the relay for a QR payload that makes `signer` sign and submit `document`."""
        return self._request_signature(session, SIGN_TYPE_DIRECT, signer, document, info, argument or {})

    # ------------------------------------------------------------------
    # signatures
    # ------------------------------------------------------------------

    def make_mint_document(self, signer: str, public_key: str, token_uri: str) -> str:
        """Sign document for an NFT mint; signed by the wallet as UTF-8 bytes."""
        document = {
            "signer": signer,
            "pubkey": public_key,
            "network": self.settings.CARDANO_NETWORK_NAME,
            "msgs": [{"type": "nft/mint", "owner": signer, "tokenURI": token_uri}],
        }
        return json.dumps(document, separators=(",", ":"), sort_keys=True)

    def signer_public_key(self, raw_signed_data: Any) -> str:
        return _key_value(parse_raw_signed_data(raw_signed_data).get("pubkey"))

    def verify_arbitrary_signature(self, raw_signed_data: Any, original_message: str, address: str = "") -> bool:
        """
        Check a wallet's arbitrary signature over `original_message`.

        Raises CallbackPayloadMalformed when the raw data cannot be read.
        """
        raw = parse_raw_signed_data(raw_signed_data)
        public_key = _key_value(raw.get("pubkey"))
        signature = raw.get("signature")
        address = address or raw.get("address") or ""
        if not public_key or not isinstance(signature, str) or not address:
            raise CallbackPayloadMalformed("rawData must carry address, pubkey and signature")
        signed_message = raw.get("message")
        if signed_message is not None and signed_message != original_message:
            return False
        try:
            is_valid, _ = verify_signature(address, original_message, signature, public_key)
        except ValueError as e:
            raise CallbackPayloadMalformed(str(e)) from e
        return is_valid

    def verify_direct_signature(self, address: str, signature: str, document: str, public_key: str) -> bool:
        try:
            return verify_document_signature(address, signature, document, public_key)
        except ValueError:
            return False

    # ------------------------------------------------------------------
    # payouts
    # ------------------------------------------------------------------

    @property
    def chain_context(self) -> BlockFrostChainContext:
        if self._chain_context is None:
            self._chain_context = BlockFrostChainContext(
                project_id=self.settings.BLOCKFROST_API_KEY,
                base_url=BLOCKFROST_ENDPOINTS.get(
                    self.settings.CARDANO_NETWORK,
                    BLOCKFROST_ENDPOINTS[Network.TESTNET],
                ),
            )
        return self._chain_context

    def submit_transfer(self, source_wallet: AirdropWallet, dest_address: str, amount: str) -> TransferResult:
        """
        Send `amount` ADA from the airdrop wallet to `dest_address`.

        Rejections by the chain backend come back as a nonzero code; transport
        failures raise LedgerSubmissionFailed.
        """
        try:
            lovelace = to_lovelace(amount)
        except ValueError as e:
            return TransferResult(code=1, raw_log=str(e))

        try:
            # first access builds the Blockfrost context, which already calls the backend
            context = self.chain_context
            builder = TransactionBuilder(context)
            builder.add_input_address(source_wallet.address)
            builder.add_output(TransactionOutput(Address.from_primitive(dest_address), Value(lovelace)))
            signed_tx = builder.build_and_sign(
                [source_wallet.signing_key], change_address=source_wallet.address
            )
            context.submit_tx(signed_tx)
        except ApiError as e:
            return TransferResult(code=getattr(e, "status_code", None) or 1, raw_log=str(e))
        except PyCardanoException as e:
            return TransferResult(code=1, raw_log=str(e))
        except requests.RequestException as e:
            raise LedgerSubmissionFailed(f"transfer to {dest_address} not submitted: {e}") from e

        tx_hash = signed_tx.id.payload.hex()
        logger.info("transfer tx submitted: %s", tx_hash)
        return TransferResult(code=0, transaction_hash=tx_hash)
