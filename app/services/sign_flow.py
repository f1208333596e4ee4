from typing import Any, Dict, Tuple

from app.core.cardano_auth import generate_challenge
from app.core.config import Settings
from app.core.exceptions import LedgerError
from app.services.ledger_client import LedgerClient
from app.services.sign_request import RequestLedger, RequestType

RELAY_SCHEME = "sign://"


def split_pairing_payload(qrcode_origin: str, station_identity: str) -> Tuple[str, str]:
    """
    Relay QR payloads look like `sign://<requestKey>`.
    Returns (requestKey, qrcode rewritten to `<station_identity>://<requestKey>`).
    """
    if not isinstance(qrcode_origin, str) or not qrcode_origin.startswith(RELAY_SCHEME):
        raise LedgerError(f"unexpected pairing payload: {qrcode_origin!r}")
    request_key = qrcode_origin[len(RELAY_SCHEME):]
    if not request_key:
        raise LedgerError("pairing payload carries no request key")
    return request_key, f"{station_identity}://{request_key}"


class SignFlowService:
    """Login QR issuing and request status, shared by the NFT and gallery flows."""

    def __init__(self, settings: Settings, ledger: LedgerClient, requests: RequestLedger):
        self.settings = settings
        self.ledger = ledger
        self.requests = requests

    def sign_for_login(self) -> Dict[str, str]:
        message = generate_challenge()
        session = self.ledger.create_pairing_session(self.settings.PROJECT_SECRET_KEY)
        qrcode_origin = self.ledger.request_arbitrary_signature(session, message, self.settings.LOGIN_MESSAGE)
        request_key, qrcode = split_pairing_payload(qrcode_origin, self.settings.STATION_IDENTITY)
        self.requests.open(RequestType.LOGIN, message, request_key=request_key)
        return {"requestKey": request_key, "qrcode": qrcode}

    def get_status(self, request_key: str) -> Dict[str, Any]:
        return self.requests.get(request_key).to_dict()
