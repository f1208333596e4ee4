import base64
import binascii
import logging
import re
import uuid
from typing import Any, Dict

from app.core.config import Settings
from app.core.exceptions import NftNotFound, SignerNotRegistered
from app.services.address_book import AddressBook
from app.services.ipfs import IpfsClient
from app.services.ledger_client import LedgerClient
from app.services.nft_draft import NftDraftStore
from app.services.sign_flow import SignFlowService, split_pairing_payload
from app.services.sign_request import RequestLedger, RequestType

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,")


def decode_image(nft_image: str) -> bytes:
    """Accepts raw base64 or a data URI (data:image/jpeg;base64,...)."""
    try:
        return base64.b64decode(DATA_URI_PREFIX.sub("", nft_image.strip()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("nftImage must be base64 encoded") from e


class NftService(SignFlowService):
    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        requests: RequestLedger,
        ipfs: IpfsClient,
        address_book: AddressBook,
        drafts: NftDraftStore,
    ):
        super().__init__(settings, ledger, requests)
        self.ipfs = ipfs
        self.address_book = address_book
        self.drafts = drafts

    def _upload_token_metadata(self, dapp_nft_id: str, image: bytes, name: str, description: str) -> Dict[str, str]:
        image_uri = self.ipfs.url_for(self.ipfs.add_bytes(image, filename=f"{dapp_nft_id}.jpg"))
        metadata = {
            "name": name,
            "description": description,
            "identity": self.settings.PROJECT_ID,
            "imageURI": image_uri,
            "metaURI": f"{self.settings.API_HOST.rstrip('/')}/nft/{dapp_nft_id}",
        }
        token_uri = self.ipfs.url_for(self.ipfs.add_json(metadata))
        return {"imageURI": image_uri, "tokenURI": token_uri}

    def sign_for_mint(self, signer: str, nft_image: str, nft_name: str, nft_description: str) -> Dict[str, str]:
        """
        Issue a direct-sign QR that mints an NFT to `signer`.

        The signer must have logged in before (its public key is needed for
        the sign document).
        """
        public_key = self.address_book.public_key(signer)
        if not public_key:
            raise SignerNotRegistered(signer)

        dapp_nft_id = str(uuid.uuid4())
        uris = self._upload_token_metadata(dapp_nft_id, decode_image(nft_image), nft_name, nft_description)
        self.drafts.create(dapp_nft_id, signer, nft_name, nft_description, uris["imageURI"], uris["tokenURI"])

        document = self.ledger.make_mint_document(signer, public_key, uris["tokenURI"])
        session = self.ledger.create_pairing_session(self.settings.PROJECT_SECRET_KEY)
        qrcode_origin = self.ledger.request_direct_signature(session, signer, document, self.settings.MINT_MESSAGE)
        request_key, qrcode = split_pairing_payload(qrcode_origin, self.settings.STATION_IDENTITY)

        self.requests.open(RequestType.MINT, document, signer=signer, extra=dapp_nft_id, request_key=request_key)
        logger.info("mint request %s opened for %s (draft %s)", request_key, signer, dapp_nft_id)
        return {"requestKey": request_key, "qrcode": qrcode}

    def callback(self, request_key: str, approve: bool, sign_data: Any) -> Dict[str, Any]:
        return self.requests.resolve(request_key, approve, sign_data).to_dict()

    def verify(self, request_key: str, signature: str) -> Dict[str, Any]:
        return self.requests.verify(request_key, signature)

    def get_nft(self, dapp_nft_id: str) -> Dict[str, Any]:
        """Token metadata served at the metaURI of a minted (or pending) NFT."""
        draft = self.drafts.get(dapp_nft_id)
        if draft is None:
            raise NftNotFound(dapp_nft_id)
        return {
            "name": draft.get("name", ""),
            "description": draft.get("description", ""),
            "identity": self.settings.PROJECT_ID,
            "image": draft.get("imageURI", ""),
            "tokenURI": draft.get("tokenURI", ""),
            "owner": draft.get("owner", ""),
            "nftId": draft.get("nftId", ""),
            "transactionHash": draft.get("transactionHash", ""),
        }
