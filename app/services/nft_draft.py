import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from app.core.config import Settings
from app.core.store import KeyValueStore


class NftDraftStore:
    """
    NFT drafts created when a mint QR is issued (`nft:<dappNftId>` hash).

    fields: dappNftId, owner, name, description, imageURI, tokenURI,
            nftId, transactionHash, addedAt
    nftId and transactionHash stay empty until the mint callback arrives.
    """

    def __init__(self, store: KeyValueStore, settings: Settings, clock: Callable[[], float] = time.time):
        self.store = store
        self.key_prefix = settings.NFT_KEY_PREFIX
        self._clock = clock

    def _key(self, dapp_nft_id: str) -> str:
        return f"{self.key_prefix}{dapp_nft_id}"

    def create(
        self, dapp_nft_id: str, owner: str, name: str, description: str, image_uri: str, token_uri: str
    ) -> bool:
        added_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        return self.store.create_hash(
            self._key(dapp_nft_id),
            {
                "dappNftId": dapp_nft_id,
                "owner": owner,
                "name": name,
                "description": description,
                "imageURI": image_uri,
                "tokenURI": token_uri,
                "nftId": "",
                "transactionHash": "",
                "addedAt": added_at,
            },
        )

    def get(self, dapp_nft_id: str) -> Optional[Dict[str, str]]:
        record = self.store.hash_get_all(self._key(dapp_nft_id))
        return record or None

    def complete(self, dapp_nft_id: str, nft_id: str, transaction_hash: str) -> bool:
        """Attach the on-chain id and mint tx hash. False when the draft does not exist."""
        key = self._key(dapp_nft_id)
        if not self.store.hash_set_if_exists(key, "transactionHash", transaction_hash):
            return False
        self.store.hash_set_if_exists(key, "nftId", nft_id)
        return True
