from typing import Optional

from app.core.config import Settings
from app.core.store import KeyValueStore


class AddressBook:
    """address -> public key (hex), filled by successful logins, read by direct-sign flows."""

    def __init__(self, store: KeyValueStore, settings: Settings):
        self.store = store
        self.key = settings.ADDRESSBOOK_KEY

    def register(self, address: str, public_key: str) -> bool:
        """Keep the first key seen for an address. True when this call added it."""
        if not address or not public_key:
            return False
        return self.store.hash_set_if_absent(self.key, address, public_key)

    def public_key(self, address: str) -> Optional[str]:
        return self.store.hash_get(self.key, address)

    def contains(self, address: str) -> bool:
        return self.public_key(address) is not None
