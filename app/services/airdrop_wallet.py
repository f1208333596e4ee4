"""
Payout source wallet, read from the YAML wallets file.

One section per network name; a section is either the entry itself or a
list whose first entry is used::

    preprod:
      private_key: <hex>
    mainnet:
      - private_key: <hex>
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pycardano import Address, Network, PaymentSigningKey, PaymentVerificationKey

from app.core.config import Settings


class AirdropWalletError(Exception):
    """Raised when the airdrop wallet cannot be resolved."""


@dataclass(frozen=True)
class AirdropWallet:
    signing_key: PaymentSigningKey
    verification_key: PaymentVerificationKey
    address: Address

    @classmethod
    def from_private_key(cls, private_key: str, network: Network) -> "AirdropWallet":
        try:
            signing_key = PaymentSigningKey.from_primitive(bytes.fromhex(private_key))
        except ValueError as e:
            raise AirdropWalletError("airdrop private_key is not hex") from e
        verification_key = PaymentVerificationKey.from_signing_key(signing_key)
        return cls(signing_key, verification_key, Address(verification_key.hash(), network=network))


def _section_private_key(section: Any) -> str:
    if isinstance(section, list):
        section = section[0] if section else None
    private_key = section.get("private_key") if isinstance(section, dict) else None
    if not isinstance(private_key, str) or not private_key:
        raise AirdropWalletError("airdrop wallet section must carry a private_key")
    return private_key


@lru_cache(maxsize=None)
def _load(path: Path, network_name: str, network: Network) -> AirdropWallet:
    if not path.is_file():
        raise AirdropWalletError(f"airdrop wallet file not found: {path}")
    try:
        sections = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise AirdropWalletError(f"failed to parse airdrop wallet file: {e}") from e
    if not isinstance(sections, dict) or sections.get(network_name) is None:
        raise AirdropWalletError(f"no airdrop wallet for network '{network_name}'")
    return AirdropWallet.from_private_key(_section_private_key(sections[network_name]), network)


def load_airdrop_wallet(settings: Settings) -> AirdropWallet:
    """Wallet for the configured network; cached per wallets file and network."""
    network_name = settings.CARDANO_NETWORK_NAME.strip().lower()
    return _load(Path(settings.AIRDROP_WALLETS_PATH), network_name, settings.CARDANO_NETWORK)
