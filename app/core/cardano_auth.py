"""
Cardano Wallet Signature Utilities

Cryptographic checks used when a wallet answers a sign request.

Login (arbitrary sign):
1. Backend generates a random challenge -> generate_challenge()
2. Wallet signs the challenge (CIP-8 style signData)
3. Relay posts back: address + rawData {"pubkey": ..., "signature": ...}
4. Backend verifies: verify_signature()
   - ED25519 signature over the challenge is valid
   - public key hashes to the payment part of the address

Mint (direct sign):
- The sign document is a UTF-8 JSON string; verify_document_signature()
  checks the signature over its bytes with the public key registered for
  the signer at login.

Uses `cryptography` for ED25519 and `pycardano` for address/key handling.
"""

import base64
import binascii
import secrets
from typing import Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from pycardano import Address
from pycardano.key import VerificationKey


CHALLENGE_NUM_BYTES = 32  # 32 bytes = 64 hex characters


def generate_challenge(num_bytes: int = CHALLENGE_NUM_BYTES) -> str:
    """Random hex challenge the wallet has to sign to prove address ownership."""
    if num_bytes <= 0:
        num_bytes = CHALLENGE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def _decode_hex(value: str) -> bytes:
    return binascii.unhexlify(value.encode())


def _decode_base64(value: str) -> bytes:
    return base64.b64decode(value, validate=True)


def decode_hex_or_base64(value: str) -> bytes:
    """
    Decode hex or base64 string to bytes.

    Wallets send signatures/keys in either format, so both are accepted.
    Raises ValueError when neither applies.
    """
    value = value.strip()
    try:
        return _decode_hex(value)
    except (binascii.Error, ValueError):
        try:
            return _decode_base64(value)
        except (binascii.Error, ValueError):
            raise ValueError("Value must be hex or base64 encoded")


def _message_bytes(message: str) -> bytes:
    # hex challenges are signed as raw bytes, anything else as utf-8
    message = message.strip()
    try:
        return _decode_hex(message)
    except (binascii.Error, ValueError):
        return message.encode()


def public_key_matches_address(address: str, public_key_bytes: bytes) -> bool:
    """True when the key hash equals the payment part of the address."""
    try:
        addr = Address.decode(address)
        v_key = VerificationKey.from_primitive(public_key_bytes)
        return addr.payment_part == v_key.hash()
    except Exception:
        return False


def _ed25519_valid(public_key_bytes: bytes, signature_bytes: bytes, message_bytes: bytes) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(public_key_bytes).verify(signature_bytes, message_bytes)
    except (InvalidSignature, ValueError):
        return False
    return True


def verify_signature(address: str, message: str, signature: str, public_key: str) -> Tuple[bool, str]:
    """
    Verify a wallet signature over a challenge and return the normalized address.

    Args:
        address: Cardano wallet address (e.g., "addr1...")
        message: The challenge that was signed
        signature: ED25519 signature (hex or base64 encoded)
        public_key: ED25519 public key (hex or base64 encoded)

    Returns:
        (True, normalized_address) when valid, (False, "") otherwise.

    Raises:
        ValueError: signature or public key is neither hex nor base64
    """
    signature_bytes = decode_hex_or_base64(signature)
    public_key_bytes = decode_hex_or_base64(public_key)

    if not _ed25519_valid(public_key_bytes, signature_bytes, _message_bytes(message)):
        return False, ""

    if not public_key_matches_address(address, public_key_bytes):
        return False, ""

    try:
        normalized_address = Address.decode(address).encode()
    except Exception:
        return False, ""

    return True, normalized_address


def verify_document_signature(address: str, signature: str, document: str, public_key: str) -> bool:
    """Verify a direct signature over a sign document (signed as UTF-8 bytes)."""
    signature_bytes = decode_hex_or_base64(signature)
    public_key_bytes = decode_hex_or_base64(public_key)

    if not public_key_matches_address(address, public_key_bytes):
        return False
    return _ed25519_valid(public_key_bytes, signature_bytes, document.encode())
