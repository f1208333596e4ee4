"""
Error taxonomy shared by the store, ledger client and request services.

HTTP endpoints never surface these to the caller; they are normalized to the
generic invalid-key envelope (see app/api/endpoints). The payout worker
catches them per iteration.
"""


class StoreUnavailable(Exception):
    """Raised when the key-value store cannot be reached (transient)."""


class RequestNotFound(Exception):
    """Raised when a sign request is unknown or already expired."""


class DuplicateRequestKey(Exception):
    """Raised when a request key is already in use."""


class SignatureInvalid(Exception):
    """Raised when a wallet signature does not verify."""


class CallbackPayloadMalformed(ValueError):
    """Raised when wallet callback data cannot be parsed."""


class SignerNotRegistered(Exception):
    """Raised when a direct-sign flow is requested for an address without a known public key."""


class LedgerError(Exception):
    """Raised when the signing relay or chain backend rejects a call."""


class LedgerSubmissionFailed(LedgerError):
    """Raised when a payout transaction cannot be built or submitted."""


class NftNotFound(Exception):
    """Raised when an NFT draft id is unknown."""
