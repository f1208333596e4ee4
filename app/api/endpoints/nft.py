import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status

from app.core.dependencies import get_nft_service
from app.schemas.nft import MintSignRequest
from app.schemas.sign_request import ApiResponse, CallbackRequest, VerifyRequest, VerifyResponse
from app.services.nft import NftService

router = APIRouter()
group_tags: List[str] = ["nft"]

logger = logging.getLogger(__name__)

"""
NFT sign flow

- login: issue an arbitrary-sign QR, the wallet signs a challenge
- mint: issue a direct-sign QR, the wallet signs and broadcasts the mint
- callback: the relay reports the wallet's answer for a request key
- requests/{requestKey}: poll the request status
    0 pending, 1 success, -1 failed / expired / unknown, -2 invalid

Every failure answers {"code": 1, "message": "invalid key"}.
"""


@router.get(
    "/requests/{request_key}",
    tags=group_tags,
    response_model=ApiResponse,
    status_code=status.HTTP_200_OK,
)
def get_status(request_key: str, nft: NftService = Depends(get_nft_service)) -> ApiResponse:
    """Current state of a sign request (status -1 once expired)."""
    try:
        return ApiResponse.ok(nft.get_status(request_key))
    except Exception as e:
        logger.warning("status lookup failed for %s: %s", request_key, e)
        return ApiResponse.invalid_key()


@router.post("/sign/login", tags=group_tags, response_model=ApiResponse)
def sign_for_login(nft: NftService = Depends(get_nft_service)) -> ApiResponse:
    try:
        result = nft.sign_for_login()
        logger.info("login request issued: %s", result["requestKey"])
        return ApiResponse.ok(result)
    except Exception as e:
        logger.warning("login request failed: %s", e)
        return ApiResponse.invalid_key()


@router.post("/sign/mint", tags=group_tags, response_model=ApiResponse)
def sign_for_mint(body: MintSignRequest, nft: NftService = Depends(get_nft_service)) -> ApiResponse:
    """
    Upload the NFT image + metadata and issue a mint QR for `signer`.
    The signer must have completed a login first.
    """
    try:
        result = nft.sign_for_mint(body.signer, body.nft_image, body.nft_name, body.nft_description)
        return ApiResponse.ok(result)
    except Exception as e:
        logger.warning("mint request failed for %s: %s", body.signer, e)
        return ApiResponse.invalid_key()


@router.post("/callback", tags=group_tags, response_model=ApiResponse)
def callback(body: CallbackRequest, nft: NftService = Depends(get_nft_service)) -> ApiResponse:
    try:
        result = nft.callback(body.request_key, body.approve, body.sign_data)
        logger.info("callback %s -> status %s", body.request_key, result["status"])
        return ApiResponse.ok(result)
    except Exception as e:
        logger.warning("callback failed for %s: %s", body.request_key, e)
        return ApiResponse.invalid_key()


@router.post("/verify", tags=group_tags, response_model=VerifyResponse)
def verify(body: VerifyRequest, nft: NftService = Depends(get_nft_service)) -> VerifyResponse:
    try:
        return VerifyResponse(**nft.verify(body.request_key, body.signature))
    except Exception as e:
        logger.warning("verify failed for %s: %s", body.request_key, e)
        return VerifyResponse(request_key=body.request_key, signature=body.signature, is_valid=False)


@router.get("/{dapp_nft_id}", tags=group_tags)
def get_nft(dapp_nft_id: str, nft: NftService = Depends(get_nft_service)) -> Dict[str, Any]:
    """Token metadata (the metaURI target)."""
    try:
        return nft.get_nft(dapp_nft_id)
    except Exception as e:
        logger.warning("nft lookup failed for %s: %s", dapp_nft_id, e)
        return ApiResponse.invalid_key().model_dump()
