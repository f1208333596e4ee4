import logging
from typing import List

from fastapi import APIRouter, Depends

from app.core.dependencies import get_gallery_service
from app.schemas.gallery import GallerySubmitRequest
from app.schemas.sign_request import ApiResponse
from app.services.gallery import GalleryService

router = APIRouter()
group_tags: List[str] = ["gallery"]

logger = logging.getLogger(__name__)


@router.get("/requests/{request_key}", tags=group_tags, response_model=ApiResponse)
def get_status(request_key: str, gallery: GalleryService = Depends(get_gallery_service)) -> ApiResponse:
    try:
        return ApiResponse.ok(gallery.get_status(request_key))
    except Exception as e:
        logger.warning("status lookup failed for %s: %s", request_key, e)
        return ApiResponse.invalid_key()


@router.post("/sign/login", tags=group_tags, response_model=ApiResponse)
def sign_for_login(gallery: GalleryService = Depends(get_gallery_service)) -> ApiResponse:
    try:
        return ApiResponse.ok(gallery.sign_for_login())
    except Exception as e:
        logger.warning("login request failed: %s", e)
        return ApiResponse.invalid_key()


@router.get("/latest", tags=group_tags, response_model=ApiResponse)
def get_latest(gallery: GalleryService = Depends(get_gallery_service)) -> ApiResponse:
    """Most recent gallery submissions, newest first."""
    try:
        return ApiResponse.ok(gallery.latest())
    except Exception as e:
        logger.warning("latest feed failed: %s", e)
        return ApiResponse.invalid_key()


@router.get("/latest/featured", tags=group_tags, response_model=ApiResponse)
def get_latest_featured(gallery: GalleryService = Depends(get_gallery_service)) -> ApiResponse:
    try:
        return ApiResponse.ok(gallery.latest_featured())
    except Exception as e:
        logger.warning("featured feed failed: %s", e)
        return ApiResponse.invalid_key()


@router.post("", tags=group_tags, response_model=ApiResponse)
def submit_gallery(body: GallerySubmitRequest, gallery: GalleryService = Depends(get_gallery_service)) -> ApiResponse:
    """
    Add an NFT to the gallery. The first submission of an address queues
    its gallery reward; later ones are only recorded.
    """
    try:
        return ApiResponse.ok(gallery.submit(body.signer, body.nft_id, body.code))
    except Exception as e:
        logger.warning("gallery submission failed for %s: %s", body.signer, e)
        return ApiResponse.invalid_key()


@router.get("/{address}", tags=group_tags, response_model=ApiResponse)
def get_my_gallery(address: str, gallery: GalleryService = Depends(get_gallery_service)) -> ApiResponse:
    try:
        return ApiResponse.ok(gallery.my_gallery(address))
    except Exception as e:
        logger.warning("gallery lookup failed for %s: %s", address, e)
        return ApiResponse.invalid_key()
