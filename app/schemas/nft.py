from pydantic import Field

from app.schemas.sign_request import CamelRequest


class MintSignRequest(CamelRequest):
    """Request model for the mint QR - input validation"""

    signer: str = Field(..., min_length=1, description="Wallet address that will own the NFT")
    nft_image: str = Field(..., min_length=1, description="Image as base64 or data URI")
    nft_name: str = Field(..., min_length=1, max_length=100, description="NFT name")
    nft_description: str = Field(default="", max_length=1000, description="NFT description")
