from pydantic import Field

from app.schemas.sign_request import CamelRequest


class GallerySubmitRequest(CamelRequest):
    """Request model for a gallery submission - input validation"""

    signer: str = Field(..., min_length=1, description="Submitting wallet address")
    nft_id: str = Field(..., min_length=1, description="On-chain NFT id")
    code: str = Field(default="", description="Submission code; first character selects the tier")
