from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.my_base_model import CustomBaseModel

CODE_SUCCESS = 0
CODE_INVALID_KEY = 1
CODE_INVALID_REQUEST = 2


class CamelRequest(BaseModel):
    """Request bodies use camelCase keys (requestKey, signData, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(CustomBaseModel):
    """Envelope for every sign-flow response: code 0 = success."""

    code: int = CODE_SUCCESS
    message: str = "success"
    result: Any = Field(default_factory=dict)

    @classmethod
    def ok(cls, result: Any = None) -> "ApiResponse":
        return cls(code=CODE_SUCCESS, message="success", result=result if result is not None else {})

    @classmethod
    def invalid_key(cls) -> "ApiResponse":
        return cls(code=CODE_INVALID_KEY, message="invalid key", result={})

    @classmethod
    def invalid_request(cls) -> "ApiResponse":
        return cls(code=CODE_INVALID_REQUEST, message="invalid request", result={})


class CallbackRequest(CamelRequest):
    """Wallet relay callback"""

    request_key: str = Field(..., description="Correlation key from the QR payload")
    approve: bool = Field(..., description="False when the user rejected the request in the wallet")
    sign_data: Any = Field(default=None, description="Wallet sign result (object or JSON string)")


class VerifyRequest(CamelRequest):
    request_key: str = Field(..., description="MINT request key")
    signature: str = Field(..., description="Direct signature over the request's sign document")


class VerifyResponse(CustomBaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    request_key: str = ""
    signature: str = ""
    is_valid: bool = False
