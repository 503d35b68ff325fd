from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from dapp_auth.schemas.my_base_model import CustomBaseModel
from dapp_auth.schemas.user import UserResponse


class RegisterRequest(CustomBaseModel):
    """Request model for email registration - input validation"""

    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., description="At least 8 chars with an uppercase letter, a digit and a symbol")
    name: Optional[str] = Field(None, min_length=2, max_length=100, description="Display name")


class LoginRequest(CustomBaseModel):
    """Request model for email login - input validation"""

    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=1, description="Password")


class ChallengeRequest(CustomBaseModel):
    """Request model for challenge generation - input validation"""

    wallet_address: str = Field(..., description="0x-prefixed wallet address")


class ChallengeInfo(CustomBaseModel):
    nonce: str
    message: str
    expires_at: datetime


class ChallengeResponse(CustomBaseModel):
    """Response model for challenge generation - output"""

    challenge: ChallengeInfo


class VerifyRequest(CustomBaseModel):
    """Request model for wallet verification - input validation"""

    wallet_address: str = Field(..., description="0x-prefixed wallet address")
    signature: str = Field(..., description="personal_sign signature of the challenge message")


class AuthResponse(CustomBaseModel):
    """Response model for authentication - output"""

    user: UserResponse
    token: str


class WalletAuthResponse(AuthResponse):
    is_new_user: bool = False
