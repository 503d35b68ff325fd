from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import EmailStr, Field

from dapp_auth.schemas.my_base_model import CustomBaseModel


class UserResponse(CustomBaseModel):
    """Public projection of a user; never carries the password hash"""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    wallet_address: Optional[str] = None
    profile_complete: bool = False
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None


class ProfileResponse(CustomBaseModel):
    user: UserResponse


class ProfileUpdateRequest(CustomBaseModel):
    """Request model for profile update - input validation"""

    name: Optional[str] = Field(None, min_length=2, max_length=100, description="Display name")
    email: Optional[EmailStr] = Field(None, description="Contact email")


class ActivityItem(CustomBaseModel):
    user_id: str
    event_kind: str
    timestamp: datetime
    details: Dict[str, Any] = {}


class ActivityListResponse(CustomBaseModel):
    activity: List[ActivityItem] = []
    limit: int = 50
    offset: int = 0


class ActivityStatItem(CustomBaseModel):
    event_kind: str
    count: int
    last_activity: datetime


class UserStats(CustomBaseModel):
    days: int = 30
    activity: List[ActivityStatItem] = []


class UserStatsResponse(CustomBaseModel):
    """Response model for /stats - activity counts per event kind over the last `days`"""

    stats: UserStats
