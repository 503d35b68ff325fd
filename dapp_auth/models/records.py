from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class UserRecord:
    """A principal, detached from any storage session."""

    id: str
    email: Optional[str]
    name: Optional[str]
    password_hash: Optional[str]
    wallet_address: Optional[str]
    profile_complete: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None


@dataclass(frozen=True)
class Challenge:
    """A pending wallet login attempt."""

    wallet_address: str
    nonce: str
    message: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class ActivityRecord:
    user_id: str
    event_kind: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    subject_kind: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ActivityStat:
    """Per-event-kind count over a time window."""

    event_kind: str
    count: int
    last_activity: datetime
