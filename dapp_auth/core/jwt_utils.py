"""
JWT Token Utilities

This module mints and verifies the bearer tokens returned by every successful
login (email or wallet). Tokens are HS256 JWTs: three base64url segments
`header.payload.signature`.

Flow:
1. A login flow succeeds -> TokenService.mint() generates the JWT
2. Client calls a protected endpoint with `Authorization: Bearer <token>`
3. get_current_user() in dependencies.py calls AuthService.authenticate(), which calls TokenService.verify()

The JWT contains:
- sub: the user id
- kind: how the user authenticated ("email" or "wallet")
- iat: Issued at timestamp
- exp: Expiration timestamp (ACCESS_TOKEN_EXPIRE_SECONDS)

The secret is fixed when the service is built; rotating it invalidates every
outstanding token.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt

from dapp_auth.core.errors import ExpiredTokenError, InvalidTokenError
from dapp_auth.models.records import TokenClaims

SUBJECT_KINDS = ("email", "wallet")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    def __init__(
        self,
        secret: str,
        ttl_seconds: int = 24 * 3600,
        algorithm: str = "HS256",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret is required")
        self._secret = secret
        self._ttl = timedelta(seconds=ttl_seconds)
        self._algorithm = algorithm
        self._clock = clock or _utc_now

    def mint(self, user_id: str, subject_kind: str) -> str:
        """
        Create a JWT access token for an authenticated user.

        Raises:
            ValueError: If user_id is empty or subject_kind is unknown
        """
        if not user_id:
            raise ValueError("user_id is required")
        if subject_kind not in SUBJECT_KINDS:
            raise ValueError(f"subject_kind must be one of {SUBJECT_KINDS}")

        now = self._clock()
        payload: Dict[str, Any] = {
            "sub": user_id,
            "kind": subject_kind,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify and decode a JWT token.

        Raises:
            ExpiredTokenError: the token is past its exp
            InvalidTokenError: missing, malformed, wrongly signed, or missing claims
        """
        if not token:
            raise InvalidTokenError("Missing token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenError()
        except jwt.InvalidTokenError:
            raise InvalidTokenError()

        if payload.get("kind") not in SUBJECT_KINDS:
            raise InvalidTokenError("Invalid token payload")

        return TokenClaims(
            user_id=str(payload["sub"]),
            subject_kind=payload["kind"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
