"""
Authentication flows.

AuthService composes the identity store, the challenge store, the credential
primitives, the token service and the activity recorder:

- register_email / login_email: password accounts
- issue_challenge / verify_wallet: wallet signature login (creates the user on
  first contact and reports is_new_user so the client can ask for the profile)
- authenticate: bearer token -> current user
- view_profile / update_profile / link_wallet / list_activity / activity_stats: account operations
- health / close: capability checks and shutdown of the stores it holds

Every store call runs in the worker pool through call_store(); the password
KDF and signature recovery run there too.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from dapp_auth.core.errors import (
    ChallengeMissingError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from dapp_auth.core.jwt_utils import TokenService
from dapp_auth.core.passwords import PasswordHasher, check_password_policy
from dapp_auth.core.wallet_auth import normalize_address, verify_signature
from dapp_auth.models.records import ActivityRecord, ActivityStat, Challenge, UserRecord
from dapp_auth.services.activity import ActivityService
from dapp_auth.services.store_calls import call_store
from dapp_auth.stores.challenges import ChallengeStore
from dapp_auth.stores.identity import IdentityStore

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100


@dataclass(frozen=True)
class AuthResult:
    user: UserRecord
    token: str
    is_new_user: bool = False


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def normalize_name(name: str) -> str:
    name = (name or "").strip()
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be {MIN_NAME_LENGTH}-{MAX_NAME_LENGTH} characters")
    return name


class AuthService:
    def __init__(
        self,
        identities: IdentityStore,
        challenges: ChallengeStore,
        tokens: TokenService,
        activity: ActivityService,
        hasher: PasswordHasher,
    ) -> None:
        self._identities = identities
        self._challenges = challenges
        self._tokens = tokens
        self._activity = activity
        self._hasher = hasher

    # ----- Email / password -----

    async def register_email(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        client: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        """
        Raises:
            ValidationError, WeakPasswordError, ConflictError
        """
        email = normalize_email(email)
        check_password_policy(password)
        if name is not None:
            name = normalize_name(name)

        if await call_store(self._identities.find_by_email, email) is not None:
            raise ConflictError("Email already registered")

        password_hash = await run_in_threadpool(self._hasher.hash, password)
        user = await call_store(self._identities.create_with_email, email, password_hash, name)
        token = self._tokens.mint(user.id, "email")

        await self._activity.record(user.id, "register_email", {"email": user.email, **(client or {})})
        logger.info("Registered user %s by email", user.id)
        return AuthResult(user=user, token=token, is_new_user=True)

    async def login_email(self, email: str, password: str, client: Optional[Dict[str, Any]] = None) -> AuthResult:
        """
        Unknown email and wrong password fail the same way and run the same KDF.

        Raises:
            InvalidCredentialsError
        """
        email = (email or "").strip().lower()
        user = await call_store(self._identities.find_by_email, email)

        if user is None or not user.password_hash:
            await run_in_threadpool(self._hasher.verify_dummy, password)
            logger.info("Failed email login: unknown account")
            raise InvalidCredentialsError()

        if not await run_in_threadpool(self._hasher.verify, password, user.password_hash):
            logger.info("Failed email login for user %s: wrong password", user.id)
            raise InvalidCredentialsError()

        user = await call_store(self._identities.record_login, user.id) or user
        token = self._tokens.mint(user.id, "email")
        await self._activity.record(user.id, "login_email", dict(client or {}))
        return AuthResult(user=user, token=token)

    # ----- Wallet signature -----

    async def issue_challenge(self, wallet_address: str) -> Challenge:
        """
        Raises:
            ValidationError: malformed address
        """
        address = normalize_address(wallet_address)
        challenge = await call_store(self._challenges.issue, address)
        logger.info("Issued challenge for %s", address)
        return challenge

    async def _consume_and_verify(self, wallet_address: str, signature: str) -> str:
        address = normalize_address(wallet_address)
        # the challenge is gone after this call whatever the signature check says
        challenge = await call_store(self._challenges.consume, address)
        if challenge is None:
            raise ChallengeMissingError()
        await run_in_threadpool(verify_signature, address, challenge.message, signature)
        return address

    async def verify_wallet(
        self,
        wallet_address: str,
        signature: str,
        client: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        """
        Raises:
            ValidationError, ChallengeMissingError, InvalidSignatureError, AddressMismatchError
        """
        address = await self._consume_and_verify(wallet_address, signature)

        user = await call_store(self._identities.find_by_wallet, address)
        is_new_user = False
        if user is None:
            try:
                user = await call_store(self._identities.create_with_wallet, address)
                is_new_user = True
            except ConflictError:
                # a concurrent verify created it first
                user = await call_store(self._identities.find_by_wallet, address)
                if user is None:
                    raise

        user = await call_store(self._identities.record_login, user.id) or user
        token = self._tokens.mint(user.id, "wallet")
        event_kind = "register_wallet" if is_new_user else "login_wallet"
        await self._activity.record(user.id, event_kind, {"walletAddress": address, **(client or {})})
        logger.info("Wallet %s authenticated as user %s (new=%s)", address, user.id, is_new_user)
        return AuthResult(user=user, token=token, is_new_user=is_new_user)

    # ----- Authenticated operations -----

    async def authenticate(self, token: str) -> UserRecord:
        """
        Raises:
            InvalidTokenError, ExpiredTokenError
        """
        claims = self._tokens.verify(token)
        user = await call_store(self._identities.find_by_id, claims.user_id)
        if user is None:
            raise InvalidTokenError("User no longer exists")
        return user

    async def view_profile(self, user: UserRecord, client: Optional[Dict[str, Any]] = None) -> UserRecord:
        await self._activity.record(user.id, "profile_view", dict(client or {}))
        return user

    async def update_profile(
        self,
        user: UserRecord,
        name: Optional[str] = None,
        email: Optional[str] = None,
        client: Optional[Dict[str, Any]] = None,
    ) -> UserRecord:
        """
        Raises:
            ValidationError: nothing to update
            ConflictError: email belongs to another user
        """
        fields: Dict[str, Any] = {}
        if name is not None:
            fields["name"] = normalize_name(name)
        if email is not None:
            fields["email"] = normalize_email(email)
        if not fields:
            raise ValidationError("No valid fields to update")

        if "email" in fields and fields["email"] != user.email:
            owner = await call_store(self._identities.find_by_email, fields["email"])
            if owner is not None and owner.id != user.id:
                raise ConflictError("Email already registered")

        updated = await call_store(self._identities.update_profile, user.id, fields)
        if updated is None:
            raise InvalidTokenError("User no longer exists")

        await self._activity.record(updated.id, "profile_update", {"fields": sorted(fields), **(client or {})})
        return updated

    async def link_wallet(
        self,
        user: UserRecord,
        wallet_address: str,
        signature: str,
        client: Optional[Dict[str, Any]] = None,
    ) -> UserRecord:
        """
        Attach a wallet to the current user after the same challenge/signature
        proof as a wallet login.

        Raises:
            ValidationError, ChallengeMissingError, InvalidSignatureError,
            AddressMismatchError, ConflictError
        """
        address = await self._consume_and_verify(wallet_address, signature)
        if user.wallet_address == address:
            return user

        owner = await call_store(self._identities.find_by_wallet, address)
        if owner is not None and owner.id != user.id:
            raise ConflictError("Wallet address already registered")

        updated = await call_store(self._identities.link_wallet, user.id, address)
        if updated is None:
            raise InvalidTokenError("User no longer exists")

        await self._activity.record(updated.id, "wallet_linked", {"walletAddress": address, **(client or {})})
        return updated

    async def list_activity(self, user: UserRecord, limit: int = 50, offset: int = 0) -> List[ActivityRecord]:
        return await self._activity.list_for_user(user.id, limit, offset)

    async def activity_stats(self, user: UserRecord, days: int = 30) -> List[ActivityStat]:
        return await self._activity.stats_for_user(user.id, days)

    # ----- Capabilities -----

    def health(self) -> Dict[str, bool]:
        return {
            "identities": self._identities.health(),
            "challenges": self._challenges.health(),
            "activity": self._activity.health(),
        }

    def close(self) -> None:
        self._challenges.close()
        self._identities.close()
        self._activity.close()
