from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, status

from dapp_auth.core.dependencies import get_auth_service, get_client_info, get_current_user
from dapp_auth.models.records import UserRecord
from dapp_auth.schemas import auth as schemas
from dapp_auth.schemas.my_base_model import Message
from dapp_auth.schemas.user import (
    ActivityItem,
    ActivityListResponse,
    ActivityStatItem,
    ProfileResponse,
    ProfileUpdateRequest,
    UserResponse,
    UserStats,
    UserStatsResponse,
)
from dapp_auth.services.auth import AuthService

router = APIRouter()
group_tags: List[str] = ["Auth"]

_unauthorized = {401: {"model": Message}}


@router.post(
    "/register",
    tags=group_tags,
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": Message}, 409: {"model": Message}},
)
async def register(
    body: schemas.RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
    client: Dict[str, Any] = Depends(get_client_info),
) -> schemas.AuthResponse:
    """Create an email/password account and return a session token."""
    result = await auth_service.register_email(body.email, body.password, body.name, client)
    return schemas.AuthResponse(user=UserResponse.from_record(result.user), token=result.token)


@router.post("/login", tags=group_tags, response_model=schemas.AuthResponse, responses=_unauthorized)
async def login(
    body: schemas.LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    client: Dict[str, Any] = Depends(get_client_info),
) -> schemas.AuthResponse:
    result = await auth_service.login_email(body.email, body.password, client)
    return schemas.AuthResponse(user=UserResponse.from_record(result.user), token=result.token)


@router.post(
    "/challenge",
    tags=group_tags,
    response_model=schemas.ChallengeResponse,
    responses={400: {"model": Message}},
)
async def challenge(
    body: schemas.ChallengeRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> schemas.ChallengeResponse:
    """
    Issue a single-use challenge for a wallet. The client signs `message`
    with personal_sign and posts the signature to /verify within 5 minutes.
    Requesting a new challenge replaces the previous one.
    """
    issued = await auth_service.issue_challenge(body.wallet_address)
    return schemas.ChallengeResponse(
        challenge=schemas.ChallengeInfo(nonce=issued.nonce, message=issued.message, expires_at=issued.expires_at)
    )


@router.post(
    "/verify",
    tags=group_tags,
    response_model=schemas.WalletAuthResponse,
    responses={400: {"model": Message}, 401: {"model": Message}},
)
async def verify(
    body: schemas.VerifyRequest,
    auth_service: AuthService = Depends(get_auth_service),
    client: Dict[str, Any] = Depends(get_client_info),
) -> schemas.WalletAuthResponse:
    """
    Verify a signed challenge and return a session token.
    `isNewUser` is true when this wallet was seen for the first time.
    """
    result = await auth_service.verify_wallet(body.wallet_address, body.signature, client)
    return schemas.WalletAuthResponse(
        user=UserResponse.from_record(result.user),
        token=result.token,
        is_new_user=result.is_new_user,
    )


@router.get("/profile", tags=group_tags, response_model=ProfileResponse, responses=_unauthorized)
async def get_profile(
    user: UserRecord = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    client: Dict[str, Any] = Depends(get_client_info),
) -> ProfileResponse:
    viewed = await auth_service.view_profile(user, client)
    return ProfileResponse(user=UserResponse.from_record(viewed))


@router.put(
    "/profile",
    tags=group_tags,
    response_model=ProfileResponse,
    responses={400: {"model": Message}, 401: {"model": Message}, 409: {"model": Message}},
)
async def update_profile(
    body: ProfileUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    client: Dict[str, Any] = Depends(get_client_info),
) -> ProfileResponse:
    """Partial profile update; `profileComplete` turns true once name and email are set."""
    updated = await auth_service.update_profile(user, name=body.name, email=body.email, client=client)
    return ProfileResponse(user=UserResponse.from_record(updated))


@router.post(
    "/link-wallet",
    tags=group_tags,
    response_model=ProfileResponse,
    responses={400: {"model": Message}, 401: {"model": Message}, 409: {"model": Message}},
)
async def link_wallet(
    body: schemas.VerifyRequest,
    user: UserRecord = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    client: Dict[str, Any] = Depends(get_client_info),
) -> ProfileResponse:
    """Attach a wallet to the current account. Needs a fresh /challenge for that wallet."""
    updated = await auth_service.link_wallet(user, body.wallet_address, body.signature, client)
    return ProfileResponse(user=UserResponse.from_record(updated))


@router.get("/activity", tags=group_tags, response_model=ActivityListResponse, responses=_unauthorized)
async def get_activity(
    limit: int = Query(default=50, ge=1, le=100, description="Maximum number of records, default: 50, max: 100"),
    offset: int = Query(default=0, ge=0, description="Number of records to skip, default: 0"),
    user: UserRecord = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> ActivityListResponse:
    """Activity of the current user, oldest first."""
    records = await auth_service.list_activity(user, limit, offset)
    return ActivityListResponse(
        activity=[ActivityItem.from_record(record) for record in records],
        limit=limit,
        offset=offset,
    )


@router.get("/stats", tags=group_tags, response_model=UserStatsResponse, responses=_unauthorized)
async def get_stats(
    days: int = Query(default=30, ge=1, le=365, description="Window in days, default: 30, max: 365"),
    user: UserRecord = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserStatsResponse:
    """Activity counts per event kind for the current user, most frequent first."""
    stats = await auth_service.activity_stats(user, days)
    return UserStatsResponse(
        stats=UserStats(days=days, activity=[ActivityStatItem.from_record(stat) for stat in stats])
    )
