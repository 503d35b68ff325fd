from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from starlette.concurrency import run_in_threadpool

from dapp_auth.core.dependencies import get_auth_service, get_backends
from dapp_auth.core.wallet_auth import format_timestamp
from dapp_auth.db.manager import Backends
from dapp_auth.schemas.health import DbInfo, HealthCheck
from dapp_auth.services.auth import AuthService

router = APIRouter()
group_tags = ["Health"]


@router.get("/health", tags=group_tags, response_model=HealthCheck, status_code=status.HTTP_200_OK)
async def get_health(
    backends: Backends = Depends(get_backends),
    auth_service: AuthService = Depends(get_auth_service),
) -> HealthCheck:
    """
    Liveness probe. `status` is "ok" when every configured backend and every
    store the auth service holds answers, "degraded" otherwise.
    """
    health = await run_in_threadpool(backends.health)
    configured = backends.configured()
    healthy = all(health[name] for name, wanted in configured.items() if wanted)
    stores = await run_in_threadpool(auth_service.health)
    return HealthCheck(
        status="ok" if healthy and all(stores.values()) else "degraded",
        timestamp=format_timestamp(datetime.now(timezone.utc)),
    )


@router.get("/db-info", tags=group_tags, response_model=DbInfo)
async def get_db_info(backends: Backends = Depends(get_backends)) -> DbInfo:
    """Reachability of each storage backend; unconfigured backends report false."""
    return DbInfo(**await run_in_threadpool(backends.health))
