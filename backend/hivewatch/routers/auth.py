# hivewatch/routers/auth.py
import hmac
import logging
from typing import Any, Mapping, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from hivewatch.config import Settings
from hivewatch.deps import rate_limited
from hivewatch.store import HiveRecord, HiveStore
from hivewatch.utils import is_valid_hive_id

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(rate_limited("auth"))])
logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


@router.get("/session")
async def session_info(request: Request):
    return {"authenticated": current_user_id(request) is not None, "user_id": current_user_id(request)}


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"ok": True}


def current_user_id(request: Request) -> Optional[int]:
    # The OAuth callback stores the user id in the signed session cookie
    raw = request.session.get("user_id")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


# Dependency: use this to obtain the current user for endpoints that require login
def require_user(request: Request) -> int:
    uid = current_user_id(request)
    if uid is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return uid


def _same_secret(given: str, expected: str) -> bool:
    return bool(expected) and hmac.compare_digest(given.encode(), expected.encode())


async def authorize_sensor_post(
    request: Request,
    payload: Mapping[str, Any],
    store: HiveStore,
    settings: Settings,
) -> Optional[HiveRecord]:
    """Authorize a direct/WiFi sensor post before its body is validated.

    Returns the hive the credentials pin the reading to, or None when the
    shared secret was used and the hive comes from the body.
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if api_key:
        if _same_secret(api_key, settings.sensor_api_key):
            return None
        hive = await store.find_hive_by_api_key(api_key)
        if hive is None:
            logger.warning("Rejected sensor post with unknown API key")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
        return hive

    user_id = current_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key or session")

    hive_id = payload.get("hiveId")
    if not is_valid_hive_id(hive_id):
        hive_id = settings.default_hive_id
    hive = await store.find_hive(hive_id)
    if hive is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hive not found")
    if hive.owner_user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not the owner of this hive")
    return hive


async def require_hive_owner(request: Request, hive_id: str, store: HiveStore) -> HiveRecord:
    user_id = require_user(request)
    hive = await store.find_hive(hive_id)
    if hive is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hive not found")
    if hive.owner_user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not the owner of this hive")
    return hive
