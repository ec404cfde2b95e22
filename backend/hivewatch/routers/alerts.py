from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ..alerting import dispatch_alerts, evaluate
from ..deps import get_store, rate_limited
from ..errors import StoreError
from ..schemas import AlertCheckOut, AlertOut, AlertSettingsIn, ReadingOut
from ..store import HiveStore

router = APIRouter(prefix="/alerts", tags=["alerts"], dependencies=[Depends(rate_limited("api"))])
logger = logging.getLogger(__name__)


@router.post("/check", response_model=AlertCheckOut, response_model_exclude_none=True)
async def check_alerts(
    hiveId: str = Query(..., min_length=1),
    notify: bool = Query(False),
    settings: AlertSettingsIn | None = Body(default=None),
    store: HiveStore = Depends(get_store),
):
    config = (settings or AlertSettingsIn()).to_config()
    now = datetime.now(timezone.utc)

    try:
        latest = await store.latest_reading(hiveId)
        if latest is None:
            return AlertCheckOut(alerts=[])
        previous = None
        if config.weight:
            previous = await store.latest_reading(hiveId, at_or_before=now - config.weight_window)
        recipient = await store.owner_email(hiveId) if notify else None
    except StoreError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    alerts = evaluate(latest, previous, config, now)

    notified = 0
    if notify and alerts:
        notified = await dispatch_alerts(alerts, [recipient] if recipient else None)
        logger.info("Sent %d/%d alert e-mails for %s", notified, len(alerts), hiveId)

    return AlertCheckOut(
        alerts=[AlertOut(**a.as_dict()) for a in alerts],
        latest=ReadingOut(**latest.as_dict()),
        notified=notified,
    )
