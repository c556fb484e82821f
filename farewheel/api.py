from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse

from .errors import AlertNotFound, PersistenceError, WheelSpinError
from .runtime import Services
from .schemas import (
    ROUTE_KEY_PATTERN,
    AlertCreateIn,
    AlertPatchIn,
    SpinIn,
    alert_out,
    offer_out,
    spin_out,
    stats_out,
    trend_out,
)
from .wheel import SpinRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_user(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return user_id


def require_admin(
    services: Services = Depends(get_services),
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
) -> None:
    received = (x_admin_token or "").strip()
    expected = services.settings.admin_token.strip()
    if received.lower().startswith("bearer "):
        received = received[7:].strip()
    if not expected:
        raise HTTPException(status_code=500, detail="Admin token not configured")
    if received != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


# ────────────────────────────────────────────────────────────────
# Wheel
# ────────────────────────────────────────────────────────────────


@router.post("/wheel/spin")
def spin_wheel(
    payload: SpinIn,
    services: Services = Depends(get_services),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    try:
        request = SpinRequest(
            user_id=x_user_id or None,
            lat=payload.lat,
            lng=payload.lng,
            home_airport_iata=payload.home_airport_iata,
            budget=payload.preferences.budget if payload.preferences else None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return spin_out(services.wheel.spin(request))


# ────────────────────────────────────────────────────────────────
# Alerts
# ────────────────────────────────────────────────────────────────


@router.post("/alerts", status_code=201)
def create_alert(
    payload: AlertCreateIn,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    logger.info(
        "Creating price alert for %s: %s-%s %s",
        user_id,
        payload.origin,
        payload.destination,
        payload.alert_type.value,
    )
    try:
        alert = services.alerts.create(
            user_id,
            payload.origin,
            payload.destination,
            payload.alert_type,
            max_price=payload.max_price,
            price_drop_percent=payload.price_drop_percent,
            departure_date=payload.departure_date,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True, "data": alert_out(alert)}


@router.get("/alerts")
def list_alerts(
    active: bool = False,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    alerts = services.alerts.list_for_user(user_id, active_only=active)
    return {"success": True, "data": [alert_out(a) for a in alerts]}


@router.get("/alerts/stats")
def alert_stats(
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    return {"success": True, "data": services.alerts.stats_for_user(user_id)}


@router.patch("/alerts/{alert_id}")
def update_alert(
    alert_id: str,
    payload: AlertPatchIn,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    services.alerts.set_active(alert_id, user_id, payload.is_active)
    state = "activated" if payload.is_active else "deactivated"
    return {"success": True, "message": f"Alert {state} successfully"}


@router.delete("/alerts/{alert_id}")
def delete_alert(
    alert_id: str,
    user_id: str = Depends(require_user),
    services: Services = Depends(get_services),
):
    services.alerts.delete(alert_id, user_id)
    return {"success": True, "message": "Alert deleted successfully"}


@router.get("/alerts/price-stats/{route_key}")
def price_stats(
    route_key: str = Path(pattern=ROUTE_KEY_PATTERN),
    current_price: Optional[float] = Query(None, alias="currentPrice", ge=0),
    services: Services = Depends(get_services),
):
    stats = services.history.statistics(route_key, current_price)
    if stats is None:
        raise HTTPException(
            status_code=404, detail="No price history available for this route"
        )
    return {"success": True, "data": stats_out(stats)}


@router.get("/alerts/price-trend/{route_key}")
def price_trend(
    route_key: str = Path(pattern=ROUTE_KEY_PATTERN),
    days: int = Query(30, ge=1, le=365),
    services: Services = Depends(get_services),
):
    return {"success": True, "data": trend_out(services.history.trend(route_key, days))}


# ────────────────────────────────────────────────────────────────
# Offers & admin
# ────────────────────────────────────────────────────────────────


@router.get("/offers/{offer_id}")
def get_offer(offer_id: str, services: Services = Depends(get_services)):
    offer = services.offers.get(offer_id)
    if offer is None:
        raise HTTPException(status_code=404, detail="Offer not found or expired")
    return {"success": True, "data": offer_out(offer)}


@router.post("/admin/alerts/check", dependencies=[Depends(require_admin)])
def admin_check_alerts(services: Services = Depends(get_services)):
    triggered = services.scheduler.trigger_alert_sweep()
    return {"success": True, "triggered": triggered}


@router.post("/admin/price-history/cleanup", dependencies=[Depends(require_admin)])
def admin_cleanup_history(services: Services = Depends(get_services)):
    deleted = services.scheduler.trigger_history_cleanup()
    return {"success": True, "deleted": deleted}


# ────────────────────────────────────────────────────────────────
# Application
# ────────────────────────────────────────────────────────────────


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": message})


def create_app(services: Services, *, start_scheduler: bool = False) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_scheduler:
            services.scheduler.start()
        try:
            yield
        finally:
            if start_scheduler:
                services.scheduler.shutdown(wait=False)

    app = FastAPI(title="farewheel", lifespan=lifespan)
    app.state.services = services
    app.include_router(router)

    @app.exception_handler(AlertNotFound)
    async def _alert_not_found(request: Request, exc: AlertNotFound):
        return _error(404, "Alert not found")

    @app.exception_handler(WheelSpinError)
    async def _spin_failed(request: Request, exc: WheelSpinError):
        logger.warning("Wheel spin failed: %s", exc)
        return _error(503, f"Wheel spin failed: {exc}")

    @app.exception_handler(PersistenceError)
    async def _store_failed(request: Request, exc: PersistenceError):
        logger.error("Store failure on %s: %s", request.url.path, exc)
        return _error(503, str(exc))

    return app


__all__ = ["create_app", "router"]
