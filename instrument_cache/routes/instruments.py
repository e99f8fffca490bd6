# instrument_cache/routes/instruments.py
import logging
from fastapi import APIRouter, Query, HTTPException, Request

from ..errors import CatalogNotReadyError, RefreshError
from ..services.lookup import lookup_immediate_option

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/v1/instruments/ready")
async def instruments_ready(request: Request):
    """
    Readiness signal for collaborators: whether a catalog has been loaded.
    """
    store = request.app.state.store
    last_update = store.last_update
    return {
        "ready": store.is_populated(),
        "last_update": last_update.isoformat() if last_update else None,
        "count": store.count(),
    }


@router.get("/v1/instruments/options/immediate")
async def immediate_option(
    request: Request,
    asset_symbol: str = Query(..., min_length=1, description="Underlying symbol, e.g. NIFTY (case-insensitive)"),
    strike_price: float = Query(..., description="Strike price, matched exactly"),
    option_type: str = Query(..., min_length=1, description="CE or PE (case-insensitive)"),
):
    """
    Get the nearest-expiry contract for an underlying, strike and option type.

    Examples:
        GET /v1/instruments/options/immediate?asset_symbol=NIFTY&strike_price=23300&option_type=PE

    Returns the upstream instrument object unchanged. 404 when no contract
    matches, 503 while the catalog has not been loaded yet.
    """
    try:
        record = lookup_immediate_option(request.app.state.store, asset_symbol, strike_price, option_type)
    except CatalogNotReadyError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if record is None:
        raise HTTPException(
            status_code=404,
            detail=f"No {option_type.upper()} contract for {asset_symbol.upper()} at strike {strike_price:g}",
        )
    return record.to_dict()


@router.get("/v1/instruments/status")
async def instruments_status(request: Request):
    """
    Diagnostic view of the refresh job. Useful for debugging why lookups
    answer 503 or return stale contracts.
    """
    status = request.app.state.refresher.status()
    healthy = status["populated"] and status["consecutive_failures"] == 0
    return {**status, "status": "healthy" if healthy else "degraded"}


@router.post("/v1/instruments/refresh")
async def refresh_instruments(request: Request):
    """
    Manually trigger a refresh of the instruments catalog.
    Normally this runs automatically once a day.
    """
    refresher = request.app.state.refresher
    if refresher.is_refreshing:
        raise HTTPException(status_code=409, detail="Instruments refresh already in progress")

    try:
        await refresher.refresh(raise_on_error=True)
    except RefreshError as e:
        logger.error(f"Manual instruments refresh failed: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to refresh instruments: {e}")
    except Exception as e:
        logger.error(f"Error refreshing instruments: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to refresh instruments: {e}")

    store = request.app.state.store
    return {
        "status": "success",
        "count": store.count(),
        "last_update": store.last_update.isoformat() if store.last_update else None,
        "message": f"Successfully refreshed {store.count()} instruments",
    }
