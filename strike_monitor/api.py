import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query

from .analyzer import analyze_market
from .config import DEFAULT_MARKET, DEFAULT_SIDE, KNOWN_MARKETS, validate_market, validate_side
from .dashboard import build_dashboard
from .models import DashboardResponse, MarketAnalysis, MarketSnapshot
from .strike_api import StrikeApiError, fetch_strike

logger = logging.getLogger(__name__)

# Define APP
app = FastAPI(title="Strike Finance Market Monitor")


def _validated(market: str, side: str):
    try:
        return validate_market(market), validate_side(side)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": str(e)})


def _fetch(market: str, side: str) -> MarketSnapshot:
    """Pull a fresh snapshot; upstream failures become 502s"""
    try:
        return fetch_strike(market, side)
    except StrikeApiError as e:
        logger.warning("Upstream fetch failed for %s/%s: %s", market, side, e)
        raise HTTPException(
            status_code=502,
            detail={"error": str(e), "market": market, "side": side}
        )


# ========== The Endpoints ========== #
@app.get("/api/status")
def get_status():
    """Simple check to see if server is running"""
    return {"status": "READY"}


@app.get("/api/markets")
def get_markets():
    return {"markets": KNOWN_MARKETS, "default": DEFAULT_MARKET}


@app.get("/api/analysis", response_model=MarketAnalysis)
def get_analysis(market: str = DEFAULT_MARKET, side: str = DEFAULT_SIDE):
    """Fetch the leaderboard and run the liquidation risk analysis"""
    market, side = _validated(market, side)
    return analyze_market(market, side, _fetch(market, side))


@app.post("/api/analysis", response_model=MarketAnalysis)
def post_analysis(snapshot: MarketSnapshot, market: str = DEFAULT_MARKET, side: str = DEFAULT_SIDE):
    """Analyze a user-supplied snapshot (a saved API response)"""
    market, side = _validated(market, side)
    return analyze_market(market, side, snapshot)


@app.get("/api/dashboard", response_model=DashboardResponse)
def get_dashboard(
    market: str = DEFAULT_MARKET,
    side: str = DEFAULT_SIDE,
    search: Optional[str] = Query(None, description="Filter traders by ADA handle or address")
):
    """Get the full dataset for the UI"""
    market, side = _validated(market, side)
    return build_dashboard(market, side, _fetch(market, side), search=search)
