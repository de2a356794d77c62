import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional, Union

import requests
from pydantic import ValidationError

from .config import (
    DEFAULT_MARKET,
    ERROR_BODY_PREVIEW,
    LEADERBOARD_PARAMS,
    REQUEST_TIMEOUT_SECONDS,
    get_api_base,
    validate_market,
    validate_side
)
from .models import MarketSnapshot

logger = logging.getLogger(__name__)


class StrikeApiError(Exception):
    """Upstream leaderboard request failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StrikeApiTimeout(StrikeApiError):
    pass


class SnapshotError(ValueError):
    """A user-supplied snapshot file is not valid leaderboard JSON"""


def fetch_json(
    url: str,
    params: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None
) -> Any:
    """
    GET a URL and decode its JSON body.

    Args:
        url: Endpoint
        params: Query string parameters
        timeout: Seconds before giving up. If None, uses REQUEST_TIMEOUT_SECONDS
        session: Optional requests session (shared connection pool)
    """
    if timeout is None:
        timeout = REQUEST_TIMEOUT_SECONDS
    http = session or requests

    try:
        res = http.get(url, params=params, timeout=timeout)
    except requests.Timeout as e:
        raise StrikeApiTimeout(f"Timeout after {timeout}s: {url}") from e
    except requests.RequestException as e:
        raise StrikeApiError(f"Request failed: {url}: {e}") from e

    if not res.ok:
        preview = (res.text or '')[:ERROR_BODY_PREVIEW]
        raise StrikeApiError(f"HTTP {res.status_code} {res.reason} · {preview}", status_code=res.status_code)

    try:
        return res.json()
    except ValueError as e:
        raise StrikeApiError(f"Invalid JSON from {url}") from e


def fetch_side(market: str, side: str, session: Optional[requests.Session] = None) -> MarketSnapshot:
    """Fetch one leaderboard page (sorted by PNL desc) for a single side"""
    params = {**LEADERBOARD_PARAMS, 'market': market, 'type': side}
    payload = fetch_json(get_api_base(), params=params, session=session)

    try:
        snapshot = MarketSnapshot.model_validate(payload)
    except ValidationError as e:
        raise StrikeApiError(f"Unexpected leaderboard payload for {market}/{side}: {e}") from e

    logger.info("Fetched %d %s positions for %s", len(snapshot.leaderboards), side, market)
    return snapshot


def merge_responses(long_res: MarketSnapshot, short_res: MarketSnapshot) -> MarketSnapshot:
    """
    Merge independently fetched LONG and SHORT pages into one snapshot.

    Rows are re-sorted globally by PNL desc. Stats and liquidation buckets come
    from the LONG half, except the per-side counts/sizes which each half owns.
    """
    rows = sorted(
        long_res.leaderboards + short_res.leaderboards,
        key=lambda r: r.pnl_usd,
        reverse=True
    )

    long_stats, short_stats = long_res.stats, short_res.stats
    long_size = long_stats.long_size or 0.0
    short_size = short_stats.short_size or 0.0
    stats = long_stats.model_copy(update={
        'long_count': long_stats.long_count or 0,
        'short_count': short_stats.short_count or 0,
        'long_size': long_size,
        'short_size': short_size,
        'total_position_size': long_size + short_size,
    })

    return MarketSnapshot(
        leaderboards=rows,
        stats=stats,
        liquidation_buckets=list(long_res.liquidation_buckets),
        page=1,
        per_page=0,
        total_item=0,
        total_participants=0
    )


def fetch_strike(market: Optional[str] = None, side: str = 'BOTH') -> MarketSnapshot:
    """
    Fetch a market snapshot for the given side filter.

    BOTH issues the LONG and SHORT requests in parallel and merges them; the
    halves may reflect slightly different moments, which the analyzer tolerates.
    """
    market = validate_market(market or DEFAULT_MARKET)
    side = validate_side(side)

    with requests.Session() as session:
        if side != 'BOTH':
            return fetch_side(market, side, session=session)

        with ThreadPoolExecutor(max_workers=2) as executor:
            long_future = executor.submit(fetch_side, market, 'LONG', session)
            short_future = executor.submit(fetch_side, market, 'SHORT', session)
            long_res = long_future.result()
            short_res = short_future.result()

    merged = merge_responses(long_res, short_res)
    logger.info("Merged %d positions for %s", len(merged.leaderboards), market)
    return merged


def load_snapshot(source: Union[str, bytes, Path]) -> MarketSnapshot:
    """
    Load a user-supplied snapshot (a saved API response).

    Args:
        source: Path to a JSON file, or the JSON text/bytes itself
    """
    if isinstance(source, Path):
        text = source.read_text(encoding='utf-8')
    elif isinstance(source, str) and not source.lstrip().startswith(('{', '[')):
        text = Path(source).read_text(encoding='utf-8')
    else:
        text = source

    try:
        payload = json.loads(text)
    except ValueError as e:
        raise SnapshotError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise SnapshotError("Snapshot must be a JSON object with a LeaderBoards list")

    try:
        return MarketSnapshot.model_validate(payload)
    except ValidationError as e:
        raise SnapshotError(f"Invalid snapshot: {e}") from e
