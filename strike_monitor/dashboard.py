import time
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .analyzer import analyze_market
from .config import LEVERAGE_BUCKET, TOP_PNL_LIMIT
from .formatting import format_usd, secs_to_hhmm
from .models import (
    DashboardResponse,
    KpiSummary,
    LeaderboardEntry,
    LeaderboardRow,
    LeverageBin,
    LiquidationBucket,
    LiquidationMapPoint,
    MarketAnalysis,
    MarketSnapshot,
    PnlBar,
    PositionSide,
    RiskAlert,
    RiskLevel,
    SideFilter,
    finite_or_zero
)

FRAME_COLUMNS = ['name', 'side', 'leverage', 'size_usd', 'pnl', 'fees']


def _side_or_none(value) -> Optional[PositionSide]:
    return PositionSide(value) if isinstance(value, str) else None


def rows_to_frame(rows: Sequence[LeaderboardRow]) -> pd.DataFrame:
    """Flatten leaderboard rows into one DataFrame row per position"""
    if not rows:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    return pd.DataFrame([{
        'name': r.display_name,
        'side': r.side.value if r.side else None,
        'leverage': r.leverage,
        'size_usd': r.position_size_usd,
        'pnl': r.pnl_usd,
        'fees': finite_or_zero(r.fees),
    } for r in rows], columns=FRAME_COLUMNS)


def filter_rows(rows: Sequence[LeaderboardRow], search: Optional[str]) -> List[LeaderboardRow]:
    """Case-insensitive match on ADA handle or address"""
    q = (search or '').strip().lower()
    if not q:
        return list(rows)

    def matches(r: LeaderboardRow) -> bool:
        addr = r.address
        if addr is None:
            return False
        return q in (addr.ada_handle or '').lower() or q in (addr.address or '').lower()

    return [r for r in rows if matches(r)]


def compute_kpis(snapshot: MarketSnapshot) -> KpiSummary:
    """Headline numbers; upstream Stats win, row aggregates fill the gaps"""
    df = rows_to_frame(snapshot.leaderboards)
    stats = snapshot.stats

    longs = df[df['side'] == PositionSide.LONG.value]
    shorts = df[df['side'] == PositionSide.SHORT.value]
    total_pnl = float(df['pnl'].sum())

    def pick(upstream, fallback):
        return fallback if upstream is None else upstream

    return KpiSummary(
        long_count=pick(stats.long_count, len(longs)),
        short_count=pick(stats.short_count, len(shorts)),
        long_size_usd=pick(stats.long_size, float(longs['size_usd'].sum())),
        short_size_usd=pick(stats.short_size, float(shorts['size_usd'].sum())),
        avg_leverage=pick(stats.average_leverage, float(df['leverage'].mean()) if len(df) else 0.0),
        roe_pct=stats.roe * 100 if stats.roe is not None else None,
        total_fees=pick(stats.total_fees, float(df['fees'].sum())),
        total_pnl=pick(stats.total_pnl, total_pnl),
        pool_pnl=pick(stats.total_pnl_for_pool, -total_pnl)
    )


def leverage_histogram(rows: Sequence[LeaderboardRow], bucket: float = LEVERAGE_BUCKET) -> List[LeverageBin]:
    """Position count per leverage bucket (0.5x by default), ascending"""
    df = rows_to_frame(rows)
    if df.empty:
        return []

    # Round half up onto the bucket grid
    lev = df['leverage'].astype(float).to_numpy()
    snapped = np.floor(lev / bucket + 0.5) * bucket

    counts = pd.Series(snapped).value_counts().sort_index()
    return [LeverageBin(leverage=float(k), count=int(v)) for k, v in counts.items()]


def top_pnl(rows: Sequence[LeaderboardRow], limit: int = TOP_PNL_LIMIT) -> List[PnlBar]:
    """Largest PNL magnitudes first (winners and losers alike)"""
    df = rows_to_frame(rows)
    if df.empty:
        return []

    df['abs_pnl'] = df['pnl'].abs()
    ranked = df.sort_values('abs_pnl', ascending=False, kind='stable').head(limit)

    return [PnlBar(name=row.name, pnl=float(row.pnl), side=_side_or_none(row.side)) for row in ranked.itertuples()]


def liquidation_map(buckets: Sequence[LiquidationBucket]) -> List[LiquidationMapPoint]:
    return [LiquidationMapPoint(
        label=f"{b.range[0]:.3f}–{b.range[1]:.3f}",
        low=b.range[0],
        high=b.range[1],
        long_volume=b.long_volume,
        short_volume=b.short_volume
    ) for b in buckets]


def leaderboard_entries(rows: Sequence[LeaderboardRow]) -> List[LeaderboardEntry]:
    return [LeaderboardEntry(
        trader=r.display_name,
        side=r.side,
        leverage=r.leverage,
        size_usd=r.total_position_size.token_value_usd if r.total_position_size else None,
        current_value_usd=r.current_value_usd,
        pnl_usd=r.pnl_usd,
        liquidation_price=r.liquidation_price,
        duration=secs_to_hhmm(r.duration_in_seconds)
    ) for r in rows]


def build_alert(analysis: MarketAnalysis) -> Optional[RiskAlert]:
    """
    Alert for medium/high liquidation risk.

    The key changes only when market, side, level or trigger range change, so a
    caller can suppress repeats by remembering the last key it showed.
    """
    level = analysis.risk_level
    if level == RiskLevel.LOW:
        return None

    band = analysis.trigger_range
    key = (f"{analysis.market}:{analysis.side.value}:{level.value}:"
           f"{band.low if band else ''}-{band.high if band else ''}")

    label = 'HIGH' if level == RiskLevel.HIGH else 'MEDIUM'
    title = f"{label} liquidation risk on {analysis.market.upper()}"
    if band is not None:
        body = f"Range to watch: {format_usd(band.low, 4)} – {format_usd(band.high, 4)}"
    else:
        body = 'Some positions are close to liquidation.'

    return RiskAlert(key=key, level=level, title=title, body=body)


def build_dashboard(
    market: str,
    side: Union[SideFilter, str],
    snapshot: MarketSnapshot,
    search: Optional[str] = None
) -> DashboardResponse:
    """
    Everything the dashboard shows for one snapshot.

    The analysis always sees the whole snapshot; the search term narrows only
    the table and the per-trader charts.
    """
    side = SideFilter(side)
    analysis = analyze_market(market, side, snapshot)
    rows = filter_rows(snapshot.leaderboards, search)

    return DashboardResponse(
        market=market,
        side=side,
        kpis=compute_kpis(snapshot),
        analysis=analysis,
        alert=build_alert(analysis),
        leverage_histogram=leverage_histogram(rows),
        top_pnl=top_pnl(rows),
        liquidation_map=liquidation_map(snapshot.liquidation_buckets),
        average_liquidation_price=snapshot.stats.liquidation_price_average,
        leaderboard=leaderboard_entries(rows),
        timestamp=time.time()
    )
