import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .config import (
    IMMINENT_PCT,
    NEAR_PCT,
    MAX_DISTANCE,
    UNSET_TOKEN_PRICE,
    WEIGHT_W_IMMINENT,
    WEIGHT_W_NEAR,
    WEIGHT_IMMINENT,
    WEIGHT_NEAR,
    MAX_RISK_SCORE,
    HIGH_RISK_SCORE,
    MEDIUM_RISK_SCORE,
    TRIGGER_PERCENTILES,
    LP_PROXIMITY_PCT
)
from .formatting import format_num, format_usd, format_pct
from .models import (
    LeaderboardRow,
    MarketAnalysis,
    MarketSnapshot,
    PositionSide,
    RiskLevel,
    Sentiment,
    SideFilter,
    TriggerRange
)

'''
RULE-BASED LIQUIDATION RISK FOR ONE SNAPSHOT:
-> Price: each position guesses the underlying price; the market price is their USD-size-weighted mean
-> Distance: how far price must travel (as a fraction) before each position is force-closed
-> Buckets: IMMINENT (<= 2%), NEAR (2-7%), COMFORT (the rest); counted and USD-weighted
-> Score/Range/LP: heuristic 0-100 score, percentile band of liquidation prices, LP signal
'''


def _valid_price(value) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool) \
            and math.isfinite(value) and value > 0:
        return float(value)
    return None


# ========== Per-Position Price Sources (tried in order) ========== #
def price_from_mark_series(row: LeaderboardRow) -> Optional[float]:
    marks = row.mark_prices
    return _valid_price(marks[-1]) if marks else None


def price_from_current_value(row: LeaderboardRow) -> Optional[float]:
    amount, usd = row.current_token_amount, row.current_value_usd
    if not amount or not usd:
        return None
    return _valid_price(usd / amount)


def price_from_entry_token(row: LeaderboardRow) -> Optional[float]:
    price = _valid_price(row.entry_token_price)
    # 1 means the upstream never filled in a real price
    if price is None or price == UNSET_TOKEN_PRICE:
        return None
    return price


PRICE_SOURCES: Sequence[Callable[[LeaderboardRow], Optional[float]]] = (
    price_from_mark_series,
    price_from_current_value,
    price_from_entry_token,
)


def estimate_position_price(row: LeaderboardRow) -> Optional[float]:
    for source in PRICE_SOURCES:
        price = source(row)
        if price is not None:
            return price
    return None


def estimate_market_price(rows: Sequence[LeaderboardRow]) -> Optional[float]:
    """USD-size-weighted mean of the per-position estimates; None without weighted observations"""
    w_sum = 0.0
    w_px = 0.0
    for row in rows:
        price = estimate_position_price(row)
        weight = row.position_size_usd
        if price is not None and weight > 0:
            w_sum += weight
            w_px += price * weight
    if w_sum <= 0:
        return None
    return _valid_price(w_px / w_sum)


# ========== Distance & Buckets ========== #
def liquidation_distance(side: Optional[PositionSide], price: float, liq_price: float) -> Optional[float]:
    """Fraction of `price` left before liquidation; 0 when already through it, None when unusable"""
    if _valid_price(price) is None or _valid_price(liq_price) is None:
        return None

    if side == PositionSide.LONG:
        d = (price - liq_price) / price if liq_price < price else 0.0
    elif side == PositionSide.SHORT:
        d = (liq_price - price) / price if liq_price > price else 0.0
    else:
        return None

    if not math.isfinite(d) or d < 0 or d > MAX_DISTANCE:
        return None
    return d


@dataclass
class RiskBuckets:
    eligible: int = 0
    imminent: int = 0
    near: int = 0
    w_total: float = 0.0
    w_imminent: float = 0.0
    w_near: float = 0.0
    liq_prices: List[float] = field(default_factory=list)

    def add(self, distance: float, weight: float, liq_price: float):
        self.eligible += 1
        self.w_total += weight
        if distance <= IMMINENT_PCT:
            self.imminent += 1
            self.w_imminent += weight
        elif distance <= NEAR_PCT:
            self.near += 1
            self.w_near += weight
        self.liq_prices.append(liq_price)

    @property
    def pct_imminent(self) -> float:
        return self.imminent / self.eligible * 100 if self.eligible else 0.0

    @property
    def pct_near(self) -> float:
        return self.near / self.eligible * 100 if self.eligible else 0.0

    @property
    def weighted_pct_imminent(self) -> float:
        return self.w_imminent / self.w_total * 100 if self.w_total > 0 else 0.0

    @property
    def weighted_pct_near(self) -> float:
        return self.w_near / self.w_total * 100 if self.w_total > 0 else 0.0


def bucket_positions(rows: Sequence[LeaderboardRow], market_price: Optional[float]) -> RiskBuckets:
    buckets = RiskBuckets()
    for row in rows:
        price = estimate_position_price(row)
        if price is None:
            price = market_price
        if price is None:
            continue

        d = liquidation_distance(row.side, price, row.liquidation_price)
        if d is None:
            continue

        buckets.add(d, row.position_size_usd, float(row.liquidation_price))

    buckets.liq_prices.sort()
    return buckets


# ========== Score / Range / LP ========== #
def risk_score(weighted_pct_imminent: float, weighted_pct_near: float,
               pct_imminent: float, pct_near: float) -> float:
    raw = (weighted_pct_imminent * WEIGHT_W_IMMINENT +
           weighted_pct_near * WEIGHT_W_NEAR +
           pct_imminent * WEIGHT_IMMINENT +
           pct_near * WEIGHT_NEAR)
    return max(0.0, min(MAX_RISK_SCORE, raw))


def risk_level_for(score: float) -> RiskLevel:
    if score >= HIGH_RISK_SCORE:
        return RiskLevel.HIGH
    if score >= MEDIUM_RISK_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def percentile(sorted_values: Sequence[float], p: float) -> Optional[float]:
    """Nearest-rank (floor) percentile over an ascending sequence"""
    if not sorted_values:
        return None
    n = len(sorted_values)
    idx = min(n - 1, max(0, math.floor(p / 100 * (n - 1))))
    return sorted_values[idx]


def trigger_range(sorted_liq_prices: Sequence[float]) -> Optional[TriggerRange]:
    p25, p50, p75 = (percentile(sorted_liq_prices, p) for p in TRIGGER_PERCENTILES)
    if p25 is not None and p50 is not None:
        return TriggerRange(low=p25, high=p50)
    if p50 is not None and p75 is not None:
        return TriggerRange(low=p50, high=p75)
    return None


def lp_opportunity(level: RiskLevel, band: Optional[TriggerRange],
                   current_price: Optional[float]) -> RiskLevel:
    if level == RiskLevel.LOW or band is None or not current_price:
        return level

    # Clusters only pay LPs when price is plausibly close to them
    dist = abs(current_price - band.mid) / current_price
    if dist > LP_PROXIMITY_PCT:
        return RiskLevel.MEDIUM if level == RiskLevel.HIGH else RiskLevel.LOW
    return level


def sentiment_for(long_count: int, short_count: int) -> Sentiment:
    if long_count == short_count:
        return Sentiment.NEUTRAL
    return Sentiment.BULLISH if long_count > short_count else Sentiment.BEARISH


# ========== Narrative ========== #
SENTIMENT_LABELS = {
    Sentiment.NEUTRAL: 'Neutral',
    Sentiment.BULLISH: 'Bullish (Long-heavy)',
    Sentiment.BEARISH: 'Bearish (Short-heavy)',
}

LP_CALLOUTS = {
    RiskLevel.HIGH: '💧 LP opportunity: 🟢 High – adding liquidity now can capture liquidation rewards '
                    'if price moves toward the target range.',
    RiskLevel.MEDIUM: '💧 LP opportunity: 🟡 Medium – possible reward on a pullback toward the trigger range; '
                      'add gradually.',
    RiskLevel.LOW: '💧 LP opportunity: 🔴 Low – few liquidations likely in the short term.',
}


def risk_callout(level: RiskLevel, band: Optional[TriggerRange], current_price: Optional[float]) -> str:
    if level == RiskLevel.HIGH and (band is not None or current_price):
        target = band.low if band is not None else current_price * (1 - IMMINENT_PCT)
        return f"⚠️ High risk: liquidations could fire if price approaches {format_usd(target, 4)}."
    if level == RiskLevel.MEDIUM and band is not None:
        return (f"Caution: liquidation risk is accumulating at "
                f"{format_usd(band.low, 4)} – {format_usd(band.high, 4)}.")
    around = f" around {format_usd(current_price, 4)}" if current_price else ''
    return f"No imminent liquidations expected{around}."


def compose_summary(
    market: str,
    side: SideFilter,
    current_price: Optional[float],
    long_count: int,
    short_count: int,
    avg_leverage: float,
    sentiment: Sentiment,
    buckets: RiskBuckets,
    level: RiskLevel,
    band: Optional[TriggerRange],
    lp_level: RiskLevel
) -> Tuple[str, ...]:
    lines = [f"Market {market.upper()} – side {'GLOBAL' if side == SideFilter.BOTH else side.value}"]
    if current_price:
        lines.append(f"Estimated current price: {format_usd(current_price)}")
    lines.append(
        f"Long/Short ratio: {format_num(long_count)} / {format_num(short_count)} | "
        f"Avg. leverage: {format_num(avg_leverage)}x | Sentiment: {SENTIMENT_LABELS[sentiment]}.")
    lines.append(
        f"Risk (count): Imminent ≤2%: {format_pct(buckets.pct_imminent)}% | "
        f"Near 2–7%: {format_pct(buckets.pct_near)}%")
    lines.append(
        f"Risk (USD-weighted): Imminent: {format_pct(buckets.weighted_pct_imminent)}% | "
        f"Near: {format_pct(buckets.weighted_pct_near)}%")
    lines.append(risk_callout(level, band, current_price))
    lines.append(LP_CALLOUTS[lp_level])
    return tuple(lines)


# ========== Entry Point ========== #
def filter_side(rows: Sequence[LeaderboardRow], side: SideFilter) -> List[LeaderboardRow]:
    if side == SideFilter.BOTH:
        return list(rows)
    return [r for r in rows if r.side is not None and r.side.value == side.value]


def analyze_market(market: str, side: Union[SideFilter, str], snapshot: MarketSnapshot) -> MarketAnalysis:
    """
    Analyze one snapshot of positions for a market and side filter.

    Args:
        market: Market id (e.g. 'ada'); only used for labelling
        side: SideFilter or its string value
        snapshot: Leaderboard snapshot; read, never modified

    Returns:
        A fresh, frozen MarketAnalysis
    """
    side = SideFilter(side)
    rows = filter_side(snapshot.leaderboards, side)

    current_price = estimate_market_price(rows)
    buckets = bucket_positions(rows, current_price)

    long_count = sum(1 for r in rows if r.side == PositionSide.LONG)
    short_count = sum(1 for r in rows if r.side == PositionSide.SHORT)
    avg_leverage = sum(r.leverage for r in rows) / len(rows) if rows else 0.0
    sentiment = sentiment_for(long_count, short_count)

    score = risk_score(buckets.weighted_pct_imminent, buckets.weighted_pct_near,
                       buckets.pct_imminent, buckets.pct_near)
    level = risk_level_for(score)
    band = trigger_range(buckets.liq_prices)
    lp_level = lp_opportunity(level, band, current_price)

    summary = compose_summary(market, side, current_price, long_count, short_count,
                              avg_leverage, sentiment, buckets, level, band, lp_level)

    return MarketAnalysis(
        market=market,
        side=side,
        current_price=current_price,
        long_count=long_count,
        short_count=short_count,
        avg_leverage=avg_leverage,
        sentiment=sentiment,
        eligible_count=buckets.eligible,
        pct_imminent=buckets.pct_imminent,
        pct_near=buckets.pct_near,
        weighted_pct_imminent=buckets.weighted_pct_imminent,
        weighted_pct_near=buckets.weighted_pct_near,
        risk_score=score,
        risk_level=level,
        trigger_range=band,
        lp_opportunity_level=lp_level,
        lp_callout=LP_CALLOUTS[lp_level],
        summary=summary
    )
