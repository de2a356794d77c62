import math
from enum import Enum
from typing import Optional, List, Tuple
from pydantic import BaseModel, Field, field_validator


def finite_or_zero(value) -> float:
    """NaN, inf and missing numbers carry no signal"""
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class SideFilter(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    BOTH = "BOTH"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Sentiment(str, Enum):
    NEUTRAL = "Neutral"
    BULLISH = "Bullish"
    BEARISH = "Bearish"


# ========== Upstream Payload (Strike Finance leaderboard) ========== #
class UpstreamModel(BaseModel):
    """Upstream keys are PascalCase; every field is optional so bad rows degrade instead of failing"""

    class Config:
        populate_by_name = True


class TokenValue(UpstreamModel):
    token_key: Optional[str] = Field(None, alias="TokenKey")
    token_name: Optional[str] = Field(None, alias="TokenName")
    amount: Optional[float] = Field(None, alias="Amount")
    price: Optional[float] = Field(None, alias="Price")
    value: Optional[float] = Field(None, alias="Value")
    image: Optional[str] = Field(None, alias="Image")


class Position(UpstreamModel):
    status: Optional[str] = Field(None, alias="Status")
    side: Optional[PositionSide] = Field(None, alias="Side")
    token: Optional[TokenValue] = Field(None, alias="Token")
    leverage: Optional[float] = Field(None, alias="Leverage")

    @field_validator("side", mode="before")
    @classmethod
    def normalise_side(cls, v):
        # Upstream casing is inconsistent; anything else is "no side"
        if isinstance(v, str):
            v = v.strip().upper()
            return v if v in PositionSide.__members__ else None
        return v


class PositionValue(UpstreamModel):
    token_value: Optional[TokenValue] = Field(None, alias="TokenValue")
    token_value_usd: Optional[float] = Field(None, alias="TokenValueUsd")


class WalletAddress(UpstreamModel):
    address: Optional[str] = Field(None, alias="Address")
    stake_address: Optional[str] = Field(None, alias="StakeAddress")
    ada_handle: Optional[str] = Field(None, alias="ADAHandle")


class TxInfo(UpstreamModel):
    time: Optional[float] = Field(None, alias="Time")
    tx: Optional[str] = Field(None, alias="Tx")


class LeaderboardRow(UpstreamModel):
    version: Optional[str] = Field(None, alias="Version")
    tx: Optional[TxInfo] = Field(None, alias="Tx")
    market: Optional[str] = Field(None, alias="Market")
    entered_position_time: Optional[float] = Field(None, alias="EnteredPositionTime")
    address: Optional[WalletAddress] = Field(None, alias="Address")
    position: Optional[Position] = Field(None, alias="Position")
    current_position_value: Optional[PositionValue] = Field(None, alias="CurrentPositionValue")
    total_position_size: Optional[PositionValue] = Field(None, alias="TotalPositionSize")
    fees: Optional[float] = Field(None, alias="Fees")
    usd_hourly_rate: Optional[float] = Field(None, alias="UsdHourlyRate")
    entry_mark_price: List[Optional[float]] = Field(default_factory=list, alias="EntryMarkPrice")
    liquidation_price: Optional[float] = Field(None, alias="LiquidationPrice")
    collateral: Optional[float] = Field(None, alias="Collateral")
    collateral_token: Optional[float] = Field(None, alias="CollateralToken")
    collateral_token_key: Optional[str] = Field(None, alias="CollateralTokenKey")
    take_profit_stoploss: List[Optional[float]] = Field(default_factory=list, alias="TakeProfitStoploss")
    pnl: List[Optional[float]] = Field(default_factory=list, alias="PNL")
    value: Optional[float] = Field(None, alias="Value")
    duration_in_seconds: Optional[float] = Field(None, alias="DurationInSeconds")

    @field_validator("entry_mark_price", "take_profit_stoploss", "pnl", mode="before")
    @classmethod
    def null_to_empty(cls, v):
        return [] if v is None else v

    # Flattened accessors used by the analyzer and the dashboard
    @property
    def side(self) -> Optional[PositionSide]:
        return self.position.side if self.position else None

    @property
    def leverage(self) -> float:
        return finite_or_zero(self.position.leverage if self.position else None)

    @property
    def position_size_usd(self) -> float:
        size = self.total_position_size
        return finite_or_zero(size.token_value_usd if size else None)

    @property
    def current_value_usd(self) -> Optional[float]:
        return self.current_position_value.token_value_usd if self.current_position_value else None

    @property
    def current_token_amount(self) -> Optional[float]:
        value = self.current_position_value
        if value and value.token_value:
            return value.token_value.amount
        return None

    @property
    def mark_prices(self) -> List[Optional[float]]:
        return self.entry_mark_price

    @property
    def entry_token_price(self) -> Optional[float]:
        if self.position and self.position.token:
            return self.position.token.price
        return None

    @property
    def pnl_usd(self) -> float:
        return finite_or_zero(self.pnl[0] if self.pnl else None)

    @property
    def display_name(self) -> str:
        """ADA handle if the trader has one, else a shortened address"""
        if self.address is None:
            return '-'
        if self.address.ada_handle:
            return self.address.ada_handle
        if self.address.address:
            return self.address.address[:8] + '…'
        return '-'


class Stats(UpstreamModel):
    average_leverage: Optional[float] = Field(None, alias="AverageLeverage")
    total_collateral: Optional[float] = Field(None, alias="TotalCollateral")
    average_collateral: Optional[float] = Field(None, alias="AverageCollateral")
    total_fees: Optional[float] = Field(None, alias="TotalFees")
    average_pnl: Optional[float] = Field(None, alias="AveragePNL")
    average_duration: Optional[float] = Field(None, alias="AverageDuration")
    total_pnl: Optional[float] = Field(None, alias="TotalPNL")
    long_count: Optional[int] = Field(None, alias="LongCount")
    short_count: Optional[int] = Field(None, alias="ShortCount")
    long_player: Optional[int] = Field(None, alias="LongPlayer")
    short_player: Optional[int] = Field(None, alias="ShortPlayer")
    liquidation_price_average: Optional[float] = Field(None, alias="LiquidationPriceAverage")
    total_position_size: Optional[float] = Field(None, alias="TotalPositionSize")
    long_size: Optional[float] = Field(None, alias="LongSize")
    short_size: Optional[float] = Field(None, alias="ShortSize")
    roe: Optional[float] = Field(None, alias="ROE")
    account_value: Optional[float] = Field(None, alias="AccountValue")
    wins: Optional[int] = Field(None, alias="Wins")
    liquidated_24h: Optional[float] = Field(None, alias="Liquidated24H")
    total_pnl_for_pool: Optional[float] = Field(None, alias="totalPNLforPool")


class LiquidationBucket(UpstreamModel):
    range: Tuple[float, float] = Field(..., alias="Range")
    long_volume: float = Field(0.0, alias="LongVolume")
    short_volume: float = Field(0.0, alias="ShortVolume")
    long_cumulative: float = Field(0.0, alias="LongCumulative")
    short_cumulative: float = Field(0.0, alias="ShortCumulative")


class MarketSnapshot(UpstreamModel):
    """One pull of the leaderboard; never mutated once handed to the analyzer"""
    leaderboards: List[LeaderboardRow] = Field(default_factory=list, alias="LeaderBoards")
    stats: Stats = Field(default_factory=Stats, alias="Stats")
    liquidation_buckets: List[LiquidationBucket] = Field(default_factory=list, alias="LiquidationBuckets")
    page: int = Field(1, alias="Page")
    per_page: int = Field(0, alias="PerPage")
    total_item: int = Field(0, alias="TotalItem")
    total_participants: int = Field(0, alias="TotalParticipants")

    @field_validator("leaderboards", "liquidation_buckets", mode="before")
    @classmethod
    def null_to_empty(cls, v):
        return [] if v is None else v

    @field_validator("stats", mode="before")
    @classmethod
    def null_stats(cls, v):
        return {} if v is None else v


# ========== Analysis Output ========== #
class TriggerRange(BaseModel):
    low: float
    high: float

    class Config:
        frozen = True

    @property
    def mid(self) -> float:
        return (self.low + self.high) / 2


class MarketAnalysis(BaseModel):
    market: str
    side: SideFilter
    current_price: Optional[float] = None
    long_count: int
    short_count: int
    avg_leverage: float
    sentiment: Sentiment
    eligible_count: int
    pct_imminent: float
    pct_near: float
    weighted_pct_imminent: float
    weighted_pct_near: float
    risk_score: float
    risk_level: RiskLevel
    trigger_range: Optional[TriggerRange] = None
    lp_opportunity_level: RiskLevel
    lp_callout: str
    summary: Tuple[str, ...]

    class Config:
        frozen = True

    @property
    def summary_text(self) -> str:
        return '\n'.join(self.summary)


class RiskAlert(BaseModel):
    key: str
    level: RiskLevel
    title: str
    body: str


# ========== Dashboard Output ========== #
class KpiSummary(BaseModel):
    long_count: int
    short_count: int
    long_size_usd: float
    short_size_usd: float
    avg_leverage: float
    roe_pct: Optional[float] = None
    total_fees: float
    total_pnl: float
    pool_pnl: float


class LeverageBin(BaseModel):
    leverage: float
    count: int


class PnlBar(BaseModel):
    name: str
    pnl: float
    side: Optional[PositionSide] = None


class LiquidationMapPoint(BaseModel):
    label: str
    low: float
    high: float
    long_volume: float
    short_volume: float


class LeaderboardEntry(BaseModel):
    trader: str
    side: Optional[PositionSide] = None
    leverage: float
    size_usd: Optional[float] = None
    current_value_usd: Optional[float] = None
    pnl_usd: float
    liquidation_price: Optional[float] = None
    duration: str


class DashboardResponse(BaseModel):
    market: str
    side: SideFilter
    kpis: KpiSummary
    analysis: MarketAnalysis
    alert: Optional[RiskAlert] = None
    leverage_histogram: List[LeverageBin]
    top_pnl: List[PnlBar]
    liquidation_map: List[LiquidationMapPoint]
    average_liquidation_price: Optional[float] = None
    leaderboard: List[LeaderboardEntry]
    timestamp: float
