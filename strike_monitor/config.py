import os

# ========== DEFAULT VALUES ========== #
DEFAULT_MARKET = 'ada'
DEFAULT_SIDE = 'BOTH'
KNOWN_MARKETS = ['ada', 'min', 'strike', 'wmtx', 'iag', 'btc']

# ========== DATA SOURCE ========== #
DEV_API_BASE = 'https://api.bending.ai/defi/strikefinance'
PROD_API_BASE = 'https://nameless-wood-1c17.francbonet.workers.dev/defi/strikefinance'

REQUEST_TIMEOUT_SECONDS = float(os.environ.get('STRIKE_TIMEOUT', 12))
ERROR_BODY_PREVIEW = 180  # Chars of upstream body kept in error messages

LEADERBOARD_PARAMS = {
    'sort_by': 'PNL',
    'order': 'desc',
    'position_type': 'leaderboard_view',
}


# ========== HELPER FUNCTIONS ========== #
def get_api_base() -> str:
    """Explicit STRIKE_API_BASE wins; otherwise STRIKE_ENV=dev selects the dev base"""
    override = os.environ.get('STRIKE_API_BASE')
    if override:
        return override.rstrip('/')
    if os.environ.get('STRIKE_ENV', 'prod').lower() == 'dev':
        return DEV_API_BASE
    return PROD_API_BASE


def validate_market(market: str) -> str:
    """Normalise a market id; raises ValueError for anything that isn't a plain token key"""
    market = (market or '').strip().lower()
    if not market or not market.isalnum():
        raise ValueError(f"Invalid market: {market!r}")
    return market


def validate_side(side: str) -> str:
    """Side filter must be LONG, SHORT or BOTH"""
    side = (side or '').strip().upper()
    if side not in {'LONG', 'SHORT', 'BOTH'}:
        raise ValueError(f"Invalid side filter: {side!r}")
    return side


# Liquidation Distance Buckets (fraction of current price)
IMMINENT_PCT = 0.02     # d <= 2%
NEAR_PCT = 0.07         # 2% < d <= 7%
MAX_DISTANCE = 2.0      # d above this is a data error, not a position

# Entry token price of exactly 1 is the upstream "unset" marker
UNSET_TOKEN_PRICE = 1

# Risk Score Weighting (size-weighted signals dominate)
WEIGHT_W_IMMINENT = 1.6
WEIGHT_W_NEAR = 0.7
WEIGHT_IMMINENT = 1.2
WEIGHT_NEAR = 0.5

MAX_RISK_SCORE = 100.0
HIGH_RISK_SCORE = 60.0
MEDIUM_RISK_SCORE = 35.0

# Trigger Range Percentiles
TRIGGER_PERCENTILES = (25, 50, 75)

# LP signal downgrades when price sits further than this from the range midpoint
LP_PROXIMITY_PCT = 0.05

# Dashboard
LEVERAGE_BUCKET = 0.5
TOP_PNL_LIMIT = 20
