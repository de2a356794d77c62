import pytest

from strike_monitor.models import LeaderboardRow, MarketSnapshot


def build_row(
    side='LONG',
    liq=None,
    size=1000.0,
    marks=None,
    amount=None,
    usd=None,
    token_price=None,
    leverage=10.0,
    pnl=0.0,
    fees=0.0,
    handle=None,
    address='addr1qxyz0000000000',
    duration=None
):
    """Upstream-shaped (PascalCase) leaderboard row"""
    raw = {
        'Market': 'ada',
        'Address': {'Address': address, 'StakeAddress': 'stake1u000', 'ADAHandle': handle},
        'Position': {
            'Status': 'Active',
            'Side': side,
            'Leverage': leverage,
            'Token': {'TokenKey': 'ada', 'TokenName': 'ADA', 'Amount': 0, 'Price': token_price},
        },
        'CurrentPositionValue': {
            'TokenValue': {'TokenKey': 'ada', 'Amount': amount},
            'TokenValueUsd': usd,
        },
        'TotalPositionSize': {'TokenValueUsd': size},
        'EntryMarkPrice': marks if marks is not None else [],
        'LiquidationPrice': liq,
        'PNL': [pnl, 0],
        'Fees': fees,
        'DurationInSeconds': duration,
    }
    return LeaderboardRow.model_validate(raw)


def build_snapshot(rows, stats=None, buckets=None):
    return MarketSnapshot(leaderboards=rows, stats=stats or {}, liquidation_buckets=buckets or [])


@pytest.fixture
def make_row():
    return build_row


@pytest.fixture
def make_snapshot():
    return build_snapshot


@pytest.fixture
def mixed_snapshot():
    """Two longs (imminent, near) and one comfortable short, all priced at 100"""
    return build_snapshot([
        build_row('LONG', liq=98.0, size=1000.0, marks=[90.0, 100.0], pnl=50.0, handle='$alice'),
        build_row('LONG', liq=95.0, size=1000.0, marks=[100.0], pnl=-300.0),
        build_row('SHORT', liq=110.0, size=2000.0, marks=[100.0], pnl=120.0, handle='$bob'),
    ])
