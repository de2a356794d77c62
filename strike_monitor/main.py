import argparse
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_MARKET, DEFAULT_SIDE
from .dashboard import build_dashboard
from .formatting import format_num, format_usd
from .models import DashboardResponse
from .strike_api import SnapshotError, StrikeApiError, fetch_strike, load_snapshot


def calculate_dashboard(
    market: Optional[str] = None,
    side: Optional[str] = None,
    file: Optional[str] = None,
    search: Optional[str] = None
) -> DashboardResponse:
    """
    Fetch (or load) a snapshot and build the dashboard DATA, not text.

    Args:
        market: Market id (e.g. 'ada'). If None, uses DEFAULT_MARKET
        side: LONG, SHORT or BOTH. If None, uses DEFAULT_SIDE
        file: Optional saved API response to use instead of the live API
        search: Optional trader filter for the table and charts
    """
    market = market or DEFAULT_MARKET
    side = (side or DEFAULT_SIDE).upper()

    snapshot = load_snapshot(file) if file else fetch_strike(market, side)
    return build_dashboard(market, side, snapshot, search=search)


# Render Helper
def render_dashboard(dash: DashboardResponse, top: int = 10):
    kpis = dash.kpis
    print(f"\n{'='*60}")
    print(f"{'STRIKE MARKET MONITOR':^60}")
    print(f"{'='*60}")
    print(f"Longs: {format_num(kpis.long_count)} ({format_usd(kpis.long_size_usd)}) | "
          f"Shorts: {format_num(kpis.short_count)} ({format_usd(kpis.short_size_usd)})")
    roe = f"{kpis.roe_pct:.2f}%" if kpis.roe_pct is not None else '-'
    print(f"Avg. leverage: {format_num(kpis.avg_leverage)}x | ROE: {roe} | "
          f"Pool PNL: {format_usd(kpis.pool_pnl)} | Fees: {format_usd(kpis.total_fees)}\n")

    analysis = dash.analysis
    print(f"Risk: {analysis.risk_level.value.upper()} · score {round(analysis.risk_score)} / 100\n")
    for line in analysis.summary:
        print(line)

    if dash.top_pnl:
        print(f"\n{'TOP PNL':^60}")
        for bar in dash.top_pnl[:top]:
            side = bar.side.value if bar.side else '-'
            print(f"{bar.name:14} | {side:5} | {format_usd(bar.pnl):>14}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Liquidation risk snapshot for a Strike Finance market")
    parser.add_argument('market', nargs='?', default=DEFAULT_MARKET)
    parser.add_argument('--side', default=DEFAULT_SIDE, choices=['LONG', 'SHORT', 'BOTH'], type=str.upper)
    parser.add_argument('--file', help="Saved API response (JSON) to analyze instead of fetching")
    parser.add_argument('--search', help="Only show traders whose handle/address contains this")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        dash = calculate_dashboard(args.market, args.side, file=args.file, search=args.search)
    except (StrikeApiError, SnapshotError, ValueError, OSError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    render_dashboard(dash)
    return 0


if __name__ == '__main__':
    sys.exit(main())
