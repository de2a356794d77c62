import pytest

from strike_monitor.analyzer import analyze_market
from strike_monitor.dashboard import (
    build_alert,
    build_dashboard,
    compute_kpis,
    filter_rows,
    leaderboard_entries,
    leverage_histogram,
    liquidation_map,
    rows_to_frame,
    top_pnl,
)
from strike_monitor.models import LiquidationBucket, PositionSide, RiskLevel, SideFilter


class TestFrame:

    def test_empty_rows_have_columns(self):
        df = rows_to_frame([])
        assert df.empty
        assert list(df.columns) == ['name', 'side', 'leverage', 'size_usd', 'pnl', 'fees']

    def test_filter_by_handle_or_address(self, make_row):
        rows = [make_row(handle='$Alice', address='addr1aaa'),
                make_row(handle=None, address='addr1BBB'),
                make_row(handle='$carol', address='addr1ccc')]

        assert filter_rows(rows, '') == rows
        assert filter_rows(rows, None) == rows
        assert filter_rows(rows, ' alice ') == [rows[0]]
        assert filter_rows(rows, 'bbb') == [rows[1]]
        assert filter_rows(rows, 'zzz') == []

    def test_side_column_holds_plain_strings(self, make_row):
        df = rows_to_frame([make_row('LONG'), make_row('SHORT'), make_row('FLAT')])
        assert df['side'].iloc[:2].tolist() == ['LONG', 'SHORT']
        assert df['side'].isna().iloc[2]

    def test_non_finite_numbers_become_zero(self, make_row):
        df = rows_to_frame([make_row(size=float('inf'), leverage=float('nan'),
                                     pnl=float('nan'), fees=float('nan'))])
        assert df[['leverage', 'size_usd', 'pnl', 'fees']].iloc[0].tolist() == [0.0, 0.0, 0.0, 0.0]


class TestKpis:

    def test_fallback_from_rows(self, make_row, make_snapshot):
        snapshot = make_snapshot([
            make_row('LONG', size=1000, leverage=5, pnl=100, fees=2),
            make_row('LONG', size=500, leverage=10, pnl=-40, fees=1),
            make_row('SHORT', size=300, leverage=15, pnl=10, fees=0.5),
        ])

        kpis = compute_kpis(snapshot)

        assert (kpis.long_count, kpis.short_count) == (2, 1)
        assert kpis.long_size_usd == 1500
        assert kpis.short_size_usd == 300
        assert kpis.avg_leverage == pytest.approx(10.0)
        assert kpis.total_fees == pytest.approx(3.5)
        assert kpis.total_pnl == pytest.approx(70.0)
        assert kpis.pool_pnl == pytest.approx(-70.0)
        assert kpis.roe_pct is None

    def test_upstream_stats_win(self, make_row, make_snapshot):
        snapshot = make_snapshot(
            [make_row('LONG', size=1000, leverage=5, pnl=100)],
            stats={'LongCount': 40, 'ShortCount': 0, 'AverageLeverage': 3.2, 'ROE': 0.125,
                   'TotalFees': 99, 'totalPNLforPool': 1234},
        )

        kpis = compute_kpis(snapshot)

        assert kpis.long_count == 40
        assert kpis.short_count == 0
        assert kpis.avg_leverage == 3.2
        assert kpis.roe_pct == pytest.approx(12.5)
        assert kpis.total_fees == 99
        assert kpis.pool_pnl == 1234
        # Not provided upstream -> derived
        assert kpis.long_size_usd == 1000

    def test_side_counts_on_string_dtype_column(self, make_row, make_snapshot, monkeypatch):
        frame = rows_to_frame
        monkeypatch.setattr('strike_monitor.dashboard.rows_to_frame',
                            lambda rows: frame(rows).astype({'side': 'string'}))
        snapshot = make_snapshot([
            make_row('LONG', size=1000),
            make_row('LONG', size=500),
            make_row('SHORT', size=300),
            make_row(None, size=50),
        ])

        kpis = compute_kpis(snapshot)

        assert (kpis.long_count, kpis.short_count) == (2, 1)
        assert (kpis.long_size_usd, kpis.short_size_usd) == (1500, 300)

    def test_non_finite_rows_keep_totals_finite(self, make_row, make_snapshot):
        snapshot = make_snapshot([
            make_row('LONG', size=1000, leverage=4, pnl=100, fees=2),
            make_row('SHORT', size=float('nan'), leverage=float('nan'), pnl=float('nan'), fees=float('inf')),
        ])

        kpis = compute_kpis(snapshot)

        assert kpis.short_count == 1
        assert kpis.short_size_usd == 0
        assert kpis.avg_leverage == pytest.approx(2.0)
        assert kpis.total_fees == pytest.approx(2.0)
        assert kpis.total_pnl == pytest.approx(100.0)

    def test_empty_snapshot(self, make_snapshot):
        kpis = compute_kpis(make_snapshot([]))
        assert kpis.long_count == 0
        assert kpis.avg_leverage == 0
        assert kpis.pool_pnl == 0


class TestCharts:

    def test_leverage_histogram_half_x_buckets(self, make_row):
        rows = [make_row(leverage=10.2), make_row(leverage=10.25), make_row(leverage=10.6),
                make_row(leverage=3), make_row(leverage=None)]

        bins = [(b.leverage, b.count) for b in leverage_histogram(rows)]

        assert bins == [(0.0, 1), (3.0, 1), (10.0, 1), (10.5, 2)]

    def test_leverage_histogram_empty(self):
        assert leverage_histogram([]) == []

    def test_top_pnl_ranks_by_magnitude(self, make_row):
        rows = [make_row(pnl=10, handle='$a'), make_row(pnl=-500, handle='$b'),
                make_row(pnl=200, handle=None, address='addr1qlongaddress'), make_row(pnl=0, handle='$d')]

        bars = top_pnl(rows, limit=3)

        assert [b.name for b in bars] == ['$b', 'addr1qlo…', '$a']
        assert [b.pnl for b in bars] == [-500, 200, 10]
        assert bars[0].side == PositionSide.LONG

    def test_liquidation_map_labels(self):
        buckets = [LiquidationBucket(Range=(0.5, 0.55), LongVolume=100, ShortVolume=3)]

        points = liquidation_map(buckets)

        assert points[0].label == '0.500–0.550'
        assert (points[0].long_volume, points[0].short_volume) == (100, 3)

    def test_leaderboard_entries(self, make_row):
        entry = leaderboard_entries([make_row('SHORT', liq=1.2, size=250, usd=240,
                                              handle='$z', duration=7260, pnl=-3)])[0]

        assert entry.trader == '$z'
        assert entry.side == PositionSide.SHORT
        assert entry.size_usd == 250
        assert entry.current_value_usd == 240
        assert entry.liquidation_price == 1.2
        assert entry.duration == '2h 1m'
        assert entry.pnl_usd == -3


class TestAlert:

    def test_no_alert_for_low_risk(self, make_snapshot):
        assert build_alert(analyze_market('ada', 'BOTH', make_snapshot([]))) is None

    def test_high_risk_alert(self, mixed_snapshot):
        alert = build_alert(analyze_market('ada', 'BOTH', mixed_snapshot))

        assert alert.level == RiskLevel.HIGH
        assert alert.key == 'ada:BOTH:high:95.0-98.0'
        assert alert.title == 'HIGH liquidation risk on ADA'
        assert alert.body == 'Range to watch: $95.00 – $98.00'

    def test_alert_key_tracks_side(self, mixed_snapshot):
        both = build_alert(analyze_market('ada', 'BOTH', mixed_snapshot))
        longs = build_alert(analyze_market('ada', 'LONG', mixed_snapshot))
        assert both.key != longs.key


class TestBuildDashboard:

    def test_search_narrows_table_but_not_analysis(self, mixed_snapshot):
        dash = build_dashboard('ada', 'BOTH', mixed_snapshot, search='alice')

        assert dash.side == SideFilter.BOTH
        assert [e.trader for e in dash.leaderboard] == ['$alice']
        assert [b.name for b in dash.top_pnl] == ['$alice']
        assert dash.analysis.eligible_count == 3
        assert dash.kpis.long_count == 2
        assert dash.alert is not None
        assert dash.timestamp > 0
