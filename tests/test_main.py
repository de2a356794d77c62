import json

import pytest

from strike_monitor import config
from strike_monitor.main import calculate_dashboard, main


PAYLOAD = {
    'LeaderBoards': [
        {'Position': {'Side': 'LONG', 'Leverage': 5}, 'EntryMarkPrice': [1.0], 'LiquidationPrice': 0.8,
         'TotalPositionSize': {'TokenValueUsd': 1000}, 'PNL': [12.5, 0.1],
         'Address': {'Address': 'addr1q9999999', 'ADAHandle': '$whale'}},
    ],
    'Stats': {'LongCount': 1, 'ShortCount': 0},
}


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / 'snapshot.json'
    path.write_text(json.dumps(PAYLOAD), encoding='utf-8')
    return path


def test_calculate_dashboard_from_file(snapshot_file):
    dash = calculate_dashboard('ada', 'both', file=str(snapshot_file))

    assert dash.analysis.current_price == 1.0
    assert dash.analysis.risk_level.value == 'low'
    assert dash.kpis.long_count == 1


def test_main_renders_summary(snapshot_file, capsys):
    assert main(['ada', '--file', str(snapshot_file)]) == 0

    out = capsys.readouterr().out
    assert 'Market ADA – side GLOBAL' in out
    assert 'Estimated current price: $1.00' in out
    assert '$whale' in out


def test_main_reports_bad_file(tmp_path, capsys):
    path = tmp_path / 'bad.json'
    path.write_text('not json', encoding='utf-8')

    assert main(['ada', '--file', str(path)]) == 1
    assert 'Invalid JSON' in capsys.readouterr().err


class TestConfig:

    def test_validate_market(self):
        assert config.validate_market(' ADA ') == 'ada'
        with pytest.raises(ValueError):
            config.validate_market('')
        with pytest.raises(ValueError):
            config.validate_market('ada&type=x')

    def test_validate_side(self):
        assert config.validate_side('both') == 'BOTH'
        with pytest.raises(ValueError):
            config.validate_side('NEUTRAL')

    def test_api_base(self, monkeypatch):
        monkeypatch.delenv('STRIKE_API_BASE', raising=False)
        monkeypatch.delenv('STRIKE_ENV', raising=False)
        assert config.get_api_base() == config.PROD_API_BASE

        monkeypatch.setenv('STRIKE_ENV', 'dev')
        assert config.get_api_base() == config.DEV_API_BASE

        monkeypatch.setenv('STRIKE_API_BASE', 'http://localhost:8787/')
        assert config.get_api_base() == 'http://localhost:8787'
