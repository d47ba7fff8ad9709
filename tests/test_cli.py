from typer.testing import CliRunner

from fakes import make_item
from listing_relay.cli import app
from listing_relay.services.ledger import Ledger

runner = CliRunner()


def _seed(tmp_path):
    ledger = Ledger(tmp_path / "ledger.json").load()
    ledger.record_discovered(
        [
            make_item("1", "Alpha", "https://x/a.map", "https://x/a2.map"),
            make_item("2", "Beta", "https://x/b.map"),
        ]
    )
    ledger.mark_delivered("https://x/a.map")
    (tmp_path / "1_Alpha - a.map").write_bytes(b"x")
    (tmp_path / "2_Beta - b.map.part").write_bytes(b"x")
    return ledger


def test_stats_reports_ledger_counts(tmp_path):
    _seed(tmp_path)
    result = runner.invoke(app, ["stats", "--output", str(tmp_path)])

    assert result.exit_code == 0
    assert "Total items found: 2" in result.output
    assert "Delivered files: 1" in result.output
    assert "Items with pending files: 2" in result.output
    # one of three known files delivered, whatever the item count
    assert "Success rate: 33% (1/3 known files)" in result.output
    assert "Files on disk: 1" in result.output


def test_reset_forgets_deliveries(tmp_path):
    _seed(tmp_path)
    result = runner.invoke(app, ["reset", "--output", str(tmp_path)])

    assert result.exit_code == 0
    ledger = Ledger(tmp_path / "ledger.json").load()
    assert ledger.delivered_urls() == []
    assert ledger.stats().total_found == 2


def test_monitor_rejects_non_positive_interval(tmp_path):
    result = runner.invoke(app, ["monitor", "--output", str(tmp_path), "--interval", "0"])
    assert result.exit_code == 1
