from fakes import FakeDownloader, FakeSource, RecordingNotifier, ScriptedSink, make_item
from listing_relay.core.orchestrator import Pipeline
from listing_relay.flows import sync_flow
from listing_relay.flows.sync_flow import listing_monitor_flow, listing_sync_flow
from listing_relay.services.ledger import Ledger
from listing_relay.services.uploader import Publisher


def _fake_builder(notifier):
    # Replace the real scraper/HTTP stack with in-memory doubles
    def build(config):
        return Pipeline(
            FakeSource([make_item("7", "Snow Island", "https://files.example/snow.map")]),
            Ledger(config.ledger_path),
            FakeDownloader(),
            Publisher(ScriptedSink(), sleep=lambda s: None),
            notifier,
            output_dir=config.output_dir,
        )

    return build


def test_listing_sync_flow_runs_pipeline(monkeypatch, tmp_path):
    notifier = RecordingNotifier()
    monkeypatch.setattr(
        "listing_relay.flows.sync_flow.build_pipeline", _fake_builder(notifier)
    )

    cfg = {
        "job_name": "test_job",
        "environment": "dev",
        "source_url": "https://listings.example",
        "output_dir": str(tmp_path),
    }

    result = listing_sync_flow(cfg)
    assert isinstance(result, dict)
    assert result["published"] == 1
    assert result["errors"] == 0
    assert len(notifier.artifacts) == 1

    # second scan is a no-op
    again = listing_sync_flow(cfg)
    assert again["published"] == 0
    assert again["skipped_already_delivered"] == 1


def test_listing_monitor_flow_repeats_scans(monkeypatch, tmp_path):
    monkeypatch.setattr(
        "listing_relay.flows.sync_flow.build_pipeline",
        _fake_builder(RecordingNotifier()),
    )
    sleeps = []
    monkeypatch.setattr(sync_flow, "_sleep", sleeps.append)

    cfg = {"job_name": "monitor_job", "output_dir": str(tmp_path)}
    summaries = listing_monitor_flow(cfg, interval_minutes=5, max_runs=2)

    assert [s["published"] for s in summaries] == [1, 0]
    assert sleeps == [300]
