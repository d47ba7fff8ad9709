import pytest
from pydantic import ValidationError

from listing_relay.core.config import DEFAULT_UPLOAD_URL_TEMPLATE, PipelineConfig

ENV_VARS = [
    "SOURCE_URL",
    "OUTPUT_DIR",
    "DISCORD_WEBHOOK_URL",
    "UPLOAD_URL_TEMPLATE",
    "FETCH_CONCURRENCY",
    "PUBLISH_SINK",
    "GCS_BUCKET",
    "DELETE_LOCAL_AFTER_UPLOAD",
]


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_defaults():
    cfg = PipelineConfig()
    assert cfg.fetch_concurrency == 3
    assert cfg.fetch_retry_attempts == 2
    assert cfg.fetch_retry_delay == 5.0
    assert cfg.publish_max_retries == 10
    assert cfg.upload_url_template == DEFAULT_UPLOAD_URL_TEMPLATE
    assert cfg.ledger_path.name == "ledger.json"
    assert cfg.manifest_path.parent == cfg.ledger_path.parent


def test_job_name_is_lowercased_and_rejects_spaces():
    assert PipelineConfig(job_name="RustMaps").job_name == "rustmaps"
    with pytest.raises(ValidationError):
        PipelineConfig(job_name="rust maps")


@pytest.mark.parametrize(
    "field,value",
    [
        ("environment", "qa"),
        ("fetch_concurrency", 0),
        ("publish_max_retries", 0),
        ("publish_sink", "ftp"),
        ("upload_url_template", "https://api.example/upload"),
    ],
)
def test_invalid_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        PipelineConfig(**{field: value})


def test_gcs_sink_requires_bucket():
    with pytest.raises(ValidationError):
        PipelineConfig(publish_sink="gcs")
    assert PipelineConfig(publish_sink="gcs", gcs_bucket="maps").gcs_bucket == "maps"


def test_empty_webhook_becomes_none():
    assert PipelineConfig(webhook_url="").webhook_url is None


def test_from_env_reads_variables(clean_env, tmp_path):
    clean_env.setenv("OUTPUT_DIR", str(tmp_path))
    clean_env.setenv("DISCORD_WEBHOOK_URL", "https://hook.example/1")
    clean_env.setenv("FETCH_CONCURRENCY", "5")
    clean_env.setenv("DELETE_LOCAL_AFTER_UPLOAD", "TRUE")

    cfg = PipelineConfig.from_env()

    assert cfg.output_dir == str(tmp_path)
    assert cfg.webhook_url == "https://hook.example/1"
    assert cfg.fetch_concurrency == 5
    assert cfg.delete_local_after_publish is True
    assert cfg.ledger_path == tmp_path / "ledger.json"


def test_from_env_overrides_win_and_none_is_ignored(clean_env):
    clean_env.setenv("SOURCE_URL", "https://env.example")
    cfg = PipelineConfig.from_env(source_url="https://cli.example", output_dir=None)
    assert cfg.source_url == "https://cli.example"
    assert cfg.output_dir == "./output"


def test_model_dump_round_trips_for_flows():
    cfg = PipelineConfig(source_params={"max_items": 3})
    assert PipelineConfig(**cfg.model_dump()) == cfg
