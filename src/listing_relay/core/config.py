import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_UPLOAD_URL_TEMPLATE = (
    "https://api.facepunch.com/api/public/rust-map-upload/{filename}"
)


class PipelineConfig(BaseModel):
    """
    Contrato de Configuração do relay.
    Define tudo que é necessário para rodar um scan: origem, pasta local,
    política de fetch/publish e notificação.
    """

    job_name: str = "listing_relay"
    environment: str = Field(default="dev", pattern="^(dev|staging|prod)$")

    # Origem
    source_url: str = "https://rustmaps.ru"
    source_params: Dict[str, Any] = Field(default_factory=dict)

    # Destino local (arquivos baixados + ledger)
    output_dir: str = "./output"
    ledger_filename: str = "ledger.json"

    # Fetch Stage
    fetch_concurrency: int = Field(default=3, ge=1)
    fetch_retry_attempts: int = Field(default=2, ge=1)
    fetch_retry_delay: float = Field(default=5.0, ge=0)
    fetch_timeout: int = Field(default=15, ge=1)
    fetch_pace_seconds: float = Field(default=0.0, ge=0)

    # Publish Stage
    publish_sink: str = Field(default="http", pattern="^(http|gcs)$")
    upload_url_template: str = DEFAULT_UPLOAD_URL_TEMPLATE
    publish_max_retries: int = Field(default=10, ge=1)
    publish_base_delay: float = Field(default=1.0, ge=0)
    publish_delay_increment: float = Field(default=5.0, ge=0)
    publish_timeout: int = Field(default=120, ge=1)
    publish_pace_seconds: float = Field(default=0.0, ge=0)
    gcs_bucket: Optional[str] = None
    gcs_prefix: str = ""

    # Notificação
    webhook_url: Optional[str] = None
    notify_on_new_items: bool = True
    notify_on_run_complete: bool = True

    delete_local_after_publish: bool = False
    write_manifest: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def ledger_path(self) -> Path:
        """Caminho do documento do ledger: <output_dir>/<ledger_filename>."""
        return Path(self.output_dir) / self.ledger_filename

    @property
    def manifest_path(self) -> Path:
        return Path(self.output_dir) / "manifest.json"

    @field_validator("job_name")
    def job_name_must_be_slug(cls, v):
        if " " in v:
            raise ValueError("job_name must not contain spaces")
        return v.lower()

    @field_validator("upload_url_template")
    def template_needs_filename(cls, v):
        if "{filename}" not in v:
            raise ValueError("upload_url_template must contain '{filename}'")
        return v

    @field_validator("webhook_url")
    def empty_webhook_is_none(cls, v):
        return v or None

    @model_validator(mode="after")
    def gcs_sink_needs_bucket(self):
        if self.publish_sink == "gcs" and not self.gcs_bucket:
            raise ValueError("publish_sink='gcs' requires gcs_bucket")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        """Build a config from environment variables, then apply overrides."""
        env = os.environ
        values: Dict[str, Any] = {}
        mapping = {
            "SOURCE_URL": "source_url",
            "OUTPUT_DIR": "output_dir",
            "DISCORD_WEBHOOK_URL": "webhook_url",
            "UPLOAD_URL_TEMPLATE": "upload_url_template",
            "FETCH_CONCURRENCY": "fetch_concurrency",
            "PUBLISH_SINK": "publish_sink",
            "GCS_BUCKET": "gcs_bucket",
        }
        for var, field in mapping.items():
            if env.get(var):
                values[field] = env[var]
        if "DELETE_LOCAL_AFTER_UPLOAD" in env:
            values["delete_local_after_publish"] = (
                env["DELETE_LOCAL_AFTER_UPLOAD"].strip().lower() == "true"
            )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
