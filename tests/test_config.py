"""Tests for environment-driven configuration."""

import pytest

from liberator.core.config import LiberatorConfig
from liberator.core.exceptions import ConfigurationError, InvalidConfigError, MissingConfigError

ENV_VARS = (
    "LIBERATOR_HOST",
    "LIBERATOR_PORT",
    "LIBERATOR_STORE",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "LIBERATOR_ARCHIVE_BUCKET",
    "LIBERATOR_MAX_CONCURRENT_JOBS",
    "LIBERATOR_JOB_RETENTION_SECONDS",
    "LIBERATOR_ARCHIVE_RETENTION_SECONDS",
    "LIBERATOR_MAX_UPLOAD_BYTES",
    "LIBERATOR_RATE_LIMIT_CALLS",
    "LIBERATOR_RATE_LIMIT_PERIOD",
    "LIBERATOR_ENABLE_JOB_LISTING",
    "LIBERATOR_LOG_LEVEL",
    "LIBERATOR_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLiberatorConfig:
    def test_defaults(self):
        config = LiberatorConfig.from_env()
        assert config.port == 3001
        assert config.store_backend == "memory"
        assert config.max_concurrent_jobs == 4
        assert config.job_retention_seconds == 3600
        assert config.enable_job_listing is False
        assert config.has_supabase is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LIBERATOR_PORT", "8080")
        monkeypatch.setenv("LIBERATOR_MAX_CONCURRENT_JOBS", "2")
        monkeypatch.setenv("LIBERATOR_RATE_LIMIT_PERIOD", "30.5")
        monkeypatch.setenv("LIBERATOR_ENABLE_JOB_LISTING", "yes")
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "secret")

        config = LiberatorConfig.from_env()
        assert config.port == 8080
        assert config.max_concurrent_jobs == 2
        assert config.rate_limit_period == 30.5
        assert config.enable_job_listing is True
        assert config.has_supabase is True
        assert config.store_backend == "memory"

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("LIBERATOR_PORT", "eighty")
        with pytest.raises(InvalidConfigError, match="LIBERATOR_PORT"):
            LiberatorConfig.from_env()

    def test_zero_workers_rejected(self, monkeypatch):
        monkeypatch.setenv("LIBERATOR_MAX_CONCURRENT_JOBS", "0")
        with pytest.raises(InvalidConfigError):
            LiberatorConfig.from_env()

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("LIBERATOR_STORE", "redis")
        with pytest.raises(InvalidConfigError, match="redis"):
            LiberatorConfig.from_env()

    def test_supabase_backend_requires_credentials(self, monkeypatch):
        monkeypatch.setenv("LIBERATOR_STORE", "supabase")
        with pytest.raises(MissingConfigError):
            LiberatorConfig.from_env()

    def test_archive_must_not_outlive_job(self):
        with pytest.raises(InvalidConfigError, match="archive_retention_seconds"):
            LiberatorConfig(job_retention_seconds=60, archive_retention_seconds=120)

    def test_errors_share_base_class(self):
        with pytest.raises(ConfigurationError):
            LiberatorConfig(store_backend="nope")

    def test_summary_hides_secrets(self):
        config = LiberatorConfig(supabase_url="https://x.supabase.co", supabase_key="secret")
        summary = config.summary()
        assert summary["durable_records"] is True
        assert "secret" not in str(summary)
