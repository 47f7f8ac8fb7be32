"""Application configuration.

Environment Variables:
    CAPPROBE_DATA_DIR: Directory holding the cache, keys and quick list (default: ~/.llm-tabs)
    CAPPROBE_CACHE_PATH: Capability cache file (default: <data_dir>/model-capabilities.probed.json)
    CAPPROBE_KEYS_FILE: API keys JSON file (default: <data_dir>/keys.json)
    CAPPROBE_QUICK_LIST_PATH: Shared quick list file (default: <data_dir>/quick-list.json)
    CAPPROBE_TIMEOUT_MS: Per-request probe timeout in milliseconds (default: 15000)
    CAPPROBE_MAX_RETRIES: Image variant retries after the primary attempt (default: 2)
    CAPPROBE_RETRY_DELAY_MS: Delay between variant attempts (default: 500)
    CAPPROBE_SKIP_STREAMING_PROBE: Skip the streaming probe (default: true)
    CAPPROBE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
    CAPPROBE_LOG_DIR: Log directory path (default: ~/.llm-tabs/logs)
"""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from capprobe.services.probe.steps import ProbeConfig

DEFAULT_DATA_DIR = Path.home() / ".llm-tabs"
CACHE_FILE_NAME = "model-capabilities.probed.json"
KEYS_FILE_NAME = "keys.json"
QUICK_LIST_FILE_NAME = "quick-list.json"


class Settings(BaseSettings):
    """Application settings.

    All settings can be configured via environment variables with the
    CAPPROBE_ prefix. For example, CAPPROBE_TIMEOUT_MS=30000 doubles the
    default probe timeout.

    Logging is configured separately via CAPPROBE_LOG_LEVEL and
    CAPPROBE_LOG_DIR environment variables (see logging_config.py).
    """

    model_config = SettingsConfigDict(env_prefix="CAPPROBE_", extra="ignore")

    # Files
    data_dir: Path = DEFAULT_DATA_DIR
    cache_path: Path | None = None
    keys_file: Path | None = None
    quick_list_path: Path | None = None

    # Probe defaults
    timeout_ms: int = Field(default=15000, ge=1)
    max_retries: int = Field(default=2, ge=0)
    retry_delay_ms: int = Field(default=500, ge=0)
    skip_streaming_probe: bool = True

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        if self.cache_path is None:
            self.cache_path = self.data_dir / CACHE_FILE_NAME
        if self.keys_file is None:
            self.keys_file = self.data_dir / KEYS_FILE_NAME
        if self.quick_list_path is None:
            self.quick_list_path = self.data_dir / QUICK_LIST_FILE_NAME
        return self

    def probe_config(self, **overrides: object) -> ProbeConfig:
        """Build a ProbeConfig from these settings, applying overrides."""
        values: dict[str, object] = {
            "timeout_ms": self.timeout_ms,
            "max_retries": self.max_retries,
            "retry_delay_ms": self.retry_delay_ms,
            "skip_streaming_probe": self.skip_streaming_probe,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ProbeConfig.model_validate(values)


settings = Settings()
