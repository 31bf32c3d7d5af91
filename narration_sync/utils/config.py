"""
Configuration loader for the narration sync engine.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class Config:
    """Configuration manager for narration and timing synchronization."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not self._config:
            self._load_config()

    def _get_project_root(self) -> Path:
        """Get the project root directory."""
        # Navigate up from narration_sync/utils to project root
        current = Path(__file__).resolve()
        return current.parent.parent.parent

    def _get_config_path(self) -> Path:
        """Resolve the settings file, honouring NARRATION_SYNC_CONFIG."""
        override = os.environ.get("NARRATION_SYNC_CONFIG")
        if override:
            return Path(override)
        return self._get_project_root() / "config" / "settings.yaml"

    def _load_config(self) -> None:
        """Load configuration from YAML file, layered over the defaults."""
        config_path = self._get_config_path()
        merged = self._get_defaults()

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            self._merge(merged, loaded)

        self._config = merged

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _get_defaults(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "provider": {
                "primary": "elevenlabs",
                "secondary": "edge",
                "voice": "isabel",
                "language": "es",
                "rate": 1.0,
                "model_id": "eleven_multilingual_v2",
            },
            "chunking": {
                "max_size": 4500,
                "unit": "chars",
            },
            "alignment": {
                "lookahead_window": 5,
                "similarity_high": 0.7,
                "similarity_low": 0.4,
                "gap_penalty": 1.2,
            },
            "timing": {
                "inter_chunk_pause": 0.5,
                "min_word_duration": 0.05,
            },
            "retry": {
                "max_attempts": 3,
                "base_delay": 1.0,
                "timeout": 600.0,
            },
            "transcription": {
                "mode": "missing",
                "model": "whisper-1",
            },
            "fallback": {
                "words_per_second": 2.0,
            },
            "accuracy": {
                "perfect": 0.9,
                "good": 0.7,
            },
            "processing": {
                "workers": 2,
                "on_chunk_failure": "fallback",
            },
            "pacing": {
                "learner_pauses": False,
            },
            "audio": {
                "sample_rate": 24000,
            },
            "logging": {
                "verbose": False,
            },
        }

    def reload(self) -> None:
        """Re-read the settings file (used after changing NARRATION_SYNC_CONFIG)."""
        self._load_config()

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            config.get("timing", "inter_chunk_pause") -> 0.5
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._get_project_root()

    @property
    def primary_provider(self) -> str:
        """Get the primary narration provider, honouring NARRATION_PROVIDER."""
        override = os.environ.get("NARRATION_PROVIDER")
        if override:
            return override.lower()
        return self.get("provider", "primary", default="elevenlabs")

    @property
    def secondary_provider(self) -> Optional[str]:
        """Get the provider tried after the primary is exhausted."""
        return self.get("provider", "secondary", default=None)

    @property
    def voice(self) -> str:
        """Get the default voice."""
        return self.get("provider", "voice", default="isabel")

    @property
    def language(self) -> str:
        """Get the narration language hint."""
        return self.get("provider", "language", default="es")

    @property
    def sample_rate(self) -> int:
        """Get the sample rate of the merged audio artifact."""
        return self.get("audio", "sample_rate", default=24000)

    @property
    def verbose(self) -> bool:
        """Check if debug output is enabled."""
        if os.environ.get("NARRATION_SYNC_DEBUG", "").lower() in ["1", "true", "yes"]:
            return True
        return bool(self.get("logging", "verbose", default=False))


# Singleton instance
config = Config()
