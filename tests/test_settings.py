import pytest

from narration_sync.readalong.settings import EngineSettings
from narration_sync.utils.config import config


@pytest.fixture
def custom_config(monkeypatch, tmp_path):
    def load(yaml_text):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml_text, encoding="utf-8")
        monkeypatch.setenv("NARRATION_SYNC_CONFIG", str(path))
        config.reload()
        return config

    yield load
    monkeypatch.delenv("NARRATION_SYNC_CONFIG", raising=False)
    config.reload()


def test_defaults():
    settings = EngineSettings()
    assert settings.gap_penalty == 1.2
    assert settings.lookahead_window == 5
    assert settings.inter_chunk_pause == 0.5
    assert settings.transcription_mode == "missing"


@pytest.mark.parametrize("overrides", [
    {"transcription_mode": "sometimes"},
    {"on_chunk_failure": "retry"},
    {"chunk_unit": "words"},
    {"max_attempts": 0},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        EngineSettings(**overrides)


def test_from_config_reads_yaml(custom_config):
    cfg = custom_config(
        "transcription:\n"
        "  mode: off\n"
        "chunking:\n"
        "  max_size: 1200\n"
        "  unit: bytes\n"
        "processing:\n"
        "  on_chunk_failure: abort\n"
    )
    settings = EngineSettings.from_config(cfg)

    assert settings.transcription_mode == "off"
    assert settings.max_chunk_size == 1200
    assert settings.chunk_unit == "bytes"
    assert settings.on_chunk_failure == "abort"
    # Untouched sections keep their defaults
    assert settings.gap_penalty == 1.2
    assert settings.sample_rate == 24000


def test_provider_override_from_environment(custom_config, monkeypatch):
    cfg = custom_config("provider:\n  primary: elevenlabs\n")
    monkeypatch.setenv("NARRATION_PROVIDER", "Edge")
    assert EngineSettings.from_config(cfg).primary_provider == "edge"
