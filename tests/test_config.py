"""Settings from environment mappings."""

from pathlib import Path

import pytest

from mockupgen.config import Settings
from mockupgen.generator import DEFAULT_MODEL, GeminiMockupGenerator
from mockupgen.orchestrator import SlotOrchestrator


def test_defaults_when_env_is_empty():
    settings = Settings.from_env({})

    assert not settings.is_configured
    assert settings.api_key_status == "missing"
    assert settings.model == DEFAULT_MODEL
    assert settings.pacing_seconds == 1.0
    assert settings.max_upload_dimension == 1024
    assert settings.output_dir == Path("outputs")


def test_reads_every_variable():
    settings = Settings.from_env({
        "GEMINI_API_KEY": " secret-key ",
        "MOCKUP_MODEL": "gemini-test",
        "MOCKUP_PACING_SECONDS": "0.25",
        "MOCKUP_MAX_UPLOAD_DIMENSION": "512",
        "MOCKUP_OUTPUT_DIR": "/tmp/mockups",
        "TELEGRAM_BOT_TOKEN": "123:abc",
    })

    assert settings.api_key == "secret-key"
    assert settings.api_key_status == "present (length 10)"
    assert settings.model == "gemini-test"
    assert settings.pacing_seconds == 0.25
    assert settings.max_upload_dimension == 512
    assert settings.output_dir == Path("/tmp/mockups")
    assert settings.telegram_token == "123:abc"


def test_api_key_fallback():
    assert Settings.from_env({"API_KEY": "fallback"}).api_key == "fallback"
    assert Settings.from_env({"GEMINI_API_KEY": "main", "API_KEY": "fallback"}).api_key == "main"


@pytest.mark.parametrize(
    "env",
    [
        {"MOCKUP_PACING_SECONDS": "soon"},
        {"MOCKUP_MAX_UPLOAD_DIMENSION": "big"},
        {"MOCKUP_MAX_UPLOAD_DIMENSION": "0"},
    ],
)
def test_invalid_numbers_are_rejected(env):
    with pytest.raises(ValueError):
        Settings.from_env(env)


def test_builders_wire_settings_through():
    settings = Settings(api_key="k", model="m", pacing_seconds=0.0, max_upload_dimension=256)

    generator = settings.build_generator()
    orchestrator = settings.build_orchestrator(generator)

    assert isinstance(generator, GeminiMockupGenerator)
    assert generator.model == "m"
    assert generator.max_upload_dimension == 256
    assert isinstance(orchestrator, SlotOrchestrator)
    assert orchestrator.generator is generator
    assert orchestrator.pacing_seconds == 0.0
