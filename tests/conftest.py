"""Shared test fixtures for the papareo test suite.

WHY: Most tests need a fresh fake API, a virtual clock, and a WAV file on
disk, and none of them may pick up a real PAPAREO_TOKEN.

HOW: Thin fixtures over tests/fakes.py plus one autouse fixture that
clears the token environment and process-level settings.

RULES:
- Token environment and process-level settings are cleared for every test
- Each test gets its own FakePapaReo and FakeClock
"""

import pytest

from papareo import config
from tests.fakes import FAKE_WAV, FakeClock, FakePapaReo


@pytest.fixture(autouse=True)
def _isolate_token(monkeypatch):
    """Keep real PAPAREO_TOKEN values (shell or .env) out of every test."""
    monkeypatch.delenv(config.TOKEN_ENV_VAR, raising=False)
    monkeypatch.setattr(config, "_process_settings", {})


@pytest.fixture
def server():
    return FakePapaReo()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wav_file(tmp_path):
    path = tmp_path / "korero.wav"
    path.write_bytes(FAKE_WAV)
    return path
