"""Shared test fixtures for Trailkit."""
import pytest
from unittest.mock import AsyncMock

from config.settings import get_settings, reset_settings
from context.session import Session
from models.schemas import Message, ModelOutput
from sources.llm import CallCounter


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Every test starts from default settings and fresh call counters."""
    monkeypatch.setenv("TRAILKIT_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("TRAILKIT_DEBUG", raising=False)
    monkeypatch.delenv("TRAILKIT_MAX_LLM_CALLS", raising=False)
    reset_settings()
    CallCounter.reset_all()
    yield
    reset_settings()


@pytest.fixture
def debug_mode():
    """Turn on the LLM call-count governor for one test."""
    settings = get_settings()
    settings.debug = True
    return settings


@pytest.fixture
def empty_session() -> Session:
    return Session.create()


@pytest.fixture
def ada_session() -> Session:
    """A short conversation about a user named Ada."""
    return Session.create(
        messages=[
            Message.system("You are a helpful tutor."),
            Message.user("Hi, I'm Ada."),
        ],
        vars={"name": "Ada", "turns": 1},
    )


@pytest.fixture
def scripted_generate():
    """Build an AsyncMock generate() that replies with the given contents in order."""
    def build(*replies):
        outputs = [r if isinstance(r, (ModelOutput, Exception)) else ModelOutput(content=r) for r in replies]
        return AsyncMock(side_effect=outputs)
    return build
