"""Shared fixtures."""

import pytest

from maestro.models.session import SessionState
from maestro.models.settings import RunConfig


@pytest.fixture
def run_config() -> RunConfig:
    return RunConfig(api_key="test-key", model="claude-test", max_tokens=1024, system_prompt="You are a test.")


@pytest.fixture
def session() -> SessionState:
    state = SessionState(session_id="session-1")
    state.append_user_text("list files in /tmp")
    return state
