import pytest
from unittest.mock import MagicMock, AsyncMock

from nivuus_agent.config import AgentConfig
from nivuus_agent.core.prompts import build_system_prompt
from nivuus_agent.memory.persistence import JsonStorage
from nivuus_agent.memory.store import MemoryStore

@pytest.fixture
def memory():
    return MemoryStore(max_actions=30)

@pytest.fixture
def mock_ui():
    ui = MagicMock()
    ui.confirm = AsyncMock(return_value=True)
    ui.prompt_text = AsyncMock(return_value="quit")
    ui.prompt_choice = AsyncMock(return_value="quit")
    return ui

@pytest.fixture
def config(tmp_path):
    # No waiting between automatic retries in tests
    return AgentConfig(
        api_key="sk-test",
        config_dir=tmp_path / "config",
        retry_delay_s=0,
        rate_limit_delay_s=0,
        command_timeout_ms=5000,
    )

@pytest.fixture
def storage(config):
    config.config_dir.mkdir(parents=True, exist_ok=True)
    return JsonStorage(config.history_file, config.memory_file)

@pytest.fixture
def mock_llm():
    client = MagicMock()
    client.complete = AsyncMock(return_value={"role": "assistant", "content": "Test Response"})
    client.summarize = AsyncMock(return_value="Short summary")
    client.close = AsyncMock()
    return client

@pytest.fixture
def system_message():
    return {"role": "system", "content": build_system_prompt()}
