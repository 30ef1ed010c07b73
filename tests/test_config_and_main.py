import argparse
import json
import pytest
from pathlib import Path
from unittest.mock import patch

from nivuus_agent import main as main_module
from nivuus_agent.config import API_KEY_PLACEHOLDER, DEFAULT_MODEL, AgentConfig, load_config
from nivuus_agent.core.errors import classify_model_error, ModelAuthError, ModelRateLimitError, NetworkError

def namespace(**kwargs):
    base = dict(api_key=None, base_url=None, model=None, summary_model=None, config_dir=None, timeout_ms=None, debug=False)
    base.update(kwargs)
    return argparse.Namespace(**base)

def test_flag_beats_env(monkeypatch, tmp_path):
    monkeypatch.setenv("NIVUUS_MODEL", "env-model")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    cfg = load_config(namespace(model="flag-model", config_dir=str(tmp_path)))
    assert cfg.model == "flag-model"
    assert cfg.api_key == "sk-env"
    assert cfg.history_file == tmp_path / "conversation_history.json"

def test_defaults(monkeypatch):
    monkeypatch.delenv("NIVUUS_MODEL", raising=False)
    monkeypatch.setenv("NIVUUS_HOME", "/tmp/nivuus-home")
    cfg = load_config(namespace())
    assert cfg.model == DEFAULT_MODEL
    assert cfg.config_dir == Path("/tmp/nivuus-home")
    assert cfg.command_timeout_ms == 120000

def test_api_key_problem():
    assert AgentConfig(api_key=None).api_key_problem()
    assert AgentConfig(api_key=API_KEY_PLACEHOLDER).api_key_problem()
    assert AgentConfig(api_key="sk-real").api_key_problem() is None

def test_classify_model_error():
    assert classify_model_error(ModelAuthError("x", 401)) == ("System", "Model API Error: 401", True)
    assert classify_model_error(ModelRateLimitError("x", 429))[2] is False
    assert classify_model_error(NetworkError("x"))[0] == "Network"

def test_main_refuses_missing_key(monkeypatch, tmp_path):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert main_module.main(["--config-dir", str(tmp_path)]) == 1

def test_main_runs_loop_and_migrates(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    (tmp_path / "agent_memory.json").write_text(json.dumps({"system_info": {"os": "linux"}, "action_log": []}))
    captured = {}

    async def fake_run(loop):
        captured["loop"] = loop
        return 0

    with patch.object(main_module, "run_agent", fake_run), patch.object(main_module, "install_signal_handlers"):
        assert main_module.main(["--config-dir", str(tmp_path)]) == 0

    loop = captured["loop"]
    assert loop.transcript[0]["role"] == "system"
    assert loop.memory.get_value("system/info/os") == "linux"
    assert list(tmp_path.glob("agent_memory.json.backup-*"))

def test_main_flushes_on_uncaught_error(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    async def boom(loop):
        loop.transcript.append({"role": "user", "content": "unsaved"})
        raise RuntimeError("unexpected")

    with patch.object(main_module, "run_agent", boom), patch.object(main_module, "install_signal_handlers"):
        assert main_module.main(["--config-dir", str(tmp_path)]) == 1
    history = json.loads((tmp_path / "conversation_history.json").read_text())
    assert history[-1]["content"] == "unsaved"
