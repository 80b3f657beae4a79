import json
from pathlib import Path

import pytest

from health_agent.config import build_rule_registry, build_services
from health_agent.config import settings as settings_module
from health_agent.core.env import get_bool_env, get_float_env, get_int_env, get_str_env
from health_agent.core.errors import RuleSetError
from health_agent.pipelines import PipelineController, PipelineSettings
from health_agent.services.analytics import JsonlAnalyticsSink
from health_agent.services.llm import BaseLLMModel, LlamaCppConfig, LlamaCppService


class EchoLLM(BaseLLMModel):
    def generate(self, prompt, options=None):
        return "ok"


def test_pipeline_settings_defaults_without_env(monkeypatch):
    for name in ("HEALTH_AGENT_EMERGENCY_THRESHOLD", "HEALTH_AGENT_MAX_ATTEMPTS", "HEALTH_AGENT_LANGUAGES"):
        monkeypatch.delenv(name, raising=False)

    settings = PipelineSettings.from_env()

    assert settings.emergency_confidence_threshold == 0.7
    assert settings.max_generation_attempts == 3
    assert settings.supported_languages == ("en", "es")
    assert settings.reject_concurrent_turns is False


def test_pipeline_settings_read_env(monkeypatch):
    monkeypatch.setenv("HEALTH_AGENT_EMERGENCY_THRESHOLD", "0.8")
    monkeypatch.setenv("HEALTH_AGENT_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("HEALTH_AGENT_TURN_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("HEALTH_AGENT_LANGUAGES", " EN, es ,")
    monkeypatch.setenv("HEALTH_AGENT_REJECT_CONCURRENT_TURNS", "yes")
    monkeypatch.setenv("HEALTH_AGENT_UPSTREAM_BACKOFF_SECONDS", "0")
    monkeypatch.setenv("HEALTH_AGENT_SESSION_SWEEP_SECONDS", "15")

    settings = PipelineSettings.from_env()

    assert settings.emergency_confidence_threshold == 0.8
    assert settings.max_generation_attempts == 5
    assert settings.turn_timeout_s == 2.5
    assert settings.supported_languages == ("en", "es")
    assert settings.reject_concurrent_turns is True
    assert settings.upstream_backoff_s == 0.0
    assert settings.session_sweep_interval_s == 15.0


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("HEALTH_AGENT_MAX_ATTEMPTS", "0"),
        ("HEALTH_AGENT_MAX_ATTEMPTS", "three"),
        ("HEALTH_AGENT_ATTEMPT_TIMEOUT_SECONDS", "-1"),
        ("HEALTH_AGENT_REJECT_CONCURRENT_TURNS", "maybe"),
        ("HEALTH_AGENT_EMERGENCY_THRESHOLD", "1.5"),
    ],
)
def test_pipeline_settings_reject_bad_env(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        PipelineSettings.from_env()


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("X_FLOAT", "0")
    monkeypatch.setenv("X_STR", "   ")
    monkeypatch.delenv("X_MISSING", raising=False)

    assert get_float_env("X_FLOAT", 1.0, allow_zero=True) == 0.0
    with pytest.raises(ValueError, match="X_FLOAT"):
        get_float_env("X_FLOAT", 1.0)
    assert get_int_env("X_MISSING", 4) == 4
    assert get_int_env("X_MISSING", -1, min_value=-1) == -1
    with pytest.raises(ValueError, match="X_MISSING must be at least 0"):
        get_int_env("X_MISSING", -1, min_value=0)
    assert get_bool_env("X_MISSING", True) is True
    assert get_str_env("X_STR", "fallback") == "fallback"
    assert get_str_env("X_MISSING") is None


def test_build_rule_registry_applies_file_override(tmp_path):
    path = tmp_path / "emergency.json"
    path.write_text(
        json.dumps(
            {
                "name": "emergency",
                "version": "2099.1",
                "levels": ["immediate", "urgent", "soon"],
                "rules": [
                    {"id": "r1", "kind": "phrase", "value": "cannot move", "category": "other", "level": "urgent"}
                ],
            }
        ),
        encoding="utf-8",
    )

    registry = build_rule_registry(PipelineSettings(emergency_rules_path=str(path)))

    assert registry.versions() == ["emergency@2099.1", "content@2024.06.1", "topics@2024.06.1"]


def test_build_rule_registry_rejects_mismatched_override(tmp_path):
    path = tmp_path / "content.json"
    path.write_text(
        json.dumps(
            {
                "name": "emergency",
                "version": "1",
                "levels": ["high"],
                "rules": [{"id": "r1", "kind": "keyword", "value": "x", "category": "c", "level": "high"}],
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="expected 'content'"):
        build_rule_registry(PipelineSettings(content_rules_path=str(path)))


def test_build_rule_registry_missing_file(tmp_path):
    with pytest.raises(RuleSetError):
        build_rule_registry(PipelineSettings(topic_rules_path=str(tmp_path / "nope.json")))


def test_build_services_wires_controller():
    llm = EchoLLM()
    services = build_services(PipelineSettings(session_expiry_s=60), llm)

    controller = services["controller"]
    assert isinstance(controller, PipelineController)
    assert controller.gateway.llm is llm
    assert controller.registry is services["registry"]
    assert services["sessions"].expiry_window.total_seconds() == 60


def test_unsupported_llm_service_is_rejected():
    with pytest.raises(ValueError, match="Unsupported LLM service"):
        settings_module._build_llm("openai")


def test_build_services_uses_jsonl_sink_when_path_configured(tmp_path):
    services = build_services(
        PipelineSettings(analytics_path=str(tmp_path / "records.jsonl")),
        EchoLLM(),
    )

    assert isinstance(services["analytics"], JsonlAnalyticsSink)
    assert services["audit"].sink is services["analytics"]


def test_build_services_sizes_prompt_budget_from_llamacpp_config():
    config = LlamaCppConfig(
        gguf_path=Path("model.gguf"),
        n_ctx=8192,
        max_new_tokens=200,
        context_margin=32,
    )
    llm = LlamaCppService(config=config, client=lambda prompt, **kwargs: {"choices": [{"text": "ok"}]})

    gateway = build_services(PipelineSettings(), llm)["gateway"]

    assert (gateway.n_ctx, gateway.max_new_tokens, gateway.context_margin) == (8192, 200, 32)


def test_build_services_keeps_default_budget_for_other_models():
    gateway = build_services(PipelineSettings(), EchoLLM())["gateway"]

    assert (gateway.n_ctx, gateway.max_new_tokens, gateway.context_margin) == (4096, 320, 64)
