import inspect
from pathlib import Path

import pytest

from health_agent.services.llm.base import (
    GenerationOptions,
    LLMContextBudgetExceededError,
    LLMDecodeError,
    LLMGenerationError,
    apply_stop_sequences,
)
from health_agent.services.llm.llamacpp import LlamaCppConfig, LlamaCppService


def _service(client) -> LlamaCppService:
    config = LlamaCppConfig(gguf_path=Path("model.gguf"), n_ctx=2048, max_new_tokens=128)
    return LlamaCppService(config=config, client=client)


def test_llamacpp_accepts_generation_options_parameter():
    signature = inspect.signature(LlamaCppService.generate)
    assert "options" in signature.parameters


def test_llamacpp_forwards_stop_sequences_from_options():
    captured = {}

    def mock_client(prompt, **kwargs):
        captured["kwargs"] = kwargs
        return {"choices": [{"text": "answer\nUser: trailing"}]}

    service = _service(mock_client)
    options = GenerationOptions(stop=["\nUser:"], max_new_tokens=33, temperature=0.2)

    response = service.generate("prompt", options=options)

    assert captured["kwargs"]["stop"] == ["\nUser:"]
    assert captured["kwargs"]["max_tokens"] == 33
    assert captured["kwargs"]["temperature"] == 0.2
    assert response == "answer"


def test_llamacpp_caps_output_tokens_to_remaining_context():
    captured = {}

    def mock_client(prompt, **kwargs):
        captured["kwargs"] = kwargs
        return {"choices": [{"text": "ok"}]}

    service = _service(mock_client)
    # No tokenizer on the mock, so the estimate is len(prompt) // 4.
    prompt = "x" * 7600

    service.generate(prompt, options=GenerationOptions(max_new_tokens=500))

    assert captured["kwargs"]["max_tokens"] == 2048 - 1900 - 64


def test_llamacpp_uses_chat_completion_when_messages_provided():
    class ChatClient:
        def __call__(self, prompt, **kwargs):
            raise AssertionError("prompt completion path should not be called")

        def create_chat_completion(self, messages, **kwargs):
            assert messages[0]["role"] == "system"
            assert messages[-1]["content"] == "What is asthma?"
            return {"choices": [{"message": {"content": "Asthma affects the airways."}}]}

    service = _service(ChatClient())
    response = service.generate(
        "fallback prompt",
        options=GenerationOptions(
            max_new_tokens=64,
            messages=[
                {"role": "system", "content": "System prompt"},
                {"role": "user", "content": "What is asthma?"},
            ],
        ),
    )

    assert response == "Asthma affects the airways."


def test_llamacpp_maps_context_overflow_errors():
    def failing_client(*args, **kwargs):
        raise RuntimeError("Requested tokens (4097) exceed context window of 2048")

    service = _service(failing_client)

    with pytest.raises(LLMContextBudgetExceededError):
        service.generate("prompt", options=GenerationOptions(max_new_tokens=100))


def test_llamacpp_overflow_retry_keeps_the_full_prompt():
    prompts: list[str] = []
    max_tokens: list[int] = []

    def overflow_once(prompt, **kwargs):
        prompts.append(prompt)
        max_tokens.append(kwargs["max_tokens"])
        if len(prompts) == 1:
            raise RuntimeError("Requested tokens (2100) exceed context window of 2048")
        return {"choices": [{"text": "Asthma affects the airways."}]}

    service = _service(overflow_once)
    prompt = (
        "RULES:\n- Never tell the user what condition they have.\n"
        "YOUR PREVIOUS ANSWER WAS REJECTED. FOLLOW THESE EXTRA RULES:\n- Do not name doses.\n\n"
        + "User: earlier question\nAssistant: earlier answer\n" * 40
        + "User: What is asthma?\nAssistant:"
    )

    response = service.generate(prompt, options=GenerationOptions(max_new_tokens=128))

    assert response == "Asthma affects the airways."
    assert prompts == [prompt, prompt]
    assert max_tokens == [128, 64]


def test_llamacpp_maps_decode_failures():
    def failing_client(*args, **kwargs):
        raise RuntimeError("llama_decode returned -1")

    service = _service(failing_client)

    with pytest.raises(LLMDecodeError):
        service.generate("prompt", options=GenerationOptions(max_new_tokens=100))


def test_llamacpp_wraps_unknown_failures():
    def failing_client(*args, **kwargs):
        raise RuntimeError("backend exploded")

    service = _service(failing_client)

    with pytest.raises(LLMGenerationError, match="backend exploded"):
        service.generate("prompt")


def test_llamacpp_config_requires_model_path(monkeypatch):
    monkeypatch.delenv("LLAMACPP_GGUF_PATH", raising=False)

    with pytest.raises(ValueError, match="LLAMACPP_GGUF_PATH"):
        LlamaCppConfig.from_env()


def test_llamacpp_config_reads_env(monkeypatch, tmp_path):
    model_path = tmp_path / "model.gguf"
    model_path.write_bytes(b"")
    monkeypatch.setenv("LLAMACPP_GGUF_PATH", str(model_path))
    monkeypatch.setenv("LLAMACPP_N_CTX", "8192")
    monkeypatch.setenv("LLAMACPP_MAX_NEW_TOKENS", "256")

    config = LlamaCppConfig.from_env()

    assert config.gguf_path == model_path
    assert config.n_ctx == 8192
    assert config.max_new_tokens == 256


def test_llamacpp_config_rejects_non_integer(monkeypatch, tmp_path):
    model_path = tmp_path / "model.gguf"
    model_path.write_bytes(b"")
    monkeypatch.setenv("LLAMACPP_GGUF_PATH", str(model_path))
    monkeypatch.setenv("LLAMACPP_N_CTX", "lots")

    with pytest.raises(ValueError, match="LLAMACPP_N_CTX"):
        LlamaCppConfig.from_env()


def test_llamacpp_config_allows_auto_threads_and_all_gpu_layers(monkeypatch, tmp_path):
    model_path = tmp_path / "model.gguf"
    model_path.write_bytes(b"")
    monkeypatch.setenv("LLAMACPP_GGUF_PATH", str(model_path))
    monkeypatch.setenv("LLAMACPP_N_THREADS", "0")
    monkeypatch.setenv("LLAMACPP_GPU_LAYERS", "-1")
    monkeypatch.setenv("LLAMACPP_CONTEXT_MARGIN", "0")

    config = LlamaCppConfig.from_env()

    assert (config.n_threads, config.gpu_layers, config.context_margin) == (0, -1, 0)

    monkeypatch.setenv("LLAMACPP_GPU_LAYERS", "-2")
    with pytest.raises(ValueError, match="LLAMACPP_GPU_LAYERS must be at least -1"):
        LlamaCppConfig.from_env()


def test_apply_stop_sequences_cuts_at_earliest_stop():
    text = "First part</s> second\nUser: third"
    assert apply_stop_sequences(text, ["\nUser:", "</s>"]) == "First part"
    assert apply_stop_sequences(text, None) == text
