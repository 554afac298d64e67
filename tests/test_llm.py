"""Tests for llm.py - provider selection and the external command backend."""

import subprocess
from types import SimpleNamespace

import pytest

from how.config import default_config
from how.llm import (
    AnthropicProvider,
    CommandProvider,
    LLMError,
    OllamaProvider,
    OpenAIProvider,
    new_provider,
)


class TestNewProvider:
    def test_unknown_provider(self):
        cfg = default_config()
        cfg.provider = "unknown-provider"
        with pytest.raises(LLMError, match="unknown provider"):
            new_provider(cfg)

    def test_anthropic_requires_key(self):
        cfg = default_config()
        with pytest.raises(LLMError, match="API key"):
            new_provider(cfg)

    def test_openai_requires_key(self):
        cfg = default_config()
        cfg.provider = "openai"
        with pytest.raises(LLMError, match="API key"):
            new_provider(cfg)

    def test_anthropic_with_key(self):
        cfg = default_config()
        cfg.anthropic.api_key = "sk-test"
        assert isinstance(new_provider(cfg), AnthropicProvider)

    def test_openai_with_key(self):
        cfg = default_config()
        cfg.provider = "openai"
        cfg.openai.api_key = "sk-test"
        assert isinstance(new_provider(cfg), OpenAIProvider)

    def test_ollama_needs_no_key(self):
        cfg = default_config()
        cfg.provider = "ollama"
        provider = new_provider(cfg)
        assert isinstance(provider, OllamaProvider)
        assert provider.model == "llama3"

    def test_command_requires_command(self):
        cfg = default_config()
        cfg.provider = "command"
        with pytest.raises(LLMError, match="no command configured"):
            new_provider(cfg)

    def test_command_provider(self):
        cfg = default_config()
        cfg.provider = "command"
        cfg.command.command = "codex exec"
        provider = new_provider(cfg)
        assert isinstance(provider, CommandProvider)
        assert provider.argv == ["codex", "exec"]


class TestCompletions:
    def test_anthropic_joins_text_blocks(self, monkeypatch):
        cfg = default_config()
        cfg.anthropic.api_key = "sk-test"
        provider = AnthropicProvider(cfg.anthropic)
        calls = {}

        def create(**kwargs):
            calls.update(kwargs)
            return SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="COMMAND: ls\n"),
                    SimpleNamespace(type="text", text="EXPLANATION: list"),
                ]
            )

        monkeypatch.setattr(provider.client.messages, "create", create)

        assert provider.complete("system", "list files") == "COMMAND: ls\nEXPLANATION: list"
        assert calls["system"] == "system"
        assert calls["messages"] == [{"role": "user", "content": "list files"}]
        assert calls["max_tokens"] == 1024

    def test_openai_returns_first_choice(self, monkeypatch):
        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o")
        reply = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="COMMAND: pwd"))]
        )
        monkeypatch.setattr(provider.client.chat.completions, "create", lambda **kwargs: reply)

        assert provider.complete("system", "where am I") == "COMMAND: pwd"

    def test_openai_no_choices(self, monkeypatch):
        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o")
        monkeypatch.setattr(
            provider.client.chat.completions,
            "create",
            lambda **kwargs: SimpleNamespace(choices=[]),
        )
        with pytest.raises(LLMError, match="no choices"):
            provider.complete("system", "where am I")


class TestCommandProvider:
    def test_prompt_passed_as_last_argument(self):
        provider = CommandProvider(["echo"])
        assert provider.complete("SYSTEM", "question") == "SYSTEM\n\nquestion"

    def test_nonzero_exit(self):
        provider = CommandProvider(["sh", "-c", "echo boom >&2; exit 2", "sh"])
        with pytest.raises(LLMError, match="boom"):
            provider.complete("", "question")

    def test_missing_program(self):
        provider = CommandProvider(["definitely-not-a-real-program-xyz"])
        with pytest.raises(LLMError, match="not found"):
            provider.complete("", "question")

    def test_timeout(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise subprocess.TimeoutExpired(cmd=args[0], timeout=kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)
        provider = CommandProvider(["codex", "exec"], timeout=1)
        with pytest.raises(LLMError, match="timed out"):
            provider.complete("", "question")
