"""LLM backends that turn a question into a raw COMMAND/EXPLANATION reply."""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Protocol

import anthropic
import openai

from .config import AppConfig, AnthropicConfig, CommandConfig, OllamaConfig, OpenAIConfig

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024


class LLMError(Exception):
    """Provider could not be created or the completion request failed."""


class Provider(Protocol):
    def complete(self, system_prompt: str, question: str) -> str:
        ...


class AnthropicProvider:
    """Anthropic messages API."""

    def __init__(self, cfg: AnthropicConfig):
        if not cfg.api_key:
            raise LLMError(
                "anthropic API key not set (set ANTHROPIC_API_KEY or api_key under [anthropic] in config.toml)"
            )
        self.client = anthropic.Anthropic(api_key=cfg.api_key)
        self.model = cfg.model

    def complete(self, system_prompt: str, question: str) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": question}],
            )
        except anthropic.APIError as exc:
            raise LLMError(f"anthropic API error: {exc}") from exc

        parts = [block.text for block in response.content if block.type == "text"]
        return "".join(parts)


class OpenAIProvider:
    """Chat completions API; also serves OpenAI-compatible servers such as Ollama."""

    name = "openai"

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None):
        self.client = openai.OpenAI(api_key=api_key, base_url=base_url)
        self.model = model

    @classmethod
    def from_config(cls, cfg: OpenAIConfig) -> "OpenAIProvider":
        if not cfg.api_key:
            raise LLMError(
                "openai API key not set (set OPENAI_API_KEY or api_key under [openai] in config.toml)"
            )
        return cls(api_key=cfg.api_key, model=cfg.model)

    def complete(self, system_prompt: str, question: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": question},
                ],
            )
        except openai.OpenAIError as exc:
            raise LLMError(f"{self.name} API error: {exc}") from exc

        if not response.choices:
            raise LLMError(f"{self.name} returned no choices")
        return response.choices[0].message.content or ""


class OllamaProvider(OpenAIProvider):
    name = "ollama"

    @classmethod
    def from_config(cls, cfg: OllamaConfig) -> "OllamaProvider":
        # Ollama ignores the key but the client requires one.
        return cls(api_key="ollama", model=cfg.model, base_url=cfg.url)


class CommandProvider:
    """Runs an external program (e.g. ``codex exec``) with the prompt as last argument."""

    def __init__(self, argv: List[str], timeout: int = 120):
        self.argv = argv
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: CommandConfig) -> "CommandProvider":
        argv = cfg.argv
        if not argv:
            raise LLMError("no command configured (set command under [command] in config.toml)")
        return cls(argv, timeout=cfg.timeout_seconds)

    def complete(self, system_prompt: str, question: str) -> str:
        full_prompt = f"{system_prompt}\n\n{question}" if system_prompt else question
        cmd = [*self.argv, full_prompt]
        logger.debug("Running %s", self.argv)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise LLMError(f"{self.argv[0]} timed out after {self.timeout}s") from exc
        except FileNotFoundError as exc:
            raise LLMError(f"{self.argv[0]} not found") from exc

        if result.returncode != 0:
            raise LLMError(f"{self.argv[0]} failed: {result.stderr.strip()}")
        return result.stdout.strip()


def new_provider(cfg: AppConfig) -> Provider:
    """Create the backend selected by ``cfg.provider``."""
    if cfg.provider == "anthropic":
        return AnthropicProvider(cfg.anthropic)
    if cfg.provider == "openai":
        return OpenAIProvider.from_config(cfg.openai)
    if cfg.provider == "ollama":
        return OllamaProvider.from_config(cfg.ollama)
    if cfg.provider == "command":
        return CommandProvider.from_config(cfg.command)
    raise LLMError(f"unknown provider: {cfg.provider}")


__all__ = [
    "AnthropicProvider",
    "CommandProvider",
    "LLMError",
    "OllamaProvider",
    "OpenAIProvider",
    "Provider",
    "new_provider",
]
