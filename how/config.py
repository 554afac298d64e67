from __future__ import annotations

import json
import os
import shlex
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore


PROVIDERS = ("anthropic", "openai", "ollama", "command")

DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "anthropic",
    "system_prompt": "",
    "anthropic": {
        "api_key": "",
        "model": "claude-sonnet-4-5-20250929",
    },
    "openai": {
        "api_key": "",
        "model": "gpt-4o",
    },
    "ollama": {
        "model": "llama3",
        "url": "http://localhost:11434/v1",
    },
    "command": {
        "command": "",
        "timeout_seconds": 120,
    },
    "memory": {
        "enabled": True,
        "search_limit": 10,
        "list_limit": 20,
        "timeout_seconds": 5.0,
    },
}


class ConfigError(Exception):
    """Raised when the config file cannot be read, parsed or written."""


@dataclass
class AnthropicConfig:
    api_key: str = ""
    model: str = DEFAULT_CONFIG["anthropic"]["model"]


@dataclass
class OpenAIConfig:
    api_key: str = ""
    model: str = DEFAULT_CONFIG["openai"]["model"]


@dataclass
class OllamaConfig:
    model: str = DEFAULT_CONFIG["ollama"]["model"]
    url: str = DEFAULT_CONFIG["ollama"]["url"]


@dataclass
class CommandConfig:
    command: str = ""
    timeout_seconds: int = DEFAULT_CONFIG["command"]["timeout_seconds"]

    @property
    def argv(self) -> Optional[List[str]]:
        cmd_raw = self.command.strip()
        return shlex.split(cmd_raw) if cmd_raw else None


@dataclass
class MemoryConfig:
    enabled: bool = True
    search_limit: int = DEFAULT_CONFIG["memory"]["search_limit"]
    list_limit: int = DEFAULT_CONFIG["memory"]["list_limit"]
    timeout_seconds: float = DEFAULT_CONFIG["memory"]["timeout_seconds"]


@dataclass
class AppConfig:
    base_dir: Path
    config_path: Path
    log_path: Path
    provider: str = DEFAULT_CONFIG["provider"]
    system_prompt: str = ""
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    command: CommandConfig = field(default_factory=CommandConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)


def base_dir() -> Path:
    """Application directory: $HOW_HOME, else ~/.config/how."""
    return Path(os.environ.get("HOW_HOME", Path.home() / ".config" / "how"))


def config_path() -> Path:
    return base_dir() / "config.toml"


def _ensure_base_dir() -> Path:
    root = base_dir()
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"creating config directory {root}: {exc}") from exc
    return root


def default_config() -> AppConfig:
    root = base_dir()
    return AppConfig(
        base_dir=root,
        config_path=root / "config.toml",
        log_path=root / "how.log",
    )


def _load_config(path: Path) -> dict:
    if not path.exists():
        return DEFAULT_CONFIG
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"parsing config {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"reading config {path}: {exc}") from exc


def _section(data: dict, name: str) -> dict:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _str(section: dict, key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string, got {value!r}")
    return value


def _int(section: dict, key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return value


def _float(section: dict, key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    return float(value)


def load_config() -> AppConfig:
    """Read config.toml (defaults when absent) and apply env overrides."""
    cfg = default_config()
    data = _load_config(cfg.config_path)

    provider = _str(data, "provider", DEFAULT_CONFIG["provider"]).strip().lower()
    if provider not in PROVIDERS:
        raise ConfigError(
            f"unknown provider {provider!r} (expected one of: {', '.join(PROVIDERS)})"
        )
    cfg.provider = provider
    cfg.system_prompt = _str(data, "system_prompt", "")

    anthropic = _section(data, "anthropic")
    cfg.anthropic = AnthropicConfig(
        api_key=_str(anthropic, "api_key", ""),
        model=_str(anthropic, "model", AnthropicConfig.model),
    )
    openai = _section(data, "openai")
    cfg.openai = OpenAIConfig(
        api_key=_str(openai, "api_key", ""),
        model=_str(openai, "model", OpenAIConfig.model),
    )
    ollama = _section(data, "ollama")
    cfg.ollama = OllamaConfig(
        model=_str(ollama, "model", OllamaConfig.model),
        url=_str(ollama, "url", OllamaConfig.url),
    )
    command = _section(data, "command")
    cfg.command = CommandConfig(
        command=_str(command, "command", ""),
        timeout_seconds=_int(command, "timeout_seconds", CommandConfig.timeout_seconds),
    )
    memory = _section(data, "memory")
    enabled = memory.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"enabled must be true or false, got {enabled!r}")
    cfg.memory = MemoryConfig(
        enabled=enabled,
        search_limit=_int(memory, "search_limit", MemoryConfig.search_limit),
        list_limit=_int(memory, "list_limit", MemoryConfig.list_limit),
        timeout_seconds=_float(memory, "timeout_seconds", MemoryConfig.timeout_seconds),
    )

    # Environment variables take precedence over the config file.
    if os.environ.get("ANTHROPIC_API_KEY"):
        cfg.anthropic.api_key = os.environ["ANTHROPIC_API_KEY"]
    if os.environ.get("OPENAI_API_KEY"):
        cfg.openai.api_key = os.environ["OPENAI_API_KEY"]
    return cfg


def _toml_str(value: str) -> str:
    # JSON string escapes are a subset of TOML basic-string escapes.
    return json.dumps(value, ensure_ascii=False)


def render_config(cfg: AppConfig) -> str:
    template = textwrap.dedent(
        """
        # LLM backend: anthropic, openai, ollama or command.
        provider = {provider}

        # Replaces the built-in system prompt when non-empty. Replies must still
        # use the COMMAND: / EXPLANATION: format.
        system_prompt = {system_prompt}

        [anthropic]
        # ANTHROPIC_API_KEY overrides this value.
        api_key = {anthropic_key}
        model = {anthropic_model}

        [openai]
        # OPENAI_API_KEY overrides this value.
        api_key = {openai_key}
        model = {openai_model}

        [ollama]
        model = {ollama_model}
        url = {ollama_url}

        [command]
        # External program that receives the prompt as its last argument. Example:
        # command = "codex exec"
        command = {command}
        timeout_seconds = {command_timeout}

        [memory]
        # Remember commands you ran and feed similar ones back into the prompt.
        enabled = {memory_enabled}
        search_limit = {search_limit}
        list_limit = {list_limit}
        timeout_seconds = {memory_timeout}
        """
    ).strip()
    return template.format(
        provider=_toml_str(cfg.provider),
        system_prompt=_toml_str(cfg.system_prompt),
        anthropic_key=_toml_str(cfg.anthropic.api_key),
        anthropic_model=_toml_str(cfg.anthropic.model),
        openai_key=_toml_str(cfg.openai.api_key),
        openai_model=_toml_str(cfg.openai.model),
        ollama_model=_toml_str(cfg.ollama.model),
        ollama_url=_toml_str(cfg.ollama.url),
        command=_toml_str(cfg.command.command),
        command_timeout=int(cfg.command.timeout_seconds),
        memory_enabled="true" if cfg.memory.enabled else "false",
        search_limit=int(cfg.memory.search_limit),
        list_limit=int(cfg.memory.list_limit),
        memory_timeout=float(cfg.memory.timeout_seconds),
    ) + "\n"


def write_config(cfg: AppConfig) -> Path:
    """Write ``cfg`` to config.toml, readable by the owner only."""
    _ensure_base_dir()
    path = cfg.config_path
    try:
        path.write_text(render_config(cfg), encoding="utf-8")
        path.chmod(0o600)
    except OSError as exc:
        raise ConfigError(f"writing config {path}: {exc}") from exc
    return path


def init_config(force: bool = False) -> Optional[Path]:
    """Seed a default config file. Returns None if one exists and not forced."""
    cfg = default_config()
    if cfg.config_path.exists() and not force:
        return None
    return write_config(cfg)


def show_config() -> str:
    path = config_path()
    if not path.exists():
        return f"No config file found. Create one at: {path}"
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"reading config {path}: {exc}") from exc
    return f"Config file: {path}\n\n{content}"


__all__ = [
    "AppConfig",
    "ConfigError",
    "PROVIDERS",
    "default_config",
    "init_config",
    "load_config",
    "show_config",
    "write_config",
]
