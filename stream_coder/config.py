"""
Configuration: settings from environment variables, a .stream_coder.yaml
file and built-in defaults, in that priority order.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Callable

import yaml

logger = logging.getLogger(__name__)


_DEFAULTS = {
    "provider": "anthropic",
    "model": "claude-sonnet-4-20250514",
    "max_tokens": 8192,
    "stream_timeout": 600.0,
    "connect_timeout": 10.0,
    "read_timeout": 120.0,
    "llm_max_retries": 3,
    "llm_retry_delay": 2.0,
    "anthropic_base_url": "https://api.anthropic.com/v1",
    "openai_base_url": "https://api.openai.com/v1",
    "openrouter_base_url": "https://openrouter.ai/api/v1",
    "openai_compatible_base_url": "http://localhost:1234/v1",
    "project_root": ".",
    "scratch_dir": "",
    "log_dir": ".stream_coder/logs",
    "log_level": "DEBUG",
    "edit_metrics": False,
    "max_tool_input_bytes": 50_000,
}

PROVIDERS = ("anthropic", "openai", "openrouter", "openai_compatible")

CONFIG_FILENAMES = (".stream_coder.yaml", ".stream_coder.yml")


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """An explicit path wins; otherwise the first config file in CWD, then home."""
    if explicit_path:
        return explicit_path if os.path.isfile(explicit_path) else None
    candidates = (os.path.join(directory, name)
                  for directory in (os.getcwd(), os.path.expanduser("~"))
                  for name in CONFIG_FILENAMES)
    return next((p for p in candidates if os.path.isfile(p)), None)


def _load_yaml(path: str) -> dict:
    """Parsed mapping from *path*; an unreadable or non-mapping file yields ``{}``."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("[Config] Could not read %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class Config:
    """Application configuration.

    Each setting comes from its environment variable, else the YAML key of
    the same name, else ``_DEFAULTS``.  Provider credentials live under a
    per-provider YAML section (``anthropic: {api_key, base_url}``) or the
    usual environment variables (``ANTHROPIC_API_KEY``, ``OPENAI_BASE_URL``,
    ...).
    """

    def __init__(self, yaml_data: dict | None = None):
        self._yaml = yaml_data or {}
        setting = self._setting

        self.PROVIDER = setting("STREAM_CODER_PROVIDER", "provider")
        if self.PROVIDER not in PROVIDERS:
            raise ValueError(f"Unknown provider '{self.PROVIDER}'. "
                             f"Choose one of: {', '.join(PROVIDERS)}")
        self.MODEL = setting("STREAM_CODER_MODEL", "model")
        self.MAX_TOKENS = setting("MAX_TOKENS", "max_tokens", int)

        # Streaming and retries
        self.STREAM_TIMEOUT = setting("STREAM_TIMEOUT", "stream_timeout", float)
        self.CONNECT_TIMEOUT = setting("CONNECT_TIMEOUT", "connect_timeout", float)
        self.READ_TIMEOUT = setting("READ_TIMEOUT", "read_timeout", float)
        self.LLM_MAX_RETRIES = setting("LLM_MAX_RETRIES", "llm_max_retries", int)
        self.LLM_RETRY_DELAY = setting("LLM_RETRY_DELAY", "llm_retry_delay", float)

        self._credentials: dict[str, tuple[str, str]] = {
            provider: self._provider_credentials(provider) for provider in PROVIDERS
        }

        # Editing
        self.PROJECT_ROOT = os.path.abspath(setting("STREAM_CODER_ROOT", "project_root"))
        self.SCRATCH_DIR = (setting("STREAM_CODER_SCRATCH_DIR", "scratch_dir")
                            or tempfile.gettempdir())
        self.EDIT_METRICS = setting("EDIT_METRICS", "edit_metrics", _to_bool)
        self.MAX_TOOL_INPUT_BYTES = setting("MAX_TOOL_INPUT_BYTES",
                                            "max_tool_input_bytes", int)

        # Logging
        self.LOG_DIR = setting("STREAM_CODER_LOG_DIR", "log_dir")
        self.LOG_LEVEL = setting("STREAM_CODER_LOG_LEVEL", "log_level").upper()

    def _setting(self, env_key: str, key: str, cast: Callable[[Any], Any] = str):
        raw = os.getenv(env_key)
        if raw is None:
            raw = self._yaml.get(key)
        if raw is None:
            return _DEFAULTS[key]
        return cast(raw)

    def _provider_credentials(self, provider: str) -> tuple[str, str]:
        section = self._yaml.get(provider)
        if not isinstance(section, dict):
            section = {}
        prefix = provider.upper()
        api_key = os.getenv(f"{prefix}_API_KEY") or section.get("api_key") or ""
        base_url = (os.getenv(f"{prefix}_BASE_URL") or section.get("base_url")
                    or _DEFAULTS[f"{provider}_base_url"])
        return str(api_key), str(base_url)

    def credentials(self, provider: str | None = None) -> tuple[str, str]:
        """``(api_key, base_url)`` for *provider* (default: the configured one)."""
        return self._credentials[provider or self.PROVIDER]

    def create_client(self):
        """Build the streaming client for the configured provider."""
        from .llm import (
            AnthropicClient,
            OpenAIClient,
            OpenAICompatibleClient,
            OpenRouterClient,
        )

        classes = {
            "anthropic": AnthropicClient,
            "openai": OpenAIClient,
            "openrouter": OpenRouterClient,
            "openai_compatible": OpenAICompatibleClient,
        }
        api_key, base_url = self.credentials()
        logger.debug("[Config] Creating %s client for %s", self.PROVIDER, self.MODEL)
        return classes[self.PROVIDER](
            base_url=base_url,
            model=self.MODEL,
            api_key=api_key,
            max_retries=self.LLM_MAX_RETRIES,
            retry_delay=self.LLM_RETRY_DELAY,
            stream_timeout=self.STREAM_TIMEOUT,
            connect_timeout=self.CONNECT_TIMEOUT,
            read_timeout=self.READ_TIMEOUT,
            max_tokens=self.MAX_TOKENS,
        )

    def create_edit_tools(self):
        """Edit tools rooted at ``PROJECT_ROOT``."""
        from .editing import AtomicApplier, EditEngine, EditTools

        engine = EditEngine(self.PROJECT_ROOT, record_metrics=self.EDIT_METRICS)
        return EditTools(engine, AtomicApplier(self.SCRATCH_DIR),
                         max_input_bytes=self.MAX_TOOL_INPUT_BYTES)

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Config from the YAML file (if any), environment and defaults."""
        path = _find_config_file(config_path)
        return cls(_load_yaml(path) if path else {})
