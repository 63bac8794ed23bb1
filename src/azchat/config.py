"""
Configuration loading with layered precedence:
  1. Built-in defaults
  2. User-global:  ~/.config/azchat/config.toml
  3. Repo-local:   .azchat/config.toml
  4. Environment variables (a .env file is loaded first, if present)

Azure credentials usually come from the environment, using the same variable
names as the Azure OpenAI samples: ENDPOINT_URL, DEPLOYMENT_NAME,
AZURE_OPENAI_API_KEY and AZURE_OPENAI_API_VERSION.
"""

from __future__ import annotations

import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from .models import AzureSettings, CompletionParams
from .state import REPO_CONFIG_FILE, USER_CONFIG_FILE

DEFAULT_API_VERSION = "2024-05-01-preview"

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_CONFIG: dict[str, Any] = {
    "azure": {
        # Base address, e.g. https://my-resource.openai.azure.com/
        "endpoint": None,
        # Deployment name; also sent as the model name
        "deployment": None,
        "api_key": None,
        "api_version": DEFAULT_API_VERSION,
    },

    "completion": {
        "max_tokens": 800,
        "temperature": 0.7,
        "top_p": 0.95,
        "frequency_penalty": 0.0,
        "presence_penalty": 0.0,
        # None = no explicit stop sequence
        "stop": None,
    },

    "chat": {
        # Persona primer, always the first turn of the transcript
        "system_prompt": "You are a helpful AI assistant.",
        # Matched against the trimmed, case-folded input
        "exit_keywords": ["終了", "exit"],
        # Where conversation_log_*.txt files are written
        "log_dir": ".",
    },
}

# Environment variable → (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ENDPOINT_URL": ("azure", "endpoint"),
    "DEPLOYMENT_NAME": ("azure", "deployment"),
    "AZURE_OPENAI_API_KEY": ("azure", "api_key"),
    "AZURE_OPENAI_API_VERSION": ("azure", "api_version"),
}

_REQUIRED_AZURE_KEYS = ("endpoint", "deployment", "api_key")


class ConfigError(Exception):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.missing = missing or []


# ── Loader ────────────────────────────────────────────────────────────────────


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge `override` into `base`, returning a new dict."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _load_toml_file(path: Path) -> dict[str, Any]:
    """
    Load a TOML file into a dict.
    Returns {} if the file cannot be read or parsed.
    """
    try:
        with path.open("rb") as f:
            loaded = tomllib.load(f)
            return loaded if isinstance(loaded, dict) else {}
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _env_config(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_env_file() -> None:
    """Load a .env file from the current directory (or a parent), if any."""
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


def load_config(env: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """
    Return the merged configuration dict.
    Keys from higher-priority sources override lower ones (but nested dicts merge).
    Raises ConfigError if a known section is not a table (e.g. `chat = "x"`).
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # User-global config (lower priority)
    if USER_CONFIG_FILE.exists():
        config = _deep_merge(config, _load_toml_file(USER_CONFIG_FILE))

    # Repo-local config
    if REPO_CONFIG_FILE.exists():
        config = _deep_merge(config, _load_toml_file(REPO_CONFIG_FILE))

    # Environment (highest priority)
    config = _deep_merge(config, _env_config(os.environ if env is None else env))

    for section in DEFAULT_CONFIG:
        if not isinstance(config.get(section), dict):
            raise ConfigError(
                f"[{section}] must be a table, got {type(config.get(section)).__name__}"
            )

    return config


# ── Typed views ───────────────────────────────────────────────────────────────


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def require_azure_settings(config: dict[str, Any]) -> AzureSettings:
    """
    Validate the [azure] section. Raises ConfigError naming the environment
    variables that would supply whatever is missing.
    """
    azure = _section(config, "azure")
    env_names = {key: var for var, (_, key) in ENV_OVERRIDES.items()}
    missing = [env_names[k] for k in _REQUIRED_AZURE_KEYS if not azure.get(k)]
    if missing:
        raise ConfigError(
            "Azure OpenAI settings are missing: " + ", ".join(missing),
            missing=missing,
        )

    try:
        return AzureSettings(
            endpoint=azure["endpoint"],
            deployment=azure["deployment"],
            api_key=azure["api_key"],
            api_version=azure.get("api_version") or DEFAULT_API_VERSION,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid [azure] settings: {exc}") from exc


def completion_params(config: dict[str, Any]) -> CompletionParams:
    try:
        return CompletionParams.model_validate(_section(config, "completion"))
    except ValidationError as exc:
        raise ConfigError(f"Invalid [completion] settings: {exc}") from exc


def exit_keywords(config: dict[str, Any]) -> list[str]:
    raw = _section(config, "chat").get("exit_keywords") or DEFAULT_CONFIG["chat"]["exit_keywords"]
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, (list, tuple)):
        raw = DEFAULT_CONFIG["chat"]["exit_keywords"]
    return [str(k).strip() for k in raw if str(k).strip()]


def log_dir(config: dict[str, Any]) -> Path:
    return Path(str(_section(config, "chat").get("log_dir") or "."))


def system_prompt(config: dict[str, Any]) -> str:
    return str(_section(config, "chat").get("system_prompt") or DEFAULT_CONFIG["chat"]["system_prompt"])
