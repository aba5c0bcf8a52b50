"""Configuration loading utilities for the chat backend.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable CHAT_BACKEND_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``CHAT_BACKEND__`` (e.g., CHAT_BACKEND__PROVIDER__TIMEOUT=10), and the flat
variables the original deployment used (GEMINI_API_KEY, AI_MODEL, PORT,
API_BASE_URL, CHAT_DB_PATH). A ``.env`` file in the working directory is
loaded first.

The parsed dict is turned into a frozen :class:`Settings` once at startup and
handed to the components that need it.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {"port": 3001, "api_base_url": None, "cors_origins": ["*"]},
    "provider": {
        "api_key": None,
        "model": "gemini-pro",
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "timeout": 30.0,
        "temperature": 0.7,
        "max_output_tokens": 500,
    },
    "storage": {"db_path": "data/chat.db"},
    "context": {"window_size": 10},
    "logging": {"level": "INFO"},
}

# Flat variables -> (section, key)
_FLAT_ENV = {
    "GEMINI_API_KEY": ("provider", "api_key"),
    "AI_MODEL": ("provider", "model"),
    "PORT": ("server", "port"),
    "API_BASE_URL": ("server", "api_base_url"),
    "CHAT_DB_PATH": ("storage", "db_path"),
}


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply flat variables, then prefixed CHAT_BACKEND__ overrides."""
    for var, (section, key) in _FLAT_ENV.items():
        value = os.environ.get(var, "").strip()
        if value:
            cfg.setdefault(section, {})[key] = value

    prefix = "CHAT_BACKEND__"
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        # e.g., CHAT_BACKEND__PROVIDER__TIMEOUT -> cfg["provider"]["timeout"]
        parts = key[len(prefix):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def load_config(path: str | None = None, *, use_dotenv: bool = True) -> Dict[str, Any]:
    """Load YAML configuration for the chat backend.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``CHAT_BACKEND_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.
    use_dotenv : bool
        Load a ``.env`` file before reading the environment.

    Returns
    -------
    Dict[str, Any]
        Defaults merged with the file contents and environment overrides.
    """
    if use_dotenv:
        load_dotenv()

    if path is None:
        path = os.environ.get("CHAT_BACKEND_CONFIG", "config/default.yaml")

    cfg = copy.deepcopy(DEFAULT_CONFIG)
    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(cfg)

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(cfg, loaded))


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once from the loaded config."""

    api_key: Optional[str] = None
    model: str = "gemini-pro"
    provider_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    provider_timeout: float = 30.0
    temperature: float = 0.7
    max_output_tokens: int = 500
    port: int = 3001
    api_base_url: str = "http://localhost:3001"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    db_path: str = "data/chat.db"
    window_size: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Settings":
        server = cfg.get("server") or {}
        provider = cfg.get("provider") or {}
        storage = cfg.get("storage") or {}
        context = cfg.get("context") or {}

        port = int(server.get("port") or 3001)
        api_key = str(provider.get("api_key") or "").strip() or None
        return cls(
            api_key=api_key,
            model=str(provider.get("model") or "gemini-pro"),
            provider_base_url=str(provider.get("base_url") or cls.provider_base_url).rstrip("/"),
            provider_timeout=float(provider.get("timeout") or 30.0),
            temperature=float(0.7 if provider.get("temperature") is None else provider["temperature"]),
            max_output_tokens=int(provider.get("max_output_tokens") or 500),
            port=port,
            api_base_url=str(server.get("api_base_url") or f"http://localhost:{port}"),
            cors_origins=list(server.get("cors_origins") or ["*"]),
            db_path=str(storage.get("db_path") or "data/chat.db"),
            window_size=max(0, int(10 if context.get("window_size") is None else context["window_size"])),
            log_level=str((cfg.get("logging") or {}).get("level") or "INFO").upper(),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def public_dict(self) -> Dict[str, Any]:
        """Settings safe to hand to clients (API key redacted)."""
        out = asdict(self)
        out.pop("api_key", None)
        out["has_api_key"] = self.has_credentials
        return out


def load_settings(path: str | None = None) -> Settings:
    """Shortcut for ``Settings.from_config(load_config(path))``."""
    return Settings.from_config(load_config(path))
