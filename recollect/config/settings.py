"""Load one explicit, immutable Config from environment, TOML layers, and defaults.

Per key, the first non-empty value wins: environment (after ``.env`` is loaded
with python-dotenv), then the merged TOML layers, then the built-in default.
TOML layers, later overriding earlier:

1. ``~/.config/recollect/config.toml``
2. ``~/.recollect/config.toml``
3. ``$RECOLLECT_CONFIG``

Example TOML::

    [store]
    url = "http://localhost:8001"
    token = "..."

    [extract]
    auto = true
    min_turns = 3

    [batch]
    command = "pi --mode text -p @{prompt_file}"
    timeout = 90
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, TypeVar

from dotenv import load_dotenv

from recollect.errors import ConfigurationError

T = TypeVar("T")

DEFAULT_STORE_URL = "http://localhost:8001"
DEFAULT_STORE_TIMEOUT = 30.0
DEFAULT_MIN_TURNS = 3
DEFAULT_AGENT_DIR = Path.home() / ".pi" / "agent"
DEFAULT_SESSIONS_DIR = DEFAULT_AGENT_DIR / "sessions"
DEFAULT_LEDGER_PATH = DEFAULT_AGENT_DIR / "automem-processed-sessions.log"
DEFAULT_EXTRACT_COMMAND = (
    "pi --provider google-antigravity --model gemini-3-flash "
    "--thinking high --mode text -p @{prompt_file}"
)
DEFAULT_BATCH_MAX_CHARS = 15000
DEFAULT_BATCH_TIMEOUT = 90.0
DEFAULT_LIVE_MAX_CHARS = 30000
DEFAULT_LIVE_TIMEOUT = 60.0
DEFAULT_LM_PROVIDER = "openrouter"
DEFAULT_LM_MODEL = "anthropic/claude-haiku-4.5"

DEFAULT_XDG_CONFIG_PATH = Path.home() / ".config" / "recollect" / "config.toml"
DEFAULT_USER_CONFIG_PATH = Path.home() / ".recollect" / "config.toml"

_TRUTHY = {"1", "true", "yes", "on"}
_sources: list[dict[str, str]] = []


def read_toml(path: Path) -> dict[str, Any]:
    """Return the TOML table at ``path``; unreadable or invalid files count as empty."""
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _overlay(lower: dict[str, Any], upper: dict[str, Any]) -> dict[str, Any]:
    """Merge ``upper`` onto ``lower`` table by table."""
    result = dict(lower)
    for key, value in upper.items():
        below = result.get(key)
        result[key] = _overlay(below, value) if isinstance(below, dict) and isinstance(value, dict) else value
    return result


def _layer_paths() -> list[tuple[str, Path]]:
    layers = [("xdg_user", DEFAULT_XDG_CONFIG_PATH), ("user_override", DEFAULT_USER_CONFIG_PATH)]
    explicit = os.getenv("RECOLLECT_CONFIG")
    if explicit:
        layers.append(("explicit", Path(explicit).expanduser()))
    return layers


def get_config_sources() -> list[dict[str, str]]:
    """Return the TOML files that contributed to the last loaded config."""
    return [dict(item) for item in _sources]


def _to_int(raw: Any) -> int:
    return int(raw)


def _to_float(raw: Any) -> float:
    return float(raw)


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in _TRUTHY


def _to_path(raw: Any) -> Path:
    return Path(str(raw)).expanduser()


def _to_text(raw: Any) -> str:
    return str(raw).strip()


class _Resolver:
    """Look up one setting in env, then TOML, and convert it, falling back on bad input."""

    def __init__(self, table: dict[str, Any]) -> None:
        self.table = table

    def raw(self, env_key: str, toml_path: str) -> Any:
        from_env = os.getenv(env_key)
        if from_env not in (None, ""):
            return from_env
        node: Any = self.table
        for part in toml_path.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return None if node == "" else node

    def get(self, env_key: str, toml_path: str, convert: Callable[[Any], T], default: T) -> T:
        value = self.raw(env_key, toml_path)
        if value is None:
            return default
        try:
            return convert(value)
        except (TypeError, ValueError):
            return default

    def optional(self, env_key: str, toml_path: str) -> str | None:
        value = self.raw(env_key, toml_path)
        text = _to_text(value) if value is not None else ""
        return text or None


@dataclass(frozen=True)
class Config:
    store_url: str
    store_token: str | None
    store_timeout: float

    auto_extract: bool
    min_turns: int

    sessions_dir: Path
    ledger_path: Path

    extract_command: str
    batch_max_chars: int
    batch_timeout: float
    live_max_chars: int
    live_timeout: float

    lm_provider: str
    lm_model: str
    lm_api_base: str | None = None
    lm_api_key: str | None = None

    def require_store_token(self) -> str:
        """Return the store credential or fail before any work starts."""
        if not self.store_token:
            raise ConfigurationError("AUTOMEM_TOKEN not set")
        return self.store_token

    def require_lm_api_key(self) -> str | None:
        """Return the model credential when the configured provider needs one."""
        if self.lm_provider == "openrouter" and not self.lm_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is required when RECOLLECT_LM_PROVIDER=openrouter")
        return self.lm_api_key

    def public_dict(self) -> dict[str, Any]:
        """Return a serializable snapshot with credentials reduced to booleans."""
        return {
            "store_url": self.store_url,
            "store_token_set": bool(self.store_token),
            "store_timeout": self.store_timeout,
            "auto_extract": self.auto_extract,
            "min_turns": self.min_turns,
            "sessions_dir": str(self.sessions_dir),
            "ledger_path": str(self.ledger_path),
            "extract_command": self.extract_command,
            "batch_max_chars": self.batch_max_chars,
            "batch_timeout": self.batch_timeout,
            "live_max_chars": self.live_max_chars,
            "live_timeout": self.live_timeout,
            "lm_provider": self.lm_provider,
            "lm_model": self.lm_model,
            "lm_api_base": self.lm_api_base,
            "lm_api_key_set": bool(self.lm_api_key),
        }


@lru_cache(maxsize=1)
def load_config() -> Config:
    """Resolve every setting once; call ``reload_config`` to pick up changes."""
    load_dotenv()

    global _sources
    table: dict[str, Any] = {}
    sources: list[dict[str, str]] = []
    for label, path in _layer_paths():
        layer = read_toml(path)
        if layer:
            table = _overlay(table, layer)
            sources.append({"source": label, "path": str(path)})
    _sources = sources

    env = _Resolver(table)
    lm_provider = (env.optional("RECOLLECT_LM_PROVIDER", "live.provider") or DEFAULT_LM_PROVIDER).lower()

    return Config(
        store_url=env.get("AUTOMEM_URL", "store.url", _to_text, DEFAULT_STORE_URL).rstrip("/"),
        store_token=env.optional("AUTOMEM_TOKEN", "store.token"),
        store_timeout=max(1.0, env.get("AUTOMEM_TIMEOUT", "store.timeout", _to_float, DEFAULT_STORE_TIMEOUT)),
        auto_extract=env.get("AUTOMEM_AUTO_EXTRACT", "extract.auto", _to_bool, True),
        min_turns=max(0, env.get("AUTOMEM_MIN_TURNS", "extract.min_turns", _to_int, DEFAULT_MIN_TURNS)),
        sessions_dir=env.get("RECOLLECT_SESSIONS_DIR", "paths.sessions_dir", _to_path, DEFAULT_SESSIONS_DIR),
        ledger_path=env.get("RECOLLECT_LEDGER_PATH", "paths.ledger", _to_path, DEFAULT_LEDGER_PATH),
        extract_command=env.get("RECOLLECT_EXTRACT_COMMAND", "batch.command", _to_text, DEFAULT_EXTRACT_COMMAND),
        batch_max_chars=max(1, env.get("RECOLLECT_BATCH_MAX_CHARS", "batch.max_chars", _to_int, DEFAULT_BATCH_MAX_CHARS)),
        batch_timeout=max(1.0, env.get("RECOLLECT_BATCH_TIMEOUT", "batch.timeout", _to_float, DEFAULT_BATCH_TIMEOUT)),
        live_max_chars=max(1, env.get("RECOLLECT_LIVE_MAX_CHARS", "live.max_chars", _to_int, DEFAULT_LIVE_MAX_CHARS)),
        live_timeout=max(1.0, env.get("RECOLLECT_LIVE_TIMEOUT", "live.timeout", _to_float, DEFAULT_LIVE_TIMEOUT)),
        lm_provider=lm_provider,
        lm_model=env.optional("RECOLLECT_LM_MODEL", "live.model") or DEFAULT_LM_MODEL,
        lm_api_base=env.optional("RECOLLECT_LM_API_BASE", "live.api_base"),
        lm_api_key=env.optional("OPENROUTER_API_KEY", "api_keys.openrouter"),
    )


def get_config() -> Config:
    """Return the cached config."""
    return load_config()


def reload_config() -> Config:
    """Drop the cached config and resolve it again."""
    load_config.cache_clear()
    return load_config()
