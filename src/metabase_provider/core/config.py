from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv


class ConfigError(ValueError):
    """Raised when runtime configuration cannot be resolved."""


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    state_dir: str = ".mbprov"


@dataclass
class MetabaseSection:
    host: str = ""
    api_key: str = ""        # secret – never log in clear text
    username: str = ""
    password: str = ""       # secret – never log in clear text
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class HttpSection:
    verify_tls: bool = True
    timeout_sec: int = 10


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    metabase: MetabaseSection
    http: HttpSection
    logging: LoggingSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./mbprov.yml",
    os.path.expanduser("~/.config/mbprov/config.yml"),
    "/etc/mbprov/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None, "state_dir": ".mbprov"},
    "metabase": {"host": "", "api_key": "", "username": "", "password": "", "headers": {}},
    "http": {"verify_tls": True, "timeout_sec": 10},
    "logging": {"base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
}

# Well-known variables, used only where the settings file leaves a value unset.
_METABASE_ENV: Dict[str, str] = {
    "METABASE_HOST": "host",
    "METABASE_API_KEY": "api_key",
    "METABASE_USERNAME": "username",
    "METABASE_PASSWORD": "password",
}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _metabase_env() -> Dict[str, Any]:
    section = {key: os.environ[var] for var, key in _METABASE_ENV.items() if os.environ.get(var)}
    return {"metabase": section} if section else {}


def _env_to_dict(prefix: str = "MBPROV_") -> Dict[str, Any]:
    """
    Convert MBPROV_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Minimal type coercion for booleans and integers in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def walk(obj: Any, key_path: Tuple[str, ...] = ()) -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, key_path + (k,)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(v, key_path) for v in obj]
        if key_path[-1:] == ("verify_tls",):
            return to_bool(obj)
        if key_path[-1:] == ("timeout_sec",):
            try:
                return int(obj)
            except (TypeError, ValueError):
                return obj
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    """
    A host is required, plus either an API key or a username and password.
    """
    mb = cfg.get("metabase", {})
    missing = []
    if not mb.get("host"):
        missing.append("metabase.host (or METABASE_HOST)")
    if not mb.get("api_key") and not (mb.get("username") and mb.get("password")):
        missing.append("metabase.api_key, or metabase.username + metabase.password")
    if missing:
        raise ConfigError("Missing required configuration: " + ", ".join(missing))


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "MBPROV_",
    *,
    use_dotenv: bool = True,
    require_connection: bool = True,
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix MBPROV_, nested via __)
      3) YAML file (first existing)
      4) METABASE_HOST / METABASE_API_KEY / METABASE_USERNAME / METABASE_PASSWORD
      5) Built-in defaults

    A `.env` file found from the working directory is loaded first without
    overriding variables already set in the process environment.

    Also performs:
      - ${ENV_VAR} interpolation
      - basic type coercion (bool/int)
      - validation of connection settings (skipped when `require_connection`
        is False, e.g. for offline validation)
    """
    if use_dotenv:
        env_path = find_dotenv(usecwd=True) or ""
        if env_path:
            load_dotenv(env_path, override=False)

    file_cfg = _load_first_existing(files)

    merged = _deep_merge(_DEFAULTS, _metabase_env())
    merged = _deep_merge(merged, file_cfg)
    merged = _deep_merge(merged, _env_to_dict(env_prefix))
    merged = _deep_merge(merged, cli_overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)

    if require_connection:
        _validate(merged)

    return AppConfig(
        app=AppSection(**merged.get("app", {})),
        metabase=MetabaseSection(**merged.get("metabase", {})),
        http=HttpSection(**merged.get("http", {})),
        logging=LoggingSection(**merged.get("logging", {})),
    )
