# src/ultrastake/runtime/node_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class NodeConfig:
    engine_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file for ledger state and receipts. Empty means in-memory.
    db_path: str
    genesis_path: str

    api_host: str
    api_port: int

    log_level: str

    # Run the post-apply accounting checks on every tx.
    strict_invariants: bool


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_node_config(cfg: NodeConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.engine_id, str) or not cfg.engine_id.strip():
        raise ValueError("engine_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LOG_LEVELS}; got: {cfg.log_level!r}")

    if mode == "prod":
        # A prod engine must persist and must not skip accounting checks.
        if not str(cfg.db_path or "").strip():
            raise ValueError("db_path must be set in prod mode")
        if not cfg.strict_invariants:
            raise ValueError("strict_invariants cannot be disabled in prod mode")

    gp = str(cfg.genesis_path or "").strip()
    if gp and not Path(gp).is_file():
        raise ValueError(f"genesis_path does not exist or is not a file: {gp!r}")


def default_node_config() -> NodeConfig:
    return NodeConfig(
        engine_id="ultrastake-dev",
        mode="dev",
        db_path="./data/ultrastake.db",
        genesis_path="",
        api_host="127.0.0.1",
        api_port=8000,
        log_level="INFO",
        strict_invariants=True,
    )


def _from_mapping(raw: Json, d: NodeConfig) -> NodeConfig:
    return NodeConfig(
        engine_id=_as_str(raw.get("engine_id"), d.engine_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=str(raw.get("db_path")) if raw.get("db_path") is not None else d.db_path,
        genesis_path=str(raw.get("genesis_path")) if raw.get("genesis_path") is not None else d.genesis_path,
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
        strict_invariants=_as_bool(raw.get("strict_invariants"), d.strict_invariants),
    )


def read_node_config_file(path: str) -> NodeConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("node config must be a JSON object")
    return _from_mapping(raw, default_node_config())


_ENV_OVERRIDES = {
    "ULTRASTAKE_ENGINE_ID": "engine_id",
    "ULTRASTAKE_MODE": "mode",
    "ULTRASTAKE_DB_PATH": "db_path",
    "ULTRASTAKE_GENESIS_PATH": "genesis_path",
    "ULTRASTAKE_API_HOST": "api_host",
    "ULTRASTAKE_API_PORT": "api_port",
    "ULTRASTAKE_LOG_LEVEL": "log_level",
    "ULTRASTAKE_STRICT_INVARIANTS": "strict_invariants",
}


def apply_env_overrides(cfg: NodeConfig) -> NodeConfig:
    """Environment variables win over file values."""
    raw: Json = {}
    for env_key, field_name in _ENV_OVERRIDES.items():
        v = os.environ.get(env_key)
        if v is not None:
            raw[field_name] = v
    if not raw:
        return cfg
    merged = _from_mapping(raw, cfg)
    return replace(cfg, **{k: getattr(merged, k) for k in raw})


def load_node_config(*, config_path: Optional[str] = None) -> NodeConfig:
    p = config_path or os.environ.get("ULTRASTAKE_NODE_CONFIG_PATH")
    cfg = read_node_config_file(p) if p else default_node_config()
    cfg = apply_env_overrides(cfg)
    validate_node_config(cfg)
    return cfg


def apply_node_config_to_env(cfg: NodeConfig) -> None:
    validate_node_config(cfg)
    os.environ["ULTRASTAKE_ENGINE_ID"] = cfg.engine_id
    os.environ["ULTRASTAKE_MODE"] = (cfg.mode or "dev").strip().lower()
    os.environ["ULTRASTAKE_DB_PATH"] = cfg.db_path
    os.environ["ULTRASTAKE_GENESIS_PATH"] = cfg.genesis_path
    os.environ["ULTRASTAKE_LOG_LEVEL"] = cfg.log_level
    os.environ["ULTRASTAKE_STRICT_INVARIANTS"] = "1" if cfg.strict_invariants else "0"


__all__ = [
    "NodeConfig",
    "apply_env_overrides",
    "apply_node_config_to_env",
    "default_node_config",
    "load_node_config",
    "read_node_config_file",
    "validate_node_config",
]
