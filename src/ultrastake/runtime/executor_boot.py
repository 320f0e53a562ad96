# src/ultrastake/runtime/executor_boot.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ultrastake.runtime.clock import Clock
from ultrastake.runtime.executor import ExecutorError, StakingExecutor
from ultrastake.runtime.genesis_config import load_genesis
from ultrastake.runtime.node_config import NodeConfig, load_node_config
from ultrastake.runtime.sigverify import signatures_required


@dataclass
class ExecutorBootConfig:
    db_path: str
    engine_id: str
    genesis_path: str
    strict_invariants: bool = True
    mode: str = "dev"


def boot_config_from_node_config(cfg: NodeConfig) -> ExecutorBootConfig:
    return ExecutorBootConfig(
        db_path=cfg.db_path,
        engine_id=cfg.engine_id,
        genesis_path=cfg.genesis_path,
        strict_invariants=cfg.strict_invariants,
        mode=cfg.mode,
    )


def boot_config_from_env() -> ExecutorBootConfig:
    return boot_config_from_node_config(load_node_config())


def build_executor(cfg: Optional[ExecutorBootConfig] = None, *, clock: Optional[Clock] = None) -> StakingExecutor:
    """
    Build a StakingExecutor from an explicit boot config or, if omitted,
    from the node config file / environment.

    Genesis is only read when the database has no ledger yet; an existing
    ledger always wins. In prod mode the ledger must have
    params.require_signatures on, whichever of the two it came from.
    """
    c = cfg or boot_config_from_env()
    genesis = load_genesis(c.genesis_path) if c.genesis_path.strip() else None
    ex = StakingExecutor(
        db_path=c.db_path,
        engine_id=c.engine_id,
        clock=clock,
        genesis=genesis,
        strict_invariants=c.strict_invariants,
    )

    if str(c.mode or "").strip().lower() == "prod":
        if not signatures_required(ex.read_state()):
            ex.close()
            raise ExecutorError("prod mode requires a ledger with require_signatures=true. Refuse to start.")
    return ex


__all__ = ["ExecutorBootConfig", "boot_config_from_env", "boot_config_from_node_config", "build_executor"]
