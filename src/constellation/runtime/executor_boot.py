# src/constellation/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from constellation.runtime.chain_config import ChainConfig, load_chain_config
from constellation.runtime.executor import ConstellationExecutor


def build_executor(cfg: Optional[ChainConfig] = None) -> ConstellationExecutor:
    """
    Build a ConstellationExecutor from an explicit chain config or, if
    omitted, from CONSTELLATION_CHAIN_CONFIG_PATH and the environment.

    constellation.api.app calls this with no args in production.
    """
    return ConstellationExecutor(cfg=cfg or load_chain_config())
