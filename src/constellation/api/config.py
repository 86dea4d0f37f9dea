import os
from dataclasses import dataclass


def _is_truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "prod" | "dev" | "testnet"
    block_loop_autostart: bool
    docs_enabled: bool
    cors_origins: str


def load_api_config() -> ApiConfig:
    mode = os.getenv("CONSTELLATION_MODE", "prod").strip().lower()
    docs = os.getenv("CONSTELLATION_API_DOCS")
    return ApiConfig(
        mode=mode,
        block_loop_autostart=_is_truthy(os.getenv("CONSTELLATION_BLOCK_LOOP_AUTOSTART")),
        # Docs default off in prod, on elsewhere.
        docs_enabled=_is_truthy(docs) if docs is not None else mode != "prod",
        cors_origins=os.getenv("CONSTELLATION_CORS_ORIGINS", "").strip(),
    )
