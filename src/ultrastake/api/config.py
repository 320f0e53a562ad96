import os
from dataclasses import dataclass


def _is_truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "testnet" | "prod"
    expose_state: bool
    max_receipts: int


def load_api_config() -> ApiConfig:
    mode = os.getenv("ULTRASTAKE_MODE", "dev").strip().lower()
    expose = os.getenv("ULTRASTAKE_API_EXPOSE_STATE")
    try:
        max_receipts = int(os.getenv("ULTRASTAKE_API_MAX_RECEIPTS", "200"))
    except ValueError:
        max_receipts = 200
    return ApiConfig(
        mode=mode,
        # Full state dumps are a dev convenience.
        expose_state=_is_truthy(expose) if expose is not None else mode != "prod",
        max_receipts=max(1, max_receipts),
    )
