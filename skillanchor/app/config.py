"""Environment-sourced settings for the relayer."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from .domain.errors import ConfigurationError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

REQUIRED_VARS = (
    "POLYGON_RPC_URL",
    "RELAYER_PRIVATE_KEY",
    "T3X_SKILL_RATINGS_CONTRACT_ADDRESS",
    "DATABASE_URL",
)


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    private_key: str = field(repr=False)
    contract_address: str
    database_url: str = field(repr=False)
    confirmation_timeout: float = 120.0
    poll_interval: float = 2.0
    rpc_timeout: float = 30.0
    log_level: str = "INFO"


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _log_level(env: Mapping[str, str]) -> str:
    level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}"
        )
    return level


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read and validate settings; raises ConfigurationError listing every gap."""
    if env is None:
        load_dotenv()
        env = os.environ

    missing = [name for name in REQUIRED_VARS if not (env.get(name) or "").strip()]
    if missing:
        raise ConfigurationError(
            "Missing required environment variables: " + ", ".join(missing)
        )

    return Settings(
        rpc_url=env["POLYGON_RPC_URL"].strip(),
        private_key=env["RELAYER_PRIVATE_KEY"].strip(),
        contract_address=env["T3X_SKILL_RATINGS_CONTRACT_ADDRESS"].strip(),
        database_url=env["DATABASE_URL"].strip(),
        confirmation_timeout=_float(env, "RELAYER_CONFIRMATION_TIMEOUT", 120.0),
        poll_interval=_float(env, "RELAYER_POLL_INTERVAL", 2.0),
        rpc_timeout=_float(env, "RELAYER_RPC_TIMEOUT", 30.0),
        log_level=_log_level(env),
    )
