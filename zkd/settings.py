from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    # ZooKeeper
    zk_hosts: str = os.getenv("ZKD_ZK_HOSTS", "127.0.0.1:2181")
    zk_timeout_s: float = _env_float("ZKD_ZK_TIMEOUT_S", 10.0)
    discovery_path: str = os.getenv("ZKD_DISCOVERY_PATH", "/discovery")
    services: tuple[str, ...] = _env_list("ZKD_SERVICES", ("coordinator", "overlord"))

    # Node verification (GET {uri}status)
    connect_timeout_s: float = _env_float("ZKD_CONNECT_TIMEOUT_S", 5.0)
    read_timeout_s: float = _env_float("ZKD_READ_TIMEOUT_S", 5.0)
    verify_retries: int = _env_int("ZKD_VERIFY_RETRIES", 3)
    retry_step_s: float = _env_float("ZKD_RETRY_STEP_S", 0.8)

    log_level: str = os.getenv("ZKD_LOG_LEVEL", "INFO")


settings = Settings()
