"""Application settings loaded from environment variables.

A .env file at the repo root is loaded first if present; real environment
variables take precedence over it.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import FrozenSet, Optional

from dotenv import load_dotenv


REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_roles(name: str, default: str) -> FrozenSet[str]:
    raw = os.getenv(name) or default
    return frozenset(r.strip().upper() for r in raw.split(",") if r.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the store, API, worker and logging."""
    db_path: Path = REPO_ROOT / "fleet_maintenance.db"
    audit_dir: Optional[Path] = None
    log_level: str = "INFO"
    log_json: bool = False
    completion_roles: FrozenSet[str] = field(default_factory=lambda: frozenset({"ADMIN", "ACCOUNTANT"}))

    # Temporal
    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_cert_path: Optional[str] = None
    task_queue: str = "fleet-maintenance"


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    audit_dir = os.getenv("FLEET_AUDIT_DIR")
    return Settings(
        db_path=Path(os.getenv("FLEET_DB_PATH") or REPO_ROOT / "fleet_maintenance.db"),
        audit_dir=Path(audit_dir) if audit_dir else None,
        log_level=(os.getenv("FLEET_LOG_LEVEL") or "INFO").upper(),
        log_json=_env_bool("FLEET_LOG_JSON"),
        completion_roles=_env_roles("FLEET_COMPLETION_ROLES", "ADMIN,ACCOUNTANT"),
        temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT"),
        temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
        temporal_api_key=os.getenv("TEMPORAL_API_KEY"),
        temporal_cert_path=os.getenv("TEMPORAL_CERT_PATH"),
        task_queue=os.getenv("FLEET_TASK_QUEUE", "fleet-maintenance"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings (call get_settings.cache_clear() after changing env)."""
    return load_settings()
