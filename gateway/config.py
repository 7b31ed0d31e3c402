"""Gateway configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Tuple
import math
import os


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the PostgreSQL backing store."""

    host: str
    port: int
    dbname: str
    user: str
    password: str
    connect_timeout: int

    def as_connect_kwargs(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
        }


@dataclass(frozen=True)
class GatewayConfig:
    """Runtime configuration for the verification gateway."""

    database: DatabaseConfig
    jwt_secret_key: str
    session_cookie_name: str
    verification_api_base_url: str
    verification_api_key: Optional[str]
    verification_timeout_seconds: float
    verification_consent_text: str
    payment_provider: str
    payment_key_id: Optional[str]
    payment_key_secret: Optional[str]
    payment_currency: str
    cors_origins: Tuple[str, ...]


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_list(value: Optional[str], *, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None or not value.strip():
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_gateway_config(env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Load :class:`GatewayConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    connect_timeout = _to_float(env_mapping.get("DB_CONNECT_TIMEOUT"), default=5.0)
    if connect_timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")

    database = DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        dbname=env_mapping.get("DB_NAME", "gateway_db"),
        user=env_mapping.get("DB_USER", "gateway_user"),
        password=env_mapping.get("DB_PASSWORD", "gateway_pass"),
        connect_timeout=int(math.ceil(connect_timeout)),
    )

    timeout_seconds = _to_float(env_mapping.get("VERIFICATION_TIMEOUT_SECONDS"), default=30.0)
    if timeout_seconds <= 0:
        raise ValueError("VERIFICATION_TIMEOUT_SECONDS must be positive")

    payment_provider = (env_mapping.get("PAYMENT_PROVIDER") or "sandbox").strip().lower() or "sandbox"

    return GatewayConfig(
        database=database,
        jwt_secret_key=env_mapping.get("JWT_SECRET_KEY", "dev-secret-change-me"),
        session_cookie_name=env_mapping.get("SESSION_COOKIE_NAME", "session"),
        verification_api_base_url=env_mapping.get(
            "VERIFICATION_API_BASE_URL", "https://api.gridlines.io"
        ).rstrip("/"),
        verification_api_key=env_mapping.get("VERIFICATION_API_KEY") or None,
        verification_timeout_seconds=timeout_seconds,
        verification_consent_text=env_mapping.get(
            "VERIFICATION_CONSENT_TEXT", "I provide consent to fetch information."
        ),
        payment_provider=payment_provider,
        payment_key_id=env_mapping.get("PAYMENT_KEY_ID") or None,
        payment_key_secret=(env_mapping.get("PAYMENT_KEY_SECRET") or "").strip() or None,
        payment_currency=(env_mapping.get("PAYMENT_CURRENCY") or "INR").strip().upper(),
        cors_origins=_to_list(env_mapping.get("CORS_ORIGINS"), default=("http://localhost:5173",)),
    )


@lru_cache(maxsize=1)
def get_gateway_config() -> GatewayConfig:
    return load_gateway_config()


__all__ = ["DatabaseConfig", "GatewayConfig", "get_gateway_config", "load_gateway_config"]
