"""Configuration management for the user directory service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger("userdir.config")

AUTH_MODES = ("token", "header")
DEFAULT_TOKEN_TTL_MINUTES = 120
_MIN_SECRET_LENGTH = 32

_ENV_KEYS: Dict[str, str] = {
    "jwt_secret": "USERDIR_JWT_SECRET",
    "token_ttl_minutes": "USERDIR_TOKEN_TTL_MINUTES",
    "auth_mode": "USERDIR_AUTH_MODE",
    "admin_login": "USERDIR_ADMIN_LOGIN",
    "admin_password": "USERDIR_ADMIN_PASSWORD",
    "admin_name": "USERDIR_ADMIN_NAME",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the directory service."""

    jwt_secret: str
    token_ttl_minutes: int = DEFAULT_TOKEN_TTL_MINUTES
    auth_mode: str = "token"
    admin_login: str = "Admin"
    admin_password: str = "Admin123"
    admin_name: str = "Administrator"

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw mapping data, validating each field."""

        secret = str(data.get("jwt_secret") or "").strip()
        if not secret:
            raise ConfigurationError(
                "JWT secret is not configured. Set USERDIR_JWT_SECRET or 'jwt_secret' in the config file."
            )
        if len(secret.encode("utf-8")) < _MIN_SECRET_LENGTH:
            logger.warning("JWT secret is shorter than %s bytes - use a stronger secret!", _MIN_SECRET_LENGTH)

        raw_ttl = data.get("token_ttl_minutes")
        if raw_ttl is None or str(raw_ttl).strip() == "":
            ttl = DEFAULT_TOKEN_TTL_MINUTES
        else:
            try:
                ttl = int(str(raw_ttl))
            except ValueError as exc:
                raise ConfigurationError(f"Invalid token lifetime {raw_ttl!r}") from exc
        if ttl <= 0:
            raise ConfigurationError("Token lifetime must be a positive number of minutes")

        auth_mode = str(data.get("auth_mode") or "token").strip().lower()
        if auth_mode not in AUTH_MODES:
            raise ConfigurationError(
                f"Unknown auth mode {auth_mode!r}; expected one of: {', '.join(AUTH_MODES)}"
            )

        return Settings(
            jwt_secret=secret,
            token_ttl_minutes=ttl,
            auth_mode=auth_mode,
            admin_login=str(data.get("admin_login") or "Admin").strip() or "Admin",
            admin_password=str(data.get("admin_password") or "Admin123"),
            admin_name=str(data.get("admin_name") or "Administrator").strip() or "Administrator",
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "userdir.yaml").resolve(strict=False)
    return candidate


def _load_file(config_path: Path) -> Dict[str, object]:
    if not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return dict(raw)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from the YAML file, then apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERDIR_CONFIG"))
    data = _load_file(path)

    for key, env_name in _ENV_KEYS.items():
        value = env.get(env_name)
        if value is not None and value.strip() != "":
            data[key] = value

    return Settings.from_dict(data)


__all__ = ["AUTH_MODES", "Settings", "load_settings", "resolve_config_path"]
