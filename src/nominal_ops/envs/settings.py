from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, field_validator

from ..crypto.signer import load_private_key_from_pem
from ..domain.errors import SigningError
from ..domain.ledger.entities import Layer, LedgerCredentials
from ..infrastructure.vending.vending_client import DEFAULT_BASE_URL


class Settings(BaseModel):
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_workers: int = 1
    api_cors_origins: list[str] = ["*"]

    app_name: str = "nominal-ops"
    app_version: str = "0.1.0"

    ledger_pre: Optional[LedgerCredentials] = None
    ledger_prod: Optional[LedgerCredentials] = None
    ledger_pre_url: Optional[str] = None
    ledger_prod_url: Optional[str] = None
    ledger_timeout_seconds: float = 15.0
    ledger_cache_ttl_seconds: float = 300.0
    ledger_cache_sweep_seconds: float = 300.0

    vending_base_url: str = DEFAULT_BASE_URL
    vending_api_key: Optional[str] = None

    @field_validator("ledger_pre", "ledger_prod")
    @classmethod
    def validate_ledger_private_key_pem(
        cls, v: Optional[LedgerCredentials]
    ) -> Optional[LedgerCredentials]:
        """Validate that the layer private key is a loadable RSA PEM."""
        if v is None:
            return v
        try:
            load_private_key_from_pem(v.private_key_pem)
        except SigningError as e:
            raise ValueError(f"Invalid ledger private key PEM: {e}") from e
        return v

    @field_validator("ledger_timeout_seconds", "ledger_cache_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    def credentials(self) -> dict[Layer, LedgerCredentials]:
        configured = {Layer.PRE: self.ledger_pre, Layer.PROD: self.ledger_prod}
        return {layer: c for layer, c in configured.items() if c is not None}

    def endpoints(self) -> dict[Layer, str]:
        overrides = {Layer.PRE: self.ledger_pre_url, Layer.PROD: self.ledger_prod_url}
        return {layer: url for layer, url in overrides.items() if url}


def _credentials_from_env(prefix: str) -> Optional[LedgerCredentials]:
    """Read one layer's credentials; a layer missing any of the three is unset."""
    pem = os.environ.get(f"{prefix}_PRIVATE_KEY_PEM")
    system = os.environ.get(f"{prefix}_SIGN_SYSTEM")
    thumbprint = os.environ.get(f"{prefix}_SIGN_THUMBPRINT")
    if not (pem and system and thumbprint):
        return None
    # Env files often carry the PEM on one line with literal "\n".
    return LedgerCredentials(
        private_key_pem=pem.replace("\\n", "\n"),
        sign_system=system,
        sign_thumbprint=thumbprint,
    )


def get_settings() -> Settings:
    values: dict[str, object] = {
        "ledger_pre": _credentials_from_env("LEDGER_PRE"),
        "ledger_prod": _credentials_from_env("LEDGER_PROD"),
    }

    api_debug_str = os.environ.get("API_DEBUG")
    if api_debug_str is not None:
        values["api_debug"] = api_debug_str.lower() == "true"
    api_cors_origins_str = os.environ.get("API_CORS_ORIGINS")
    if api_cors_origins_str is not None:
        values["api_cors_origins"] = api_cors_origins_str.split(",")

    env_fields = {
        "API_HOST": "api_host",
        "API_PORT": "api_port",
        "API_WORKERS": "api_workers",
        "APP_NAME": "app_name",
        "APP_VERSION": "app_version",
        "LEDGER_PRE_URL": "ledger_pre_url",
        "LEDGER_PROD_URL": "ledger_prod_url",
        "LEDGER_TIMEOUT_SECONDS": "ledger_timeout_seconds",
        "LEDGER_CACHE_TTL_SECONDS": "ledger_cache_ttl_seconds",
        "LEDGER_CACHE_SWEEP_SECONDS": "ledger_cache_sweep_seconds",
        "VENDING_BASE_URL": "vending_base_url",
        "VENDING_API_KEY": "vending_api_key",
    }
    for env_name, field in env_fields.items():
        value = os.environ.get(env_name)
        if value is not None:
            values[field] = value

    return Settings(**values)
